"""
Commands accepted by InterviewManager.handle().

The interview is driven only through these four commands. Everything the
manager needs between turns travels inside InterviewState, which callers
(Flask client, console loop, persistence) carry around without reading.
"""

from dataclasses import dataclass
from typing import Any, Dict
import copy


@dataclass(frozen=True)
class InterviewState:
    """
    Sealed snapshot of one interview session.

    Only InterviewManager reads _data. Outside code may use the two
    operational properties (persistence needs them for file naming) and
    the JSON round trip. Construction deep copies, so a caller keeping the
    original dict can't change the envelope afterwards.
    """
    _data: Dict[str, Any]

    def __post_init__(self):
        if not isinstance(self._data, dict):
            raise ValueError(f"InterviewState wraps a dict, got {type(self._data).__name__}")
        object.__setattr__(self, '_data', copy.deepcopy(self._data))

    @property
    def turn_count(self) -> int:
        return self._data.get('turn_count', 0)

    @property
    def session_id(self) -> str:
        return self._data.get('session_id', '')

    def to_json(self) -> dict:
        """JSON-safe deep copy of the snapshot."""
        return copy.deepcopy(self._data)

    @staticmethod
    def from_json(data: dict) -> "InterviewState":
        """
        Rebuild the envelope from a parsed JSON dict.

        Raises:
            ValueError: If data is not a dict
        """
        return InterviewState(_data=data)


@dataclass(frozen=True)
class StartInterview:
    """Begin a session. Result: TurnResult with the first question."""


@dataclass(frozen=True)
class SubmitAnswer:
    """
    Answer the pending question with raw input.

    user_input is a console/form string or an already typed JSON value.
    Result: TurnResult with the next question, or the same question again
    with the validation message when the answer is rejected.
    """
    user_input: Any
    state: InterviewState


@dataclass(frozen=True)
class EditAnswer:
    """
    Drop an earlier answer so the question comes back.

    Result: TurnResult, or IllegalCommand when the question is unknown or
    has no answer.
    """
    question_id: str
    state: InterviewState


@dataclass(frozen=True)
class FinalizeInterview:
    """
    Draft the application from a completed session.

    Result: DraftReport, or IllegalCommand while questions remain.
    """
    state: InterviewState


Command = StartInterview | SubmitAnswer | EditAnswer | FinalizeInterview
