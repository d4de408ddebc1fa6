"""
Interview State Manager - Per-session answer storage

Responsibilities:
- Store the answer map (question id -> value)
- Store dialogue history (one entry per answered or rejected turn)
- Track the phase the interview is currently walking
- Snapshot / restore for persistence between turns

Design principles:
- Dumb container: no flow logic, no validation
- Answers grow one entry at a time; removal only through remove_answer()
  (explicit user edit)
- Every getter returns a deep copy; callers can never mutate stored state

API Philosophy:
- State Manager = dumb data container
- Interview Manager = smart coordinator (decides what to ask)
- Question Selector = catalog logic
"""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


class InterviewStateManager:
    """Manages the answers and history of one interview session"""

    def __init__(self, phase: Optional[str] = None):
        """
        Initialize empty session state

        Args:
            phase: Phase the interview starts in
        """
        self.answers: Dict[str, Any] = {}
        self.dialogue_history: List[Dict[str, Any]] = []
        self.current_phase: Optional[str] = phase
        self.completed_phases: List[str] = []
        self.timestamp_started = datetime.now(timezone.utc).isoformat()

        logger.info(f"Interview State Manager initialized (phase={phase})")

    # ========================
    # Answers
    # ========================

    def set_answer(self, question_id: str, value: Any) -> None:
        """
        Record an answer.

        Raises:
            ValueError: If question_id is empty
        """
        if not question_id:
            raise ValueError("question_id must be non-empty")

        self.answers[question_id] = copy.deepcopy(value)
        logger.debug(f"Answer recorded: {question_id}")

    def get_answer(self, question_id: str, default: Any = None) -> Any:
        return copy.deepcopy(self.answers.get(question_id, default))

    def has_answer(self, question_id: str) -> bool:
        return question_id in self.answers

    def remove_answer(self, question_id: str) -> bool:
        """
        Remove an answer (explicit user edit).

        Returns:
            bool: True if an answer was removed
        """
        if question_id not in self.answers:
            return False

        del self.answers[question_id]
        logger.info(f"Answer removed for re-entry: {question_id}")
        return True

    def get_answers(self) -> Dict[str, Any]:
        """All answers (deep copy, safe to modify)."""
        return copy.deepcopy(self.answers)

    # ========================
    # Phases
    # ========================

    def set_phase(self, phase: Optional[str]) -> None:
        if self.current_phase and self.current_phase not in self.completed_phases:
            self.completed_phases.append(self.current_phase)
        logger.info(f"Phase transition: {self.current_phase} -> {phase}")
        self.current_phase = phase

    def reopen_phase(self, phase: str) -> None:
        """Walk `phase` again (after an edit removed one of its answers)."""
        if phase in self.completed_phases:
            self.completed_phases.remove(phase)
        logger.info(f"Phase reopened: {phase}")
        self.current_phase = phase

    # ========================
    # Dialogue History
    # ========================

    def add_dialogue_turn(
        self,
        question_id: str,
        question_text: str,
        user_response: Any,
        accepted: bool,
        message: str = "",
        timestamp: Optional[str] = None
    ) -> None:
        """
        Record a dialogue turn.

        Args:
            question_id: Question identifier
            question_text: Question as shown to the user
            user_response: Raw response
            accepted: Whether the answer was recorded
            message: Validation message or warning shown to the user
            timestamp: ISO 8601 timestamp (defaults to now)
        """
        if timestamp is None:
            timestamp = datetime.now(timezone.utc).isoformat()

        turn = {
            'turn_id': len(self.dialogue_history) + 1,
            'timestamp': timestamp,
            'phase': self.current_phase,
            'question_id': question_id,
            'question': question_text,
            'response': copy.deepcopy(user_response),
            'accepted': accepted,
            'message': message
        }
        self.dialogue_history.append(turn)
        logger.debug(f"Recorded dialogue turn {turn['turn_id']} (question_id={question_id})")

    def get_dialogue_history(self) -> List[Dict[str, Any]]:
        return copy.deepcopy(self.dialogue_history)

    # ========================
    # Snapshot / Export
    # ========================

    def snapshot_state(self) -> Dict[str, Any]:
        """
        Lossless, JSON-safe snapshot of the session.

        Returns:
            dict: Restorable with from_snapshot()
        """
        return {
            'snapshot_version': SNAPSHOT_VERSION,
            'answers': copy.deepcopy(self.answers),
            'dialogue_history': copy.deepcopy(self.dialogue_history),
            'current_phase': self.current_phase,
            'completed_phases': list(self.completed_phases),
            'timestamp_started': self.timestamp_started
        }

    @classmethod
    def from_snapshot(cls, snapshot: Dict[str, Any]) -> "InterviewStateManager":
        """
        Rehydrate from snapshot_state() output.

        Raises:
            ValueError: If the snapshot is malformed
        """
        if not isinstance(snapshot, dict):
            raise ValueError("snapshot must be dict")
        if not isinstance(snapshot.get('answers', {}), dict):
            raise ValueError("snapshot 'answers' must be dict")

        version = snapshot.get('snapshot_version', SNAPSHOT_VERSION)
        if version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported snapshot version: {version}")

        state = cls.__new__(cls)
        state.answers = copy.deepcopy(snapshot.get('answers', {}))
        state.dialogue_history = copy.deepcopy(snapshot.get('dialogue_history', []))
        state.current_phase = snapshot.get('current_phase')
        state.completed_phases = list(snapshot.get('completed_phases', []))
        state.timestamp_started = snapshot.get('timestamp_started')
        return state

    def export_for_draft(self) -> Dict[str, Any]:
        """
        Export for the draft generator.

        Returns:
            dict: {
                'answers': {...},
                'dialogue_history': [accepted turns only]
            }
        """
        return {
            'answers': copy.deepcopy(self.answers),
            'dialogue_history': [
                copy.deepcopy(turn) for turn in self.dialogue_history if turn.get('accepted')
            ]
        }

    def get_summary_stats(self) -> Dict[str, Any]:
        """Summary statistics (for debugging/logging)."""
        return {
            'total_answers': len(self.answers),
            'total_dialogue_turns': len(self.dialogue_history),
            'rejected_turns': sum(1 for t in self.dialogue_history if not t.get('accepted')),
            'current_phase': self.current_phase,
            'completed_phases': list(self.completed_phases)
        }
