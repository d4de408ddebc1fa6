"""
Result types returned by InterviewManager.handle()

These are the ONLY return types from the command handler.
"""

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

from backend.commands import InterviewState
from backend.contracts import ResolvedQuestion


@dataclass(frozen=True)
class TurnResult:
    """
    Successful turn processing result.

    Returned by: StartInterview, SubmitAnswer, EditAnswer

    Attributes:
        system_output: Text to display to user (question or message)
        question: Question awaiting an answer (None when complete)
        state: Opaque state envelope (Flask cannot inspect)
        debug: Debug information (validation outcome, phase changes, etc.)
        turn_metadata: Turn-level metadata (session_id, turn_count, phase)
        interview_complete: Whether every phase has been walked
    """
    system_output: str
    question: Optional[ResolvedQuestion]
    state: InterviewState
    debug: Dict[str, Any]
    turn_metadata: Dict[str, Any]
    interview_complete: bool


@dataclass(frozen=True)
class DraftReport:
    """
    Drafted application after interview completion.

    Returned by: FinalizeInterview

    Attributes:
        session_id: Session identifier
        sections: [{'id', 'title', 'text', 'source'}] where source is
            'remote' or 'fallback'
        completeness: Output of calculate_overall_completeness()
        output_path: Absolute path of the saved JSON file ('' if not saved)
        output_filename: Filename only (for display)
    """
    session_id: str
    sections: List[Dict[str, Any]]
    completeness: Dict[str, Any]
    output_path: str = ""
    output_filename: str = ""
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class IllegalCommand:
    """
    Command rejected by the manager (invalid lifecycle transition).

    Examples:
    - SubmitAnswer when the interview is already complete
    - FinalizeInterview when interview_complete=False
    - EditAnswer for a question that has no answer

    Attributes:
        reason: Human-readable explanation
        command_type: Name of rejected command type
    """
    reason: str
    command_type: str
