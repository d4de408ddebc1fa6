"""
Semantic contracts for the subsidy application interview.

This module defines immutable data structures that serve as contracts
between modules. These are NOT validators - they define shape and
semantics without enforcing rules.

Design principles:
- Frozen dataclasses (immutable after creation)
- No validation logic (contracts, not validators)
- No dependencies on other modules

Contents:
- ResolvedQuestion: Question with every dynamic field resolved for display
- ValidationResult: Outcome of checking one answer against its rules

Usage:
    from backend.contracts import ResolvedQuestion, ValidationResult
"""

from dataclasses import dataclass, asdict
from typing import Any, Optional, Tuple


@dataclass(frozen=True)
class ResolvedQuestion:
    """
    Immutable question representation returned by the flow resolver.

    All template fields have been evaluated against the answer map, so the
    presentation layer never calls back into catalog functions.

    Attributes:
        id: Question identifier (e.g. 'Q1-4')
        text: Prompt shown to the user.
            Example: "常時雇用している従業員は何名いますか？"
        type: Input kind ('text', 'single_choice', 'multi_choice',
            'number', 'date', 'structured')
        phase: Phase the question belongs to (e.g. 'eligibility')
        priority: Ordering key the question was selected by
        required: Whether an answer is needed for phase completion
        options: Choices for choice questions, as a tuple.
            Empty tuple for other types.
        placeholder: Input hint, '' when absent
        help_text: Explanation shown under the prompt, '' when absent
        suffix: Unit shown after the input, None when absent
        category: Grouping label, None when absent

    Examples:
        >>> q = ResolvedQuestion(
        ...     id='Q1-6',
        ...     text='法人ですか、それとも個人事業主ですか？',
        ...     type='single_choice',
        ...     phase='eligibility',
        ...     priority=8,
        ...     required=True,
        ...     options=('個人事業主', '法人')
        ... )
        >>> q.options
        ('個人事業主', '法人')
    """
    id: str
    text: str
    type: str
    phase: Optional[str] = None
    priority: float = 0
    required: bool = False
    options: Tuple[Any, ...] = ()
    placeholder: str = ""
    help_text: str = ""
    suffix: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> dict:
        """JSON-safe dict (options as list)."""
        data = asdict(self)
        data['options'] = list(self.options)
        return data

    @staticmethod
    def from_dict(data: dict) -> "ResolvedQuestion":
        values = dict(data)
        values['options'] = tuple(values.get('options') or ())
        return ResolvedQuestion(**values)


@dataclass(frozen=True)
class ValidationResult:
    """
    Outcome of validating one answer.

    Attributes:
        is_valid: False blocks the answer from being recorded
        message: Why the answer was rejected ('' when valid)
        warning: Advisory shown with a valid answer ('' when none)
    """
    is_valid: bool
    message: str = ""
    warning: str = ""
