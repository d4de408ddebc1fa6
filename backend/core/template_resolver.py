"""
Template Resolver - Resolve dynamic question fields for presentation

Each dynamic field is either a LiteralField (returned as-is) or a
ComputedField (called with a deep copy of the answers). A computed field
that raises falls back to an empty value and the failure is logged.
"""

import copy
import logging
from typing import Any, Mapping, Optional

from backend.contracts import ResolvedQuestion
from backend.core.question_catalog import (
    ComputedField,
    ConditionEvaluationError,
    LiteralField,
    QuestionDefinition,
)

logger = logging.getLogger(__name__)

# Fallback per field when the field is absent or its function fails
FIELD_DEFAULTS = {
    "text": "",
    "placeholder": "",
    "help_text": "",
    "options": (),
}


def _coerce(field_name: str, value: Any, default: Any) -> Any:
    if value is None:
        return default
    if field_name != "options":
        return str(value)
    # A bare string would otherwise split into characters
    if isinstance(value, (str, bytes)):
        raise TypeError(f"options must be a sequence of labels, got {type(value).__name__}")
    return tuple(value)


def resolve_field(
    question_id: str,
    field_name: str,
    dynamic_field: Optional[Any],
    answers: Mapping[str, Any]
) -> Any:
    """
    Resolve one dynamic field.

    Args:
        question_id: Owning question (for logging)
        field_name: Field name, key of FIELD_DEFAULTS
        dynamic_field: LiteralField, ComputedField or None
        answers: Current answer map (never mutated)

    Returns:
        Resolved value, or the field default on absence/failure
    """
    default = FIELD_DEFAULTS[field_name]

    if dynamic_field is None:
        return default

    if isinstance(dynamic_field, LiteralField):
        return _coerce(field_name, dynamic_field.value, default)
    if not isinstance(dynamic_field, ComputedField):
        raise TypeError(f"Unsupported field variant: {type(dynamic_field).__name__}")

    try:
        return _coerce(field_name, dynamic_field.fn(copy.deepcopy(dict(answers))), default)
    except Exception as e:
        error = ConditionEvaluationError(question_id, field_name, e)
        logger.error(f"Template resolution failed, using default: {error}")
        return default


def resolve_question(question: QuestionDefinition, answers: Mapping[str, Any]) -> ResolvedQuestion:
    """
    Resolve every dynamic field of a question against the answers.

    Args:
        question: Question definition from the catalog
        answers: Current answer map (never mutated)

    Returns:
        ResolvedQuestion ready for presentation
    """
    return ResolvedQuestion(
        id=question.id,
        text=resolve_field(question.id, "text", question.text, answers),
        type=question.type,
        phase=question.phase,
        priority=question.priority,
        required=question.required,
        options=resolve_field(question.id, "options", question.options, answers),
        placeholder=resolve_field(question.id, "placeholder", question.placeholder, answers),
        help_text=resolve_field(question.id, "help_text", question.help_text, answers),
        suffix=question.suffix,
        category=question.category
    )
