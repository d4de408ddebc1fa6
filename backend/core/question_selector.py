"""
Question Selector - Stateless next-question selection and completion checks

Responsibilities:
- Select the next question from the catalog given the collected answers
- Decide whether a phase (or the whole catalog) is complete
- Report display progress over required questions

Design principles:
- Stateless: all state comes from the answers parameter
- Deterministic: same (catalog, answers) always produces the same result
- Pure functions: answers are never modified
- Fail fast: catalogs are validated before any selection happens
- Condition failures degrade: the question is treated as ineligible

Eligibility:
    A question is eligible iff it has no answer yet, all of its
    dependencies have answers, and its condition (if any) is true.
    Among eligible questions the lowest priority wins; ties go to
    catalog order.

Completion:
    Every required question either has a non-empty answer, or has a
    condition that is currently false (not applicable). Required
    questions hidden by a false condition therefore count as satisfied,
    even when that condition reads answers that are still missing.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from backend.contracts import ResolvedQuestion
from backend.core.condition_dsl import is_blank
from backend.core.question_catalog import (
    ConditionEvaluationError,
    QuestionCatalog,
    QuestionDefinition,
    as_catalog,
)
from backend.core.template_resolver import resolve_question

logger = logging.getLogger(__name__)

CatalogLike = Union[QuestionCatalog, Sequence[QuestionDefinition]]


# =============================================================================
# Condition evaluation
# =============================================================================

def evaluate_condition(question: QuestionDefinition, answers: Mapping[str, Any]) -> Optional[bool]:
    """
    Evaluate a question's condition.

    Args:
        question: Question definition
        answers: Current answer map

    Returns:
        True/False for the condition result, None if there is no condition.

    Raises:
        ConditionEvaluationError: If the predicate itself raised
    """
    if question.condition is None:
        return None

    try:
        return bool(question.condition.fn(dict(answers)))
    except Exception as e:
        raise ConditionEvaluationError(question.id, "condition", e) from e


def is_applicable(question: QuestionDefinition, answers: Mapping[str, Any]) -> bool:
    """
    True unless the question's condition is false or failed.

    A failing condition is logged and the question treated as not
    applicable.
    """
    try:
        result = evaluate_condition(question, answers)
    except ConditionEvaluationError as e:
        logger.error(f"Treating question as ineligible: {e}")
        return False
    return result is None or result


def is_eligible(question: QuestionDefinition, answers: Mapping[str, Any]) -> bool:
    """Unanswered, dependencies answered, condition absent or true."""
    if question.id in answers:
        return False

    for dep_id in question.dependencies:
        if dep_id not in answers:
            return False

    return is_applicable(question, answers)


# =============================================================================
# Public API
# =============================================================================

def select_next_question(
    catalog: CatalogLike,
    answers: Mapping[str, Any],
    phase: Optional[str] = None
) -> Optional[ResolvedQuestion]:
    """
    Select the next question to present.

    Args:
        catalog: Validated QuestionCatalog, or a plain sequence of
            QuestionDefinition (validated on the spot)
        answers: Answer map {question_id: value}
        phase: Restrict selection to one phase (None = whole catalog)

    Returns:
        ResolvedQuestion with template fields resolved, or None when no
        question is eligible (flow complete).

    Raises:
        InvalidCatalog: If a plain sequence has duplicate ids, dangling
            dependencies or dependency cycles
        KeyError: If phase is not defined in the catalog
    """
    catalog = as_catalog(catalog)

    best = None
    best_key = None
    for index, question in enumerate(catalog.phase_questions(phase)):
        if not is_eligible(question, answers):
            continue
        key = (question.priority, index)
        if best_key is None or key < best_key:
            best, best_key = question, key

    if best is None:
        return None

    return resolve_question(best, answers)


def is_complete(
    catalog: CatalogLike,
    answers: Mapping[str, Any],
    phase: Optional[str] = None
) -> bool:
    """
    Check whether every required question is answered or not applicable.

    Args:
        catalog: QuestionCatalog or plain sequence of questions
        answers: Answer map
        phase: Restrict the check to one phase (None = whole catalog)

    Returns:
        True if complete
    """
    catalog = as_catalog(catalog)

    for question in catalog.phase_questions(phase):
        if not question.required:
            continue
        if not is_blank(answers.get(question.id)):
            continue
        if not is_applicable(question, answers):
            continue
        return False

    return True


def progress(
    catalog: CatalogLike,
    answers: Mapping[str, Any],
    phase: Optional[str] = None
) -> Dict[str, Any]:
    """
    Display progress over applicable required questions.

    Returns:
        dict: {
            'answered_required': int,
            'total_required': int,
            'ratio': float (1.0 when nothing is required),
            'missing': [question ids still needed]
        }
    """
    catalog = as_catalog(catalog)

    answered = 0
    total = 0
    missing = []
    for question in catalog.phase_questions(phase):
        if not question.required or not is_applicable(question, answers):
            continue
        total += 1
        if is_blank(answers.get(question.id)):
            missing.append(question.id)
        else:
            answered += 1

    return {
        'answered_required': answered,
        'total_required': total,
        'ratio': answered / total if total else 1.0,
        'missing': missing
    }


class QuestionSelector:
    """
    Stateless question selector bound to one catalog.

    Holds only the read-only catalog; safe to share across sessions.
    """

    def __init__(self, catalog: QuestionCatalog):
        """
        Args:
            catalog: Validated question catalog

        Raises:
            TypeError: If catalog is not a QuestionCatalog
        """
        if not isinstance(catalog, QuestionCatalog):
            raise TypeError("catalog must be QuestionCatalog instance")

        self.catalog = catalog
        logger.info(f"Question Selector initialized with {len(catalog.phase_order)} phases")

    def get_next_question(self, answers: Mapping[str, Any], phase: Optional[str] = None) -> Optional[ResolvedQuestion]:
        return select_next_question(self.catalog, answers, phase)

    def is_phase_complete(self, phase: str, answers: Mapping[str, Any]) -> bool:
        return is_complete(self.catalog, answers, phase)

    def is_complete(self, answers: Mapping[str, Any]) -> bool:
        return is_complete(self.catalog, answers)

    def are_all_phases_complete(self, answers: Mapping[str, Any]) -> bool:
        return all(self.is_phase_complete(name, answers) for name in self.catalog.phase_order)

    def first_incomplete_phase(self, answers: Mapping[str, Any]) -> Optional[str]:
        """First phase in phase_order that is not complete, None if all are."""
        for name in self.catalog.phase_order:
            if not self.is_phase_complete(name, answers):
                return name
        return None

    def get_progress(self, answers: Mapping[str, Any], phase: Optional[str] = None) -> Dict[str, Any]:
        return progress(self.catalog, answers, phase)
