"""
Answer Validator - Declarative per-question answer rules

Responsibilities:
- Validate rule sets at catalog load time
- Build validators (value, answers) -> ValidationResult from rule sets
- Apply a question's validator plus the required check

Rule keys:
    required                 bool
    min, max                 numeric bounds
    is_integer               bool
    min_length, max_length   text length bounds
    min_selections,
    max_selections           multi_choice bounds
    not_in_future            date answers must not be after today
    error_message            message used when a bound check fails
    reject_if                [{"condition": DSL, "message": str}]
    warn_if                  [{"condition": DSL, "message": str}]

reject_if / warn_if conditions see the answer map plus the candidate
answer under the key '$value'.
"""

import logging
import math
from datetime import date
from typing import Any, Callable, List, Mapping

from backend.contracts import ValidationResult
from backend.core.condition_dsl import evaluate_dsl, validate_dsl, is_blank

logger = logging.getLogger(__name__)

VALUE_KEY = "$value"
REQUIRED_MESSAGE = "この質問への回答は必須です。"

KNOWN_RULES = {
    "required", "min", "max", "is_integer", "min_length", "max_length",
    "min_selections", "max_selections", "not_in_future", "error_message",
    "reject_if", "warn_if",
}

Validator = Callable[[Any, Mapping[str, Any]], ValidationResult]


def _today() -> date:
    return date.today()


def validate_rules(rules: Mapping[str, Any], path: str = "validation") -> List[str]:
    """
    Check a rule set without applying it.

    Returns:
        list[str]: Problems found (empty if valid)
    """
    if not isinstance(rules, dict):
        return [f"{path}: expected object"]

    errors = []
    for key in rules:
        if key not in KNOWN_RULES:
            errors.append(f"{path}: unknown rule '{key}'")

    for key in ("min", "max", "min_length", "max_length", "min_selections", "max_selections"):
        if key in rules and (isinstance(rules[key], bool) or not isinstance(rules[key], (int, float))):
            errors.append(f"{path}.{key}: expected number")

    for key in ("reject_if", "warn_if"):
        entries = rules.get(key, [])
        if not isinstance(entries, list):
            errors.append(f"{path}.{key}: expected list")
            continue
        for i, entry in enumerate(entries):
            if not isinstance(entry, dict) or "condition" not in entry or "message" not in entry:
                errors.append(f"{path}.{key}[{i}]: expected {{condition, message}}")
                continue
            errors.extend(validate_dsl(entry["condition"], f"{path}.{key}[{i}].condition"))

    return errors


def _check_bounds(rules: Mapping[str, Any], value: Any) -> str:
    """Return a failure message for the first violated bound, '' if none."""
    fallback = rules.get("error_message", "")

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if not math.isfinite(value):
            return fallback or "数値で入力してください。"
        if rules.get("is_integer") and float(value) != int(value):
            return fallback or "整数で入力してください。"
        if "min" in rules and value < rules["min"]:
            return fallback or f"{rules['min']}以上の値を入力してください。"
        if "max" in rules and value > rules["max"]:
            return fallback or f"{rules['max']}以下の値を入力してください。"

    if isinstance(value, str):
        length = len(value.strip())
        if "min_length" in rules and length < rules["min_length"]:
            return fallback or f"{rules['min_length']}文字以上で入力してください。"
        if "max_length" in rules and length > rules["max_length"]:
            return fallback or f"{rules['max_length']}文字以内で入力してください。"
        if rules.get("not_in_future"):
            try:
                if date.fromisoformat(value) > _today():
                    return fallback or "未来の日付は入力できません。"
            except ValueError:
                return "日付はYYYY-MM-DD形式で入力してください。"

    if isinstance(value, (list, tuple)):
        if "min_selections" in rules and len(value) < rules["min_selections"]:
            return fallback or f"少なくとも{rules['min_selections']}つ選択してください。"
        if "max_selections" in rules and len(value) > rules["max_selections"]:
            return fallback or f"{rules['max_selections']}つ以内で選択してください。"

    return ""


def build_validator(rules: Mapping[str, Any]) -> Validator:
    """
    Compile a rule set into a validator.

    Args:
        rules: Rule set (see module docstring)

    Returns:
        Callable (value, answers) -> ValidationResult
    """
    rules = dict(rules)

    def validator(value: Any, answers: Mapping[str, Any]) -> ValidationResult:
        if is_blank(value):
            if rules.get("required"):
                return ValidationResult(is_valid=False, message=REQUIRED_MESSAGE)
            # Optional question left empty: nothing else to check
            return ValidationResult(is_valid=True)

        message = _check_bounds(rules, value)
        if message:
            return ValidationResult(is_valid=False, message=message)

        scope = dict(answers)
        scope[VALUE_KEY] = value

        for entry in rules.get("reject_if", []):
            if evaluate_dsl(entry["condition"], scope):
                return ValidationResult(is_valid=False, message=entry["message"])

        warnings = [
            entry["message"] for entry in rules.get("warn_if", [])
            if evaluate_dsl(entry["condition"], scope)
        ]
        return ValidationResult(is_valid=True, warning="\n\n".join(warnings))

    return validator


def validate_answer(question, value: Any, answers: Mapping[str, Any]) -> ValidationResult:
    """
    Validate a candidate answer for a question.

    Args:
        question: QuestionDefinition being answered
        value: Parsed candidate answer
        answers: Answers collected so far (not modified)

    Returns:
        ValidationResult

    Note:
        A validator that raises is logged and the answer is accepted.
    """
    if question.required and is_blank(value):
        return ValidationResult(is_valid=False, message=REQUIRED_MESSAGE)

    if question.validation is None:
        return ValidationResult(is_valid=True)

    try:
        result = question.validation(value, dict(answers))
    except Exception as e:
        logger.error(f"Validator for question '{question.id}' failed: {e}")
        return ValidationResult(is_valid=True)

    if not isinstance(result, ValidationResult):
        logger.warning(
            f"Validator for question '{question.id}' returned {type(result).__name__}, "
            f"expected ValidationResult"
        )
        return ValidationResult(is_valid=bool(result))

    return result
