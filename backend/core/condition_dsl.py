"""
Condition DSL - Declarative predicates over the answer map

Responsibilities:
- Evaluate DSL condition structures against collected answers
- Validate DSL structures at catalog load time
- Compile DSL structures into predicates usable by the catalog

Design principles:
- Pure functions: answers are never modified
- Missing answers evaluate to False (no answer = condition not met)
- Unknown operators are rejected at load time and evaluate False at runtime

Supported operators:
    all, any, not                       logical
    eq, ne, in                          comparison
    contains, contains_lower            membership / substring
    answered, exists, is_true, is_false presence / boolean
    gt, gte, lt, lte                    numeric comparison

Example:
    {"all": [
        {"eq": ["Q1-3-multi", "はい、他にもあります"]},
        {"gte": ["Q1-4", 1]}
    ]}
"""

import logging
from typing import Any, Callable, List, Mapping

logger = logging.getLogger(__name__)

LOGICAL_OPERATORS = {"all", "any", "not"}
PAIR_OPERATORS = {"eq", "ne", "in", "contains", "contains_lower", "gt", "gte", "lt", "lte"}
FIELD_OPERATORS = {"answered", "exists", "is_true", "is_false"}
SUPPORTED_OPERATORS = LOGICAL_OPERATORS | PAIR_OPERATORS | FIELD_OPERATORS


def is_blank(value: Any) -> bool:
    """Empty string, whitespace, empty container or None."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (list, tuple, set, dict)):
        return len(value) == 0
    return False


def _compare_numeric(value: Any, threshold: Any, op: Callable[[float, float], bool]) -> bool:
    if value is None or isinstance(value, bool):
        return False
    try:
        return op(float(value), float(threshold))
    except (TypeError, ValueError):
        return False


def evaluate_dsl(dsl: dict, answers: Mapping[str, Any]) -> bool:
    """
    Evaluate DSL condition structure.

    Args:
        dsl: DSL condition dict (single operator per level)
        answers: Current answer map

    Returns:
        bool: Evaluation result
    """
    if not dsl:
        return True  # Empty condition is vacuously true

    # Logical operators
    if "all" in dsl:
        conditions = dsl["all"]
        if not conditions:
            return True
        return all(evaluate_dsl(sub, answers) for sub in conditions)

    if "any" in dsl:
        conditions = dsl["any"]
        if not conditions:
            return False
        return any(evaluate_dsl(sub, answers) for sub in conditions)

    if "not" in dsl:
        return not evaluate_dsl(dsl["not"], answers)

    # Comparison operators
    if "eq" in dsl:
        field, expected = dsl["eq"]
        return answers.get(field) == expected

    if "ne" in dsl:
        field, expected = dsl["ne"]
        return answers.get(field) != expected

    if "in" in dsl:
        field, allowed = dsl["in"]
        if field not in answers:
            return False
        return answers[field] in allowed

    # Membership: list answers contain the item, string answers contain the substring
    if "contains" in dsl:
        field, item = dsl["contains"]
        value = answers.get(field)
        if isinstance(value, (list, tuple, set)):
            return item in value
        if isinstance(value, str):
            return str(item) in value
        return False

    if "contains_lower" in dsl:
        field, substring = dsl["contains_lower"]
        value = answers.get(field)
        if not isinstance(value, str):
            return False
        return substring.lower() in value.lower()

    # Presence operators
    if "answered" in dsl:
        field = dsl["answered"]
        return field in answers and not is_blank(answers[field])

    if "exists" in dsl:
        field = dsl["exists"]
        return field in answers and answers[field] is not None

    # Boolean operators
    if "is_true" in dsl:
        return answers.get(dsl["is_true"]) is True

    if "is_false" in dsl:
        return answers.get(dsl["is_false"]) is False

    # Numeric comparison operators
    if "gte" in dsl:
        field, threshold = dsl["gte"]
        return _compare_numeric(answers.get(field), threshold, lambda a, b: a >= b)

    if "gt" in dsl:
        field, threshold = dsl["gt"]
        return _compare_numeric(answers.get(field), threshold, lambda a, b: a > b)

    if "lte" in dsl:
        field, threshold = dsl["lte"]
        return _compare_numeric(answers.get(field), threshold, lambda a, b: a <= b)

    if "lt" in dsl:
        field, threshold = dsl["lt"]
        return _compare_numeric(answers.get(field), threshold, lambda a, b: a < b)

    logger.warning(f"Unknown DSL operator: {list(dsl.keys())}")
    return False


def validate_dsl(dsl: Any, path: str = "condition") -> List[str]:
    """
    Check a DSL structure without evaluating it.

    Args:
        dsl: Candidate DSL structure
        path: Location used in error messages

    Returns:
        list[str]: Problems found (empty if valid)
    """
    if dsl is None or dsl == {}:
        return []

    if not isinstance(dsl, dict):
        return [f"{path}: expected object, got {type(dsl).__name__}"]

    if len(dsl) != 1:
        return [f"{path}: expected exactly one operator, got {sorted(dsl.keys())}"]

    errors = []
    operator, operand = next(iter(dsl.items()))

    if operator not in SUPPORTED_OPERATORS:
        return [f"{path}: unknown operator '{operator}'"]

    if operator in ("all", "any"):
        if not isinstance(operand, list):
            errors.append(f"{path}.{operator}: expected list")
        else:
            for i, sub in enumerate(operand):
                errors.extend(validate_dsl(sub, f"{path}.{operator}[{i}]"))
    elif operator == "not":
        if not isinstance(operand, dict) or not operand:
            errors.append(f"{path}.not: expected non-empty object")
        else:
            errors.extend(validate_dsl(operand, f"{path}.not"))
    elif operator in PAIR_OPERATORS:
        if not isinstance(operand, list) or len(operand) != 2:
            errors.append(f"{path}.{operator}: expected [field, value]")
        elif operator == "in" and not isinstance(operand[1], list):
            errors.append(f"{path}.in: expected list of allowed values")
    elif not isinstance(operand, str):
        errors.append(f"{path}.{operator}: expected field name")

    return errors


def referenced_fields(dsl: Any) -> List[str]:
    """Question ids a DSL structure reads, in order of appearance."""
    if not isinstance(dsl, dict):
        return []

    fields = []
    for operator, operand in dsl.items():
        if operator in ("all", "any"):
            for sub in operand or []:
                fields.extend(referenced_fields(sub))
        elif operator == "not":
            fields.extend(referenced_fields(operand))
        elif operator in PAIR_OPERATORS and isinstance(operand, list) and operand:
            fields.append(operand[0])
        elif operator in FIELD_OPERATORS and isinstance(operand, str):
            fields.append(operand)
    return fields


def compile_condition(dsl: dict) -> Callable[[Mapping[str, Any]], bool]:
    """Bind a DSL structure into a predicate over answers."""
    def predicate(answers: Mapping[str, Any]) -> bool:
        return evaluate_dsl(dsl, answers)
    return predicate
