"""
Answer Parser - Coerce raw user input into typed answer values

Responsibilities:
- Convert raw input (console text or JSON value) to the question's type
- Tolerate full-width characters, thousands separators and unit suffixes
- Accept choices by label or by 1-based index

Blank input parses to None; whether that is acceptable is decided by
the validator (required check), not here.
"""

import json
import logging
import math
import re
import unicodedata
from datetime import date
from typing import Any, List

from backend.contracts import ResolvedQuestion

logger = logging.getLogger(__name__)

LIST_SEPARATORS = re.compile(r"[,、]")


class AnswerFormatError(ValueError):
    """Raw input cannot be read as the question's type."""


def _normalize(raw: str) -> str:
    return unicodedata.normalize("NFKC", raw).strip()


def _parse_number(question: ResolvedQuestion, raw: Any) -> Any:
    if isinstance(raw, bool):
        raise AnswerFormatError("数値で入力してください。")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        if not math.isfinite(raw):
            raise AnswerFormatError("数値で入力してください。")
        return raw

    text = _normalize(str(raw))
    if question.suffix:
        text = text.replace(_normalize(question.suffix), "")
    text = text.replace(",", "").strip()
    if not text:
        return None

    try:
        number = float(text)
    except ValueError:
        raise AnswerFormatError("数値で入力してください。")
    # float() also reads "nan", "inf" and overflowing exponents
    if not math.isfinite(number):
        raise AnswerFormatError("数値で入力してください。")
    return int(number) if number.is_integer() else number


def _match_option(options: tuple, token: str) -> Any:
    """Find an option by exact label, normalized label, or 1-based index."""
    if token in options:
        return token

    normalized = _normalize(token)
    for option in options:
        if _normalize(str(option)) == normalized:
            return option

    if normalized.isdigit():
        index = int(normalized)
        if 1 <= index <= len(options):
            return options[index - 1]

    raise AnswerFormatError(f"選択肢から選んでください: {token}")


def _parse_single_choice(question: ResolvedQuestion, raw: Any) -> Any:
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return None
    return _match_option(question.options, str(raw).strip())


def _parse_multi_choice(question: ResolvedQuestion, raw: Any) -> List[Any]:
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        tokens = [str(item).strip() for item in raw]
    else:
        tokens = [t.strip() for t in LIST_SEPARATORS.split(_normalize(str(raw)))]

    selected = []
    for token in tokens:
        if not token:
            continue
        option = _match_option(question.options, token)
        if option not in selected:
            selected.append(option)
    return selected


def _parse_date(raw: Any) -> Any:
    if isinstance(raw, date):
        return raw.isoformat()
    text = _normalize(str(raw or "")).replace("/", "-")
    if not text:
        return None
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError:
        raise AnswerFormatError("日付はYYYY-MM-DD形式で入力してください。")


def _parse_structured(raw: Any) -> Any:
    if raw is None or isinstance(raw, dict):
        return raw
    text = str(raw).strip()
    if not text:
        return None
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        raise AnswerFormatError("入力内容を読み取れませんでした。")
    if not isinstance(value, dict):
        raise AnswerFormatError("入力内容を読み取れませんでした。")
    return value


def parse_answer(question: ResolvedQuestion, raw: Any) -> Any:
    """
    Parse raw input for a question.

    Args:
        question: Resolved question being answered (options resolved)
        raw: Raw input - str from console/forms, or a JSON value

    Returns:
        Typed value: str, int/float, list, ISO date str, dict, or None if blank

    Raises:
        AnswerFormatError: If the input doesn't fit the question type
    """
    q_type = question.type

    if q_type == "number":
        return _parse_number(question, raw)
    if q_type == "single_choice":
        return _parse_single_choice(question, raw)
    if q_type == "multi_choice":
        return _parse_multi_choice(question, raw)
    if q_type == "date":
        return _parse_date(raw)
    if q_type == "structured":
        return _parse_structured(raw)

    if raw is None:
        return None
    return str(raw).strip()
