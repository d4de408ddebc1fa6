"""
Question Catalog - Immutable question definitions for the interview

Responsibilities:
- Define the QuestionDefinition record and its dynamic field variants
- Load the JSON catalog (phases, questions, draft sections)
- Validate catalog structure on load (fail fast, never repair)

Design principles:
- Immutable after load: frozen dataclasses, tuples, read-only mappings
- Dynamic fields are explicit variants: LiteralField or ComputedField
- Structural defects raise InvalidCatalog before any question is selected

Catalog file layout:
    {
        "version": "1.0",
        "phase_order": ["eligibility", ...],
        "phases": {
            "eligibility": {"title": "...", "questions": [ {...}, ... ]}
        },
        "draft_sections": [ {"id": "...", "title": "...", "phases": [...]} ]
    }
"""

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from string import Formatter
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from backend.core.condition_dsl import compile_condition, referenced_fields, validate_dsl
from backend.core.answer_validator import VALUE_KEY, build_validator, validate_rules

logger = logging.getLogger(__name__)

QUESTION_TYPES = (
    "text",
    "single_choice",
    "multi_choice",
    "number",
    "date",
    "structured",
)

DEFAULT_PHASE = "default"


class InvalidCatalog(ValueError):
    """Structural defect in the question catalog (duplicate id, dangling reference, ...)."""


class ConditionEvaluationError(Exception):
    """A condition or template function raised while being evaluated."""

    def __init__(self, question_id: str, field_name: str, cause: Exception):
        self.question_id = question_id
        self.field_name = field_name
        self.cause = cause
        super().__init__(
            f"{field_name} of question '{question_id}' failed: {type(cause).__name__}: {cause}"
        )


@dataclass(frozen=True)
class LiteralField:
    """A field whose value is fixed in the catalog."""
    value: Any


@dataclass(frozen=True)
class ComputedField:
    """
    A field computed from the answers collected so far.

    Attributes:
        fn: Pure function of the answer map
        source: What the function was built from (DSL dict, template
            string, ...). Kept for logging and export only.
    """
    fn: Callable[[Mapping[str, Any]], Any]
    source: Any = field(default=None, compare=False)


DynamicField = Union[LiteralField, ComputedField]


@dataclass(frozen=True)
class QuestionDefinition:
    """
    Static description of one prompt and its eligibility rules.

    Attributes:
        id: Unique question identifier (e.g. 'Q1-3-other')
        text: Prompt shown to the user
        type: Input kind, one of QUESTION_TYPES
        priority: Ordering key, lower is asked first
        required: Must be answered before the phase is complete
        dependencies: Question ids that must be answered first
        condition: Predicate over answers; False means not applicable
        options: Choices for single_choice / multi_choice questions
        placeholder: Input hint
        help_text: Longer explanation shown under the prompt
        suffix: Unit shown after the input (e.g. '万円')
        validation: Callable (value, answers) -> ValidationResult
        phase: Name of the phase the question belongs to
        category: Free-form grouping label
    """
    id: str
    text: DynamicField
    type: str = "text"
    priority: float = 0
    required: bool = False
    dependencies: Tuple[str, ...] = ()
    condition: Optional[ComputedField] = None
    options: Optional[DynamicField] = None
    placeholder: Optional[DynamicField] = None
    help_text: Optional[DynamicField] = None
    suffix: Optional[str] = None
    validation: Optional[Callable[..., Any]] = field(default=None, compare=False)
    phase: Optional[str] = None
    category: Optional[str] = None

    def __post_init__(self):
        for name in ("text", "options", "placeholder", "help_text"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, (LiteralField, ComputedField)):
                raise TypeError(
                    f"Question '{self.id}': {name} must be LiteralField or ComputedField, "
                    f"got {type(value).__name__}"
                )
        if self.condition is not None and not isinstance(self.condition, ComputedField):
            raise TypeError(f"Question '{self.id}': condition must be ComputedField")
        if not isinstance(self.dependencies, tuple):
            object.__setattr__(self, "dependencies", tuple(self.dependencies))


def validate_questions(questions: Sequence[QuestionDefinition]) -> None:
    """
    Check ids, dependency references and dependency cycles.

    Raises:
        InvalidCatalog: Listing every problem found
    """
    errors = []
    seen = set()

    for i, question in enumerate(questions):
        if not question.id:
            errors.append(f"Question at index {i} missing 'id'")
            continue
        if question.id in seen:
            errors.append(f"Duplicate question id '{question.id}'")
        seen.add(question.id)

        if question.type not in QUESTION_TYPES:
            errors.append(f"Question '{question.id}' has unknown type '{question.type}'")

    for question in questions:
        for dep_id in question.dependencies:
            if dep_id not in seen:
                errors.append(f"Question '{question.id}' depends on unknown question '{dep_id}'")
            elif dep_id == question.id:
                errors.append(f"Question '{question.id}' depends on itself")

    if not errors:
        cycle = _find_dependency_cycle(questions)
        if cycle:
            errors.append(f"Dependency cycle: {' -> '.join(cycle)}")

    if errors:
        raise InvalidCatalog("Catalog validation failed:\n  - " + "\n  - ".join(errors))


def _find_dependency_cycle(questions: Sequence[QuestionDefinition]) -> Optional[List[str]]:
    """Return one dependency cycle as a list of ids, or None."""
    graph = {q.id: q.dependencies for q in questions}
    visiting, done = set(), set()
    stack: List[str] = []

    def visit(node: str) -> Optional[List[str]]:
        visiting.add(node)
        stack.append(node)
        for dep in graph.get(node, ()):
            if dep in visiting:
                return stack[stack.index(dep):] + [dep]
            if dep not in done:
                found = visit(dep)
                if found:
                    return found
        visiting.discard(node)
        done.add(node)
        stack.pop()
        return None

    for node in graph:
        if node not in done:
            found = visit(node)
            if found:
                return found
    return None


class QuestionCatalog:
    """
    Immutable, validated set of questions grouped into ordered phases.

    Built once at startup and shared read-only between sessions.
    """

    def __init__(
        self,
        phases: Mapping[str, Sequence[QuestionDefinition]],
        phase_order: Sequence[str],
        phase_titles: Optional[Mapping[str, str]] = None,
        draft_sections: Sequence[Mapping[str, Any]] = (),
        version: str = "unknown"
    ):
        """
        Args:
            phases: Phase name -> questions in catalog order
            phase_order: Order in which phases are walked
            phase_titles: Display names per phase
            draft_sections: Application sections drafted from answers
            version: Catalog version string

        Raises:
            InvalidCatalog: If the structure is inconsistent
        """
        errors = []
        if not phase_order:
            errors.append("Missing 'phase_order'")
        for name in phase_order:
            if name not in phases:
                errors.append(f"Phase '{name}' in phase_order but not defined in phases")
        if len(set(phase_order)) != len(phase_order):
            errors.append("Duplicate phase in phase_order")
        section_ids = set()
        for i, section in enumerate(draft_sections):
            for key in ("id", "title"):
                if not section.get(key):
                    errors.append(f"Draft section at index {i} missing '{key}'")
            if section.get("id") and section["id"] in section_ids:
                errors.append(f"Duplicate draft section id '{section['id']}'")
            section_ids.add(section.get("id"))
            for name in section.get("phases", []):
                if name not in phases:
                    errors.append(
                        f"Draft section '{section.get('id')}' references undefined phase '{name}'"
                    )
        if errors:
            raise InvalidCatalog("Catalog validation failed:\n  - " + "\n  - ".join(errors))

        self.version = version
        self.phase_order: Tuple[str, ...] = tuple(phase_order)
        self.phase_titles = MappingProxyType(dict(phase_titles or {}))
        self.draft_sections: Tuple[Mapping[str, Any], ...] = tuple(
            MappingProxyType(dict(s)) for s in draft_sections
        )

        ordered = {}
        for name in self.phase_order:
            ordered[name] = tuple(
                q if q.phase == name else replace(q, phase=name) for q in phases[name]
            )
        self.phases: Mapping[str, Tuple[QuestionDefinition, ...]] = MappingProxyType(ordered)
        self.questions: Tuple[QuestionDefinition, ...] = tuple(
            q for name in self.phase_order for q in ordered[name]
        )

        validate_questions(self.questions)

        self._by_id = MappingProxyType({q.id: q for q in self.questions})
        logger.info(
            f"Question catalog {version} loaded: {len(self.phase_order)} phases, "
            f"{len(self.questions)} questions"
        )

    @classmethod
    def from_questions(
        cls,
        questions: Sequence[QuestionDefinition],
        phase: str = DEFAULT_PHASE
    ) -> "QuestionCatalog":
        """Single-phase catalog from a plain sequence of questions."""
        return cls(phases={phase: list(questions)}, phase_order=[phase])

    def get(self, question_id: str) -> Optional[QuestionDefinition]:
        return self._by_id.get(question_id)

    def __contains__(self, question_id: str) -> bool:
        return question_id in self._by_id

    def __len__(self) -> int:
        return len(self.questions)

    def __iter__(self):
        return iter(self.questions)

    def phase_questions(self, phase: Optional[str] = None) -> Tuple[QuestionDefinition, ...]:
        """
        Questions of one phase, or all questions when phase is None.

        Raises:
            KeyError: If the phase is not defined
        """
        if phase is None:
            return self.questions
        if phase not in self.phases:
            raise KeyError(f"Unknown phase: {phase}")
        return self.phases[phase]

    def phase_title(self, phase: str) -> str:
        return self.phase_titles.get(phase, phase)

    def next_phase(self, phase: str) -> Optional[str]:
        """Phase following `phase` in phase_order, None after the last one."""
        index = self.phase_order.index(phase)
        if index + 1 < len(self.phase_order):
            return self.phase_order[index + 1]
        return None


def as_catalog(catalog: Union[QuestionCatalog, Sequence[QuestionDefinition]]) -> QuestionCatalog:
    """Accept a built catalog or validate a raw sequence of questions into one."""
    if isinstance(catalog, QuestionCatalog):
        return catalog
    return QuestionCatalog.from_questions(list(catalog))


# =============================================================================
# JSON loading
# =============================================================================

def _template_field(template: str) -> ComputedField:
    def render(answers: Mapping[str, Any]) -> str:
        return template.format_map(answers)
    return ComputedField(fn=render, source=template)


def _options_from_field(question_id: str) -> ComputedField:
    def options(answers: Mapping[str, Any]) -> list:
        value = answers.get(question_id)
        if value is None:
            return []
        return list(value) if isinstance(value, (list, tuple)) else [value]
    return ComputedField(fn=options, source={"options_from": question_id})


def _build_question(raw: Mapping[str, Any], phase: str, index: int, errors: List[str]) -> Optional[QuestionDefinition]:
    """Convert one JSON question into a QuestionDefinition, collecting errors."""
    q_id = raw.get("id")
    if not q_id:
        errors.append(f"Question at index {index} in phase '{phase}' missing 'id'")
        return None

    if "text" in raw:
        text: DynamicField = LiteralField(raw["text"])
    elif "text_template" in raw:
        text = _template_field(raw["text_template"])
    else:
        errors.append(f"Question '{q_id}' has neither 'text' nor 'text_template'")
        return None

    options = None
    if "options" in raw:
        if not isinstance(raw["options"], list):
            errors.append(f"Question '{q_id}' options must be a list")
            return None
        options = LiteralField(tuple(raw["options"]))
    elif "options_from" in raw:
        options = _options_from_field(raw["options_from"])

    q_type = raw.get("type", "text")
    if q_type in ("single_choice", "multi_choice") and options is None:
        errors.append(f"Question '{q_id}' of type '{q_type}' has no options")

    condition = None
    if raw.get("condition"):
        dsl_errors = validate_dsl(raw["condition"], path=f"{q_id}.condition")
        if dsl_errors:
            errors.extend(dsl_errors)
        else:
            condition = ComputedField(fn=compile_condition(raw["condition"]), source=raw["condition"])

    validation = None
    if raw.get("validation"):
        rule_errors = validate_rules(raw["validation"], path=f"{q_id}.validation")
        if rule_errors:
            errors.extend(rule_errors)
        else:
            validation = build_validator(raw["validation"])

    placeholder = raw.get("placeholder")
    help_text = raw.get("help_text")

    try:
        priority = float(raw.get("priority", 0))
    except (TypeError, ValueError):
        errors.append(f"Question '{q_id}' has non-numeric priority {raw.get('priority')!r}")
        return None

    return QuestionDefinition(
        id=q_id,
        text=text,
        type=q_type,
        priority=priority,
        required=bool(raw.get("required", False)),
        dependencies=tuple(raw.get("dependencies", [])),
        condition=condition,
        options=options,
        placeholder=LiteralField(placeholder) if placeholder is not None else None,
        help_text=LiteralField(help_text) if help_text is not None else None,
        suffix=raw.get("suffix"),
        validation=validation,
        phase=phase,
        category=raw.get("category")
    )


def _referenced_ids(raw: Mapping[str, Any]) -> List[str]:
    """Question ids a JSON question reads through conditions, rules, options_from and templates."""
    refs = referenced_fields(raw.get("condition"))
    rules = raw.get("validation") or {}
    for key in ("reject_if", "warn_if"):
        for entry in rules.get(key, []):
            refs.extend(referenced_fields(entry.get("condition")))
    if "options_from" in raw:
        refs.append(raw["options_from"])
    if "text_template" in raw:
        refs.extend(name for _, name, _, _ in Formatter().parse(raw["text_template"]) if name)
    return [ref for ref in refs if ref != VALUE_KEY]


def catalog_from_dict(data: Mapping[str, Any]) -> QuestionCatalog:
    """
    Build a catalog from its parsed JSON form.

    Raises:
        InvalidCatalog: If any question or reference is malformed
    """
    errors: List[str] = []
    phases: Dict[str, List[QuestionDefinition]] = {}
    titles: Dict[str, str] = {}
    raws = []

    for phase_name, phase_def in (data.get("phases") or {}).items():
        titles[phase_name] = phase_def.get("title", phase_name)
        built = []
        for i, raw in enumerate(phase_def.get("questions", [])):
            question = _build_question(raw, phase_name, i, errors)
            if question is not None:
                built.append(question)
                raws.append(raw)
        phases[phase_name] = built

    if not errors:
        known = {raw["id"] for raw in raws}
        for raw in raws:
            try:
                refs = _referenced_ids(raw)
            except ValueError as e:
                errors.append(f"Question '{raw['id']}' has a malformed text_template: {e}")
                continue
            for ref in refs:
                if ref not in known:
                    errors.append(f"Question '{raw['id']}' references unknown question '{ref}'")

    if errors:
        raise InvalidCatalog("Catalog validation failed:\n  - " + "\n  - ".join(errors))

    return QuestionCatalog(
        phases=phases,
        phase_order=data.get("phase_order") or [],
        phase_titles=titles,
        draft_sections=data.get("draft_sections", []),
        version=data.get("version", "unknown")
    )


def load_catalog(catalog_path: str) -> QuestionCatalog:
    """
    Load and validate the catalog JSON file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        InvalidCatalog: If the catalog is structurally invalid
    """
    path = Path(catalog_path)
    if not path.exists():
        raise FileNotFoundError(f"Question catalog not found: {catalog_path}")

    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    return catalog_from_dict(data)
