"""
Test Suite for the Question Selector

Run with: pytest tests/test_question_selector.py
"""

import logging
import unittest

import pytest

from backend.core.question_catalog import (
    ComputedField,
    InvalidCatalog,
    LiteralField,
    QuestionCatalog,
    QuestionDefinition,
)
from backend.core.question_selector import (
    QuestionSelector,
    is_complete,
    progress,
    select_next_question,
)


def q(q_id, priority=0, **kwargs):
    """Shorthand for a literal-text question."""
    return QuestionDefinition(id=q_id, text=LiteralField(f"{q_id}?"), priority=priority, **kwargs)


def always(value):
    return ComputedField(fn=lambda answers: value)


def raising(answers):
    raise KeyError("Q1-1")


# =============================================================================
# PART 1: Selection
# =============================================================================

class TestSelectNextQuestion(unittest.TestCase):
    """Eligibility and ordering."""

    def setUp(self):
        self.catalog = [
            q("A", priority=1, required=True),
            q("B", priority=2, required=True, dependencies=["A"]),
        ]

    def test_dependency_chain(self):
        """A first, B once A is answered, then complete."""
        self.assertEqual(select_next_question(self.catalog, {}).id, "A")
        self.assertEqual(select_next_question(self.catalog, {"A": "x"}).id, "B")
        self.assertIsNone(select_next_question(self.catalog, {"A": "x", "B": "y"}))

    def test_dependency_blocks_lower_priority(self):
        catalog = [q("A", priority=5), q("B", priority=1, dependencies=["A"])]
        self.assertEqual(select_next_question(catalog, {}).id, "A")

    def test_lowest_priority_wins(self):
        catalog = [q("five", priority=5), q("three", priority=3)]
        self.assertEqual(select_next_question(catalog, {}).id, "three")

    def test_tie_broken_by_catalog_order(self):
        catalog = [q("first", priority=1), q("second", priority=1)]
        self.assertEqual(select_next_question(catalog, {}).id, "first")

    def test_fractional_priority(self):
        catalog = [q("Q1-4", priority=6), q("Q1-3-other", priority=5.6)]
        self.assertEqual(select_next_question(catalog, {}).id, "Q1-3-other")

    def test_false_condition_skips_question(self):
        catalog = [q("C", priority=1, required=True, condition=always(False)), q("D", priority=2)]
        self.assertEqual(select_next_question(catalog, {}).id, "D")

    def test_condition_reads_answers(self):
        catalog = [
            q("Q1-3-multi", priority=5.5),
            q("Q1-3-other", priority=5.6, dependencies=["Q1-3-multi"],
              condition=ComputedField(fn=lambda a: a.get("Q1-3-multi") == "はい、他にもあります")),
        ]
        self.assertIsNone(select_next_question(catalog, {"Q1-3-multi": "いいえ、これだけです"}))
        self.assertEqual(
            select_next_question(catalog, {"Q1-3-multi": "はい、他にもあります"}).id,
            "Q1-3-other"
        )

    def test_answered_key_with_empty_value_is_not_reasked(self):
        catalog = [q("optional", priority=1), q("next", priority=2)]
        self.assertEqual(select_next_question(catalog, {"optional": None}).id, "next")

    def test_raising_condition_makes_question_ineligible(self):
        catalog = [q("bad", priority=1, condition=ComputedField(fn=raising)), q("good", priority=2)]
        with self.assertLogs("backend.core.question_selector", level=logging.ERROR):
            result = select_next_question(catalog, {})
        self.assertEqual(result.id, "good")

    def test_bad_computed_options_do_not_escape(self):
        catalog = [q("c", type="single_choice", options=always(5))]
        with self.assertLogs("backend.core.template_resolver", level=logging.ERROR):
            result = select_next_question(catalog, {})
        self.assertEqual(result.id, "c")
        self.assertEqual(result.options, ())

    def test_idempotent(self):
        answers = {"A": "x"}
        first = select_next_question(self.catalog, answers)
        second = select_next_question(self.catalog, answers)
        self.assertEqual(first, second)

    def test_answers_not_mutated(self):
        answers = {"A": ["x"]}
        select_next_question(self.catalog, answers)
        self.assertEqual(answers, {"A": ["x"]})

    def test_result_is_resolved(self):
        catalog = [QuestionDefinition(
            id="Q2-2",
            text=ComputedField(fn=lambda a: f"「{a['Q2-1']}」の年間売上高は？"),
            dependencies=("Q2-1",)
        ), q("Q2-1", priority=-1)]
        resolved = select_next_question(catalog, {"Q2-1": "ランチ"})
        self.assertEqual(resolved.text, "「ランチ」の年間売上高は？")
        self.assertIsInstance(resolved.text, str)


# =============================================================================
# PART 2: Catalog defects
# =============================================================================

class TestCatalogDefects(unittest.TestCase):

    def test_dangling_dependency_raises(self):
        with self.assertRaises(InvalidCatalog):
            select_next_question([q("B", dependencies=["missing"])], {})

    def test_dependency_cycle_raises(self):
        catalog = [q("A", dependencies=["B"]), q("B", dependencies=["A"])]
        with self.assertRaises(InvalidCatalog):
            select_next_question(catalog, {})

    def test_duplicate_id_raises(self):
        with self.assertRaises(InvalidCatalog):
            QuestionCatalog.from_questions([q("A"), q("A")])


# =============================================================================
# PART 3: Completion
# =============================================================================

class TestIsComplete(unittest.TestCase):

    def test_required_unanswered(self):
        self.assertFalse(is_complete([q("A", required=True)], {}))

    def test_blank_answer_does_not_satisfy_required(self):
        self.assertFalse(is_complete([q("A", required=True)], {"A": "  "}))
        self.assertFalse(is_complete([q("A", required=True)], {"A": []}))

    def test_required_but_inapplicable_is_satisfied(self):
        catalog = [q("C", required=True, condition=always(False))]
        self.assertTrue(is_complete(catalog, {}))

    def test_optional_questions_ignored(self):
        self.assertTrue(is_complete([q("A", required=False)], {}))

    def test_raising_condition_counts_as_inapplicable(self):
        catalog = [q("bad", required=True, condition=ComputedField(fn=raising))]
        self.assertTrue(is_complete(catalog, {}))

    def test_progress_ratio(self):
        catalog = [q("A", required=True), q("B", required=True), q("C", required=True, condition=always(False))]
        result = progress(catalog, {"A": "x"})
        self.assertEqual(result["answered_required"], 1)
        self.assertEqual(result["total_required"], 2)
        self.assertEqual(result["ratio"], 0.5)
        self.assertEqual(result["missing"], ["B"])

    def test_progress_nothing_required(self):
        self.assertEqual(progress([q("A")], {})["ratio"], 1.0)


# =============================================================================
# PART 4: Phases and the selector class
# =============================================================================

@pytest.fixture
def phased_catalog():
    return QuestionCatalog(
        phases={
            "basic": [q("A", priority=1, required=True)],
            "plan": [q("P", priority=1, required=True), q("A2", priority=0, dependencies=["A"])],
        },
        phase_order=["basic", "plan"],
        phase_titles={"basic": "基本情報", "plan": "計画"}
    )


def test_selection_restricted_to_phase(phased_catalog):
    assert select_next_question(phased_catalog, {}, phase="plan").id == "P"
    assert select_next_question(phased_catalog, {"A": "x"}, phase="plan").id == "A2"
    assert select_next_question(phased_catalog, {"A": "x"}, phase="basic") is None


def test_unknown_phase_raises(phased_catalog):
    with pytest.raises(KeyError):
        select_next_question(phased_catalog, {}, phase="missing")


def test_selector_phase_helpers(phased_catalog):
    selector = QuestionSelector(phased_catalog)

    assert selector.first_incomplete_phase({}) == "basic"
    assert selector.first_incomplete_phase({"A": "x"}) == "plan"
    assert selector.is_phase_complete("basic", {"A": "x"})
    assert not selector.are_all_phases_complete({"A": "x"})
    assert selector.are_all_phases_complete({"A": "x", "P": "y"})
    assert selector.first_incomplete_phase({"A": "x", "P": "y"}) is None


def test_selector_requires_catalog():
    with pytest.raises(TypeError):
        QuestionSelector([q("A")])


def test_answering_never_reopens_answered_questions():
    """Walking the flow to the end asks every applicable question exactly once."""
    catalog = [
        q("A", priority=1),
        q("B", priority=2, dependencies=["A"]),
        q("C", priority=1.5, condition=ComputedField(fn=lambda a: a.get("A") == "yes")),
        q("D", priority=3, dependencies=["B"]),
    ]
    answers = {}
    asked = []
    for _ in range(10):
        nxt = select_next_question(catalog, answers)
        if nxt is None:
            break
        assert nxt.id not in answers
        asked.append(nxt.id)
        answers[nxt.id] = "yes"

    assert asked == ["A", "C", "B", "D"]
    assert select_next_question(catalog, answers) is None
