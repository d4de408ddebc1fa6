"""
Test Suite for the Condition DSL

Run with: pytest tests/test_condition_dsl.py
"""

import unittest

from backend.core.condition_dsl import (
    compile_condition,
    evaluate_dsl,
    is_blank,
    referenced_fields,
    validate_dsl,
)


class TestDSLEvaluator(unittest.TestCase):
    """Test the DSL condition evaluation logic."""

    # -------------------------------------------------------------------------
    # eq / ne / in
    # -------------------------------------------------------------------------

    def test_eq_string_match(self):
        dsl = {"eq": ["Q1-3-multi", "はい、他にもあります"]}
        self.assertTrue(evaluate_dsl(dsl, {"Q1-3-multi": "はい、他にもあります"}))

    def test_eq_string_no_match(self):
        dsl = {"eq": ["Q1-3-multi", "はい、他にもあります"]}
        self.assertFalse(evaluate_dsl(dsl, {"Q1-3-multi": "いいえ、これだけです"}))

    def test_eq_missing_field(self):
        """eq operator returns False when field is missing."""
        self.assertFalse(evaluate_dsl({"eq": ["Q1-6", "法人"]}, {}))

    def test_ne_missing_field_is_true(self):
        self.assertTrue(evaluate_dsl({"ne": ["Q1-6", "法人"]}, {}))

    def test_in_operator(self):
        dsl = {"in": ["Q1-6", ["法人", "個人事業主"]]}
        self.assertTrue(evaluate_dsl(dsl, {"Q1-6": "法人"}))
        self.assertFalse(evaluate_dsl(dsl, {"Q1-6": "その他"}))
        self.assertFalse(evaluate_dsl(dsl, {}))

    # -------------------------------------------------------------------------
    # contains
    # -------------------------------------------------------------------------

    def test_contains_list_item(self):
        dsl = {"contains": ["Q1-9", "SNS広告・ネット広告"]}
        self.assertTrue(evaluate_dsl(dsl, {"Q1-9": ["SNS広告・ネット広告", "その他"]}))
        self.assertFalse(evaluate_dsl(dsl, {"Q1-9": ["その他"]}))

    def test_contains_substring(self):
        dsl = {"contains": ["Q1-1", "飲食店"]}
        self.assertTrue(evaluate_dsl(dsl, {"Q1-1": "飲食店（レストラン・カフェ・居酒屋等）"}))

    def test_contains_non_collection(self):
        self.assertFalse(evaluate_dsl({"contains": ["Q1-4", "3"]}, {"Q1-4": 3}))

    def test_contains_lower(self):
        dsl = {"contains_lower": ["Q3-2", "web"]}
        self.assertTrue(evaluate_dsl(dsl, {"Q3-2": "WEB活用"}))
        self.assertFalse(evaluate_dsl(dsl, {"Q3-2": ["Web活用"]}))

    # -------------------------------------------------------------------------
    # presence / boolean
    # -------------------------------------------------------------------------

    def test_answered_requires_non_blank(self):
        dsl = {"answered": "Q2-15"}
        self.assertTrue(evaluate_dsl(dsl, {"Q2-15": "地元の常連客が中心"}))
        self.assertFalse(evaluate_dsl(dsl, {"Q2-15": "   "}))
        self.assertFalse(evaluate_dsl(dsl, {"Q2-15": []}))
        self.assertFalse(evaluate_dsl(dsl, {}))

    def test_exists_accepts_empty_values(self):
        dsl = {"exists": "Q2-15"}
        self.assertTrue(evaluate_dsl(dsl, {"Q2-15": ""}))
        self.assertFalse(evaluate_dsl(dsl, {"Q2-15": None}))

    def test_is_true_is_false_are_strict(self):
        self.assertTrue(evaluate_dsl({"is_true": "flag"}, {"flag": True}))
        self.assertFalse(evaluate_dsl({"is_true": "flag"}, {"flag": "yes"}))
        self.assertTrue(evaluate_dsl({"is_false": "flag"}, {"flag": False}))
        self.assertFalse(evaluate_dsl({"is_false": "flag"}, {}))

    # -------------------------------------------------------------------------
    # numeric
    # -------------------------------------------------------------------------

    def test_numeric_comparisons(self):
        answers = {"Q1-4": 5}
        self.assertTrue(evaluate_dsl({"gte": ["Q1-4", 5]}, answers))
        self.assertFalse(evaluate_dsl({"gt": ["Q1-4", 5]}, answers))
        self.assertTrue(evaluate_dsl({"lte": ["Q1-4", 5]}, answers))
        self.assertFalse(evaluate_dsl({"lt": ["Q1-4", 5]}, answers))

    def test_numeric_comparison_missing_or_non_numeric(self):
        self.assertFalse(evaluate_dsl({"gt": ["Q1-4", 5]}, {}))
        self.assertFalse(evaluate_dsl({"gt": ["Q1-4", 5]}, {"Q1-4": "many"}))

    # -------------------------------------------------------------------------
    # logical
    # -------------------------------------------------------------------------

    def test_empty_condition_is_true(self):
        self.assertTrue(evaluate_dsl({}, {}))

    def test_all_any_not(self):
        answers = {"Q1-1": "小売業（アパレル・雑貨・食品販売等）", "Q1-4": 7}
        dsl = {"all": [
            {"any": [{"contains": ["Q1-1", "飲食店"]}, {"contains": ["Q1-1", "小売業"]}]},
            {"gt": ["Q1-4", 5]}
        ]}
        self.assertTrue(evaluate_dsl(dsl, answers))
        self.assertFalse(evaluate_dsl({"not": dsl}, answers))

    def test_empty_any_is_false_empty_all_is_true(self):
        self.assertFalse(evaluate_dsl({"any": []}, {}))
        self.assertTrue(evaluate_dsl({"all": []}, {}))

    def test_unknown_operator_is_false(self):
        self.assertFalse(evaluate_dsl({"matches": ["Q1-0", ".*"]}, {"Q1-0": "x"}))

    def test_evaluation_does_not_mutate_answers(self):
        answers = {"Q1-9": ["その他"]}
        evaluate_dsl({"contains": ["Q1-9", "その他"]}, answers)
        self.assertEqual(answers, {"Q1-9": ["その他"]})


class TestDSLValidation(unittest.TestCase):
    """Load-time validation of DSL structures."""

    def test_valid_nested_condition(self):
        dsl = {"all": [{"eq": ["a", 1]}, {"not": {"answered": "b"}}]}
        self.assertEqual(validate_dsl(dsl), [])

    def test_unknown_operator_reported(self):
        errors = validate_dsl({"matches": ["a", "b"]}, path="Q1.condition")
        self.assertEqual(len(errors), 1)
        self.assertIn("Q1.condition", errors[0])

    def test_pair_operator_arity(self):
        self.assertTrue(validate_dsl({"eq": ["a"]}))

    def test_multiple_operators_in_one_level(self):
        self.assertTrue(validate_dsl({"eq": ["a", 1], "ne": ["b", 2]}))

    def test_referenced_fields(self):
        dsl = {"all": [{"eq": ["a", 1]}, {"any": [{"answered": "b"}, {"gt": ["c", 2]}]}]}
        self.assertEqual(sorted(referenced_fields(dsl)), ["a", "b", "c"])

    def test_compile_condition(self):
        predicate = compile_condition({"eq": ["Q1-6", "法人"]})
        self.assertTrue(predicate({"Q1-6": "法人"}))
        self.assertFalse(predicate({}))


def test_is_blank():
    assert is_blank(None)
    assert is_blank("")
    assert is_blank("  ")
    assert is_blank([])
    assert is_blank({})
    assert not is_blank(0)
    assert not is_blank(False)
    assert not is_blank("a")
