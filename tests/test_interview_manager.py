"""
Test Interview Manager - command handling end to end

Uses a small two-phase catalog so every path is visible:
re-asking on format and rule errors, warnings, phase changes,
early exit, editing and finalizing.

Run with: pytest tests/test_interview_manager.py
"""

import json
import os

import pytest

from backend.commands import (
    EditAnswer,
    FinalizeInterview,
    InterviewState,
    StartInterview,
    SubmitAnswer,
)
from backend.core.completeness_tracker import CompletenessTracker
from backend.core.draft_generator import DraftGenerator
from backend.core.interview_manager import (
    COMPLETION_MESSAGE,
    EXIT_MESSAGE,
    InterviewManager,
)
from backend.core.question_catalog import catalog_from_dict
from backend.results import DraftReport, IllegalCommand, TurnResult
from backend.utils.remote_capability import CapabilityResult


CATALOG = {
    "version": "test",
    "phase_order": ["basic", "plan"],
    "phases": {
        "basic": {"title": "基本情報", "questions": [
            {"id": "name", "text": "お店の名前は？", "required": True, "priority": 1},
            {"id": "staff", "type": "number", "text_template": "{name}の従業員数は？",
             "required": True, "priority": 2, "suffix": "名", "dependencies": ["name"],
             "validation": {
                 "min": 0,
                 "reject_if": [{"condition": {"gt": ["$value", 5]}, "message": "5名以下である必要があります。"}]
             }}
        ]},
        "plan": {"title": "計画", "questions": [
            {"id": "budget", "type": "number", "text": "補助金額は？", "required": True, "priority": 1,
             "validation": {
                 "warn_if": [{"condition": {"gt": ["$value", 50]}, "message": "上限を超えています。"}]
             }},
            {"id": "note", "text": "補足は？", "priority": 2}
        ]}
    },
    "draft_sections": [
        {"id": "overview", "title": "企業概要", "phases": ["basic"]},
        {"id": "plan", "title": "計画", "phases": ["plan"]}
    ]
}

CRITERIA = {
    "criteria": [
        {"id": "basics", "name": "基本情報", "weight": 1, "question_ids": ["name", "staff"]},
        {"id": "money", "name": "資金計画", "weight": 1, "question_ids": ["budget", "note"]}
    ]
}


class MockCapabilityClient:
    def __init__(self, text=None):
        self.text = text

    def invoke(self, name, payload):
        if self.text is None:
            return CapabilityResult(ok=False, error="no backend configured")
        if name == "draft_section":
            return CapabilityResult(ok=True, response={'text': self.text})
        return CapabilityResult(ok=True, response={'questions': ["競合との違いは？"]})


@pytest.fixture
def catalog():
    return catalog_from_dict(CATALOG)


@pytest.fixture
def tracker(tmp_path):
    path = tmp_path / "criteria.json"
    path.write_text(json.dumps(CRITERIA, ensure_ascii=False), encoding="utf-8")
    return CompletenessTracker(str(path))


@pytest.fixture
def manager(catalog, tracker, tmp_path):
    return InterviewManager(
        catalog=catalog,
        completeness_tracker=tracker,
        output_dir=str(tmp_path / "drafts")
    )


def answer(manager, result, text):
    return manager.handle(SubmitAnswer(user_input=text, state=result.state))


def run_through(manager):
    result = manager.handle(StartInterview())
    for text in ["トラットリア山田", "3", "40", "店内を全面改装します"]:
        result = answer(manager, result, text)
    return result


class TestStartAndAnswer:
    """Turn-by-turn behaviour"""

    def test_start(self, manager):
        result = manager.handle(StartInterview())

        assert isinstance(result, TurnResult)
        assert result.question.id == "name"
        assert result.system_output == "【基本情報】\nお店の名前は？"
        assert result.turn_metadata['turn_count'] == 1
        assert result.turn_metadata['phase'] == "basic"
        assert result.turn_metadata['phase_title'] == "基本情報"
        assert result.state.session_id
        assert not result.interview_complete

    def test_template_resolved_from_answers(self, manager):
        result = answer(manager, manager.handle(StartInterview()), "トラットリア山田")
        assert result.question.id == "staff"
        assert result.system_output == "トラットリア山田の従業員数は？"
        assert result.state.turn_count == 2

    def test_format_error_reasks(self, manager):
        result = answer(manager, manager.handle(StartInterview()), "トラットリア山田")
        result = answer(manager, result, "たくさん")

        assert result.question.id == "staff"
        assert result.system_output == "数値で入力してください。\n\nトラットリア山田の従業員数は？"
        assert result.debug['accepted'] is False

    def test_rule_violation_reasks(self, manager):
        result = answer(manager, manager.handle(StartInterview()), "トラットリア山田")
        result = answer(manager, result, "１０名")

        assert result.question.id == "staff"
        assert result.system_output.startswith("5名以下である必要があります。")

    def test_non_finite_number_reasks(self, manager):
        result = answer(manager, manager.handle(StartInterview()), "トラットリア山田")
        result = answer(manager, result, "nan")

        assert result.question.id == "staff"
        assert result.debug['accepted'] is False
        json.dumps(result.state.to_json(), allow_nan=False)

    def test_phase_change_announced(self, manager):
        result = answer(manager, manager.handle(StartInterview()), "トラットリア山田")
        result = answer(manager, result, "3名")

        assert result.question.id == "budget"
        assert result.system_output == "【計画】\n補助金額は？"
        assert result.turn_metadata['phase'] == "plan"
        assert result.debug['parsed_value'] == 3

    def test_warning_shown_before_next_question(self, manager):
        result = answer(manager, manager.handle(StartInterview()), "トラットリア山田")
        result = answer(manager, result, "3")
        result = answer(manager, result, "60")

        assert result.question.id == "note"
        assert result.system_output == "上限を超えています。\n\n補足は？"

    def test_optional_question_may_be_blank(self, manager):
        result = manager.handle(StartInterview())
        for text in ["トラットリア山田", "3", "40", ""]:
            result = answer(manager, result, text)

        assert result.interview_complete
        assert result.question is None
        assert result.system_output == COMPLETION_MESSAGE

    def test_submit_after_complete_is_illegal(self, manager):
        result = run_through(manager)
        illegal = answer(manager, result, "もう一つ")

        assert isinstance(illegal, IllegalCommand)
        assert illegal.command_type == "SubmitAnswer"

    def test_exit_word_ends_interview(self, manager):
        result = answer(manager, manager.handle(StartInterview()), "終了")

        assert result.interview_complete
        assert result.system_output == EXIT_MESSAGE
        assert result.debug == {'exit_command': True}

    def test_state_envelope_is_json_safe(self, manager):
        result = answer(manager, manager.handle(StartInterview()), "トラットリア山田")
        restored = InterviewState.from_json(json.loads(json.dumps(result.state.to_json(), ensure_ascii=False)))

        next_result = manager.handle(SubmitAnswer(user_input="3", state=restored))
        assert next_result.question.id == "budget"

    def test_unknown_command(self, manager):
        with pytest.raises(TypeError):
            manager.handle("start")

    def test_malformed_state(self, manager):
        with pytest.raises(ValueError):
            manager.handle(SubmitAnswer(user_input="x", state={'turn_count': 1}))
        with pytest.raises(ValueError):
            manager.handle(SubmitAnswer(user_input="x", state=InterviewState.from_json({'turn_count': -1})))


class TestEdit:
    """Re-opening earlier answers"""

    def test_edit_after_completion(self, manager):
        result = run_through(manager)
        result = manager.handle(EditAnswer(question_id="staff", state=result.state))

        assert isinstance(result, TurnResult)
        assert result.question.id == "staff"
        assert not result.interview_complete

        result = answer(manager, result, "2")
        assert result.interview_complete

    def test_edit_within_current_phase(self, manager):
        result = manager.handle(StartInterview())
        for text in ["トラットリア山田", "3", "40"]:
            result = answer(manager, result, text)
        result = manager.handle(EditAnswer(question_id="budget", state=result.state))

        assert result.question.id == "budget"

    def test_edit_unknown_question(self, manager):
        result = manager.handle(EditAnswer(question_id="nope", state=run_through(manager).state))
        assert isinstance(result, IllegalCommand)

    def test_edit_unanswered_question(self, manager):
        result = manager.handle(EditAnswer(question_id="budget", state=manager.handle(StartInterview()).state))
        assert isinstance(result, IllegalCommand)
        assert "budget" in result.reason


class TestFinalize:
    """Drafting and completeness at the end"""

    def test_finalize_before_complete(self, manager):
        result = manager.handle(FinalizeInterview(state=manager.handle(StartInterview()).state))
        assert isinstance(result, IllegalCommand)

    def test_finalize_with_fallback_drafts(self, manager):
        report = manager.handle(FinalizeInterview(state=run_through(manager).state))

        assert isinstance(report, DraftReport)
        assert [s['id'] for s in report.sections] == ["overview", "plan"]
        assert all(s['source'] == "fallback" for s in report.sections)
        assert "Section 'overview' uses the fallback draft" in report.warnings
        assert report.completeness['overall_score'] == 100

        assert os.path.exists(report.output_path)
        with open(report.output_path, encoding='utf-8') as f:
            saved = json.load(f)
        assert saved['session_id'] == report.session_id
        assert saved['catalog_version'] == "test"
        assert saved['answers']['name'] == "トラットリア山田"

    def test_finalize_with_remote_drafts(self, catalog, tracker, tmp_path):
        manager = InterviewManager(
            catalog=catalog,
            draft_generator=DraftGenerator(MockCapabilityClient("本文"), catalog),
            completeness_tracker=tracker,
            output_dir=str(tmp_path)
        )
        report = manager.handle(FinalizeInterview(state=run_through(manager).state))

        assert [s['text'] for s in report.sections] == ["本文", "本文"]
        assert report.warnings == []

    def test_finalize_after_early_exit(self, manager):
        result = answer(manager, manager.handle(StartInterview()), "トラットリア山田")
        result = answer(manager, result, "exit")
        report = manager.handle(FinalizeInterview(state=result.state))

        assert "Interview ended early by the user" in report.warnings
        assert report.completeness['overall_score'] == 25


def test_phase_left_incomplete_is_warned(tmp_path):
    data = json.loads(json.dumps(CATALOG))
    # 'staff' now waits on a question from the later phase
    data["phases"]["basic"]["questions"][1]["dependencies"] = ["budget"]
    manager = InterviewManager(catalog_from_dict(data), output_dir=str(tmp_path))

    result = answer(manager, manager.handle(StartInterview()), "トラットリア山田")
    assert result.question.id == "budget"

    report_state = result.state
    for text in ["40", ""]:
        result = answer(manager, result, text)
    assert result.interview_complete

    report = manager.handle(FinalizeInterview(state=result.state))
    assert any("required questions remain" in w for w in report.warnings)
    assert report_state.to_json()['warnings']


def test_progress_and_followups(manager, catalog, tracker):
    result = answer(manager, manager.handle(StartInterview()), "トラットリア山田")

    progress = manager.get_progress(result.state)
    assert progress['required']['answered_required'] == 1
    assert progress['required']['total_required'] == 3
    assert progress['completeness']['overall_score'] == 25
    assert "【申請書完成度: 25%】" in progress['summary']

    assert manager.suggest_followups(result.state)['source'] == "fallback"

    remote = InterviewManager(catalog, DraftGenerator(MockCapabilityClient("本文"), catalog), tracker)
    assert remote.suggest_followups(result.state)['questions'] == ["競合との違いは？"]


def test_state_envelope_is_sealed():
    source = {'session_id': 'a3f7e2b9', 'turn_count': 1, 'answers': {'name': 'トラットリア山田'}}
    state = InterviewState.from_json(source)
    source['answers']['name'] = 'changed'
    state.to_json()['answers']['name'] = 'changed'

    assert state.to_json()['answers'] == {'name': 'トラットリア山田'}

    with pytest.raises(ValueError):
        InterviewState.from_json(["not", "a", "dict"])
