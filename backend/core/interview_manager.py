"""
Interview Manager - Phase-by-phase interview orchestration (Functional Core)

Responsibilities:
- Handle interview commands (start, answer, edit, finalize)
- Parse and validate answers, re-asking with a message when invalid
- Walk phases in catalog order, moving on when a phase yields no question
- Draft the application and score its completeness at the end

Design principles:
- Ephemeral per turn: no session state held between commands
- State comes in and goes out as an opaque InterviewState envelope
- Question choice is delegated to the stateless QuestionSelector
- Commands in, results out: TurnResult, DraftReport or IllegalCommand
"""

import json
import logging
import os
from typing import Any, Dict, List, Optional, Tuple, Union

from backend.commands import (
    EditAnswer,
    FinalizeInterview,
    InterviewState,
    StartInterview,
    SubmitAnswer,
)
from backend.contracts import ResolvedQuestion
from backend.core.answer_parser import AnswerFormatError, parse_answer
from backend.core.answer_validator import validate_answer
from backend.core.draft_generator import SOURCE_FALLBACK, DraftGenerator
from backend.core.question_catalog import QuestionCatalog
from backend.core.question_selector import QuestionSelector
from backend.core.session_state import InterviewStateManager
from backend.results import DraftReport, IllegalCommand, TurnResult
from backend.utils.helpers import generate_output_filename, generate_session_id
from backend.utils.remote_capability import RemoteCapabilityClient

logger = logging.getLogger(__name__)

CommandResult = Union[TurnResult, DraftReport, IllegalCommand]

COMPLETION_MESSAGE = "ご回答ありがとうございました。すべての質問が完了しました。申請書の下書きを作成できます。"
EXIT_MESSAGE = "インタビューを終了しました。ここまでの回答で申請書の下書きを作成できます。"


class InterviewManager:
    """
    Orchestrates the subsidy application interview

    Functional core design:
    - Catalog, selector, draft generator cached (read-only, shared)
    - handle() transforms state deterministically
    - No implicit state accumulation
    """

    # Inputs that end the interview early
    EXIT_COMMANDS = {"quit", "exit", "stop", "終了"}

    def __init__(
        self,
        catalog: QuestionCatalog,
        draft_generator: Optional[DraftGenerator] = None,
        completeness_tracker=None,
        output_dir: str = "outputs/drafts"
    ):
        """
        Args:
            catalog: Validated question catalog
            draft_generator: Draft generator (default: fallback-only drafting)
            completeness_tracker: CompletenessTracker, or None to skip scoring
            output_dir: Directory for finalized draft JSON files

        Raises:
            TypeError: If catalog is not a QuestionCatalog
        """
        self.catalog = catalog
        self.selector = QuestionSelector(catalog)
        self.draft_generator = draft_generator or DraftGenerator(RemoteCapabilityClient(None), catalog)
        self.completeness_tracker = completeness_tracker
        self.output_dir = output_dir

        if completeness_tracker is not None:
            unknown = completeness_tracker.unknown_question_ids(q.id for q in catalog)
            if unknown:
                logger.warning(f"Evaluation criteria reference unknown questions: {unknown}")

        logger.info("Interview Manager initialized (functional core)")

    # ========================
    # Command dispatch
    # ========================

    def handle(self, command) -> CommandResult:
        """
        Process one command.

        Args:
            command: StartInterview, SubmitAnswer, EditAnswer or FinalizeInterview

        Returns:
            TurnResult, DraftReport or IllegalCommand

        Raises:
            TypeError: If the command type is unknown
            ValueError: If the state envelope is malformed
        """
        if isinstance(command, StartInterview):
            return self._start()
        if isinstance(command, SubmitAnswer):
            return self._submit(command)
        if isinstance(command, EditAnswer):
            return self._edit(command)
        if isinstance(command, FinalizeInterview):
            return self._finalize(command)

        raise TypeError(f"Unknown command type: {type(command).__name__}")

    # ========================
    # State envelope
    # ========================

    def _restore(self, state: InterviewState) -> Tuple[InterviewStateManager, Dict[str, Any]]:
        """Split the envelope into the state manager and turn-level fields."""
        if not isinstance(state, InterviewState):
            raise ValueError("state must be InterviewState")

        data = state.to_json()
        turn_count = data.get('turn_count', 0)
        if not isinstance(turn_count, int) or turn_count < 0:
            raise ValueError("state missing or invalid turn_count")

        state_manager = InterviewStateManager.from_snapshot(data)
        turn = {
            'session_id': data.get('session_id'),
            'turn_count': turn_count,
            'pending_question': data.get('pending_question'),
            'interview_complete': data.get('interview_complete', False),
            'ended_early': data.get('ended_early', False),
            'warnings': list(data.get('warnings', []))
        }
        return state_manager, turn

    def _build_turn_result(
        self,
        system_output: str,
        state_manager: InterviewStateManager,
        turn: Dict[str, Any],
        question: Optional[ResolvedQuestion],
        debug: Dict[str, Any]
    ) -> TurnResult:
        """Seal the updated state and wrap it with the turn output."""
        turn_count = turn['turn_count'] + 1
        interview_complete = question is None

        snapshot = state_manager.snapshot_state()
        snapshot['session_id'] = turn['session_id']
        snapshot['turn_count'] = turn_count
        snapshot['pending_question'] = question.to_dict() if question else None
        snapshot['interview_complete'] = interview_complete
        snapshot['ended_early'] = turn['ended_early']
        snapshot['warnings'] = turn['warnings']

        phase = state_manager.current_phase
        return TurnResult(
            system_output=system_output,
            question=question,
            state=InterviewState.from_json(snapshot),
            debug=debug,
            turn_metadata={
                'session_id': turn['session_id'],
                'turn_count': turn_count,
                'phase': phase,
                'phase_title': self.catalog.phase_title(phase) if phase else None
            },
            interview_complete=interview_complete
        )

    # ========================
    # Phase walking
    # ========================

    def _advance(self, state_manager: InterviewStateManager, turn: Dict[str, Any]) -> Tuple[Optional[ResolvedQuestion], List[str]]:
        """
        Next question from the current phase onward.

        Moves through phases that yield no question. A phase left with
        required questions still unanswered is logged and recorded as a
        warning.

        Returns:
            tuple: (question or None when every phase is walked, phases entered)
        """
        answers = state_manager.answers
        entered = []

        while state_manager.current_phase is not None:
            phase = state_manager.current_phase
            question = self.selector.get_next_question(answers, phase)
            if question is not None:
                return question, entered

            if not self.selector.is_phase_complete(phase, answers):
                missing = self.selector.get_progress(answers, phase)['missing']
                message = f"Phase '{phase}' has no askable question but required questions remain: {missing}"
                logger.warning(message)
                if message not in turn['warnings']:
                    turn['warnings'].append(message)

            next_phase = self.catalog.next_phase(phase)
            state_manager.set_phase(next_phase)
            if next_phase is not None:
                entered.append(next_phase)

        return None, entered

    def _present(self, question: Optional[ResolvedQuestion], entered: List[str], prefix: str = "") -> str:
        if question is None:
            text = COMPLETION_MESSAGE
        elif entered:
            text = f"【{self.catalog.phase_title(question.phase)}】\n{question.text}"
        else:
            text = question.text
        return f"{prefix}\n\n{text}" if prefix else text

    # ========================
    # Commands
    # ========================

    def _start(self) -> TurnResult:
        session_id = generate_session_id(short=True)
        first_phase = self.catalog.phase_order[0]
        state_manager = InterviewStateManager(phase=first_phase)
        turn = {
            'session_id': session_id,
            'turn_count': 0,
            'pending_question': None,
            'interview_complete': False,
            'ended_early': False,
            'warnings': []
        }

        question, entered = self._advance(state_manager, turn)
        if question is None:
            logger.error("No questions available on first turn")

        logger.info(f"Started interview {session_id}")
        return self._build_turn_result(
            system_output=self._present(question, [first_phase] + entered),
            state_manager=state_manager,
            turn=turn,
            question=question,
            debug={'first_question': True, 'phases_entered': [first_phase] + entered}
        )

    def _submit(self, command: SubmitAnswer) -> CommandResult:
        state_manager, turn = self._restore(command.state)

        if turn['interview_complete']:
            return IllegalCommand(reason="Interview is already complete", command_type="SubmitAnswer")
        if turn['pending_question'] is None:
            return IllegalCommand(reason="No question is awaiting an answer", command_type="SubmitAnswer")

        pending = ResolvedQuestion.from_dict(turn['pending_question'])
        user_input = command.user_input

        if isinstance(user_input, str) and user_input.strip().lower() in self.EXIT_COMMANDS:
            logger.info(f"Interview {turn['session_id']} ended by user")
            turn['ended_early'] = True
            return self._build_turn_result(
                system_output=EXIT_MESSAGE,
                state_manager=state_manager,
                turn=turn,
                question=None,
                debug={'exit_command': True}
            )

        definition = self.catalog.get(pending.id)
        if definition is None:
            raise ValueError(f"Pending question '{pending.id}' is not in the catalog")

        try:
            value = parse_answer(pending, user_input)
        except AnswerFormatError as e:
            return self._reject(state_manager, turn, pending, user_input, str(e))

        result = validate_answer(definition, value, state_manager.answers)
        if not result.is_valid:
            return self._reject(state_manager, turn, pending, user_input, result.message)

        state_manager.set_answer(pending.id, value)
        state_manager.add_dialogue_turn(
            question_id=pending.id,
            question_text=pending.text,
            user_response=user_input,
            accepted=True,
            message=result.warning
        )

        question, entered = self._advance(state_manager, turn)
        return self._build_turn_result(
            system_output=self._present(question, entered, prefix=result.warning),
            state_manager=state_manager,
            turn=turn,
            question=question,
            debug={
                'accepted': True,
                'question_id': pending.id,
                'parsed_value': value,
                'warning': result.warning,
                'phases_entered': entered
            }
        )

    def _reject(
        self,
        state_manager: InterviewStateManager,
        turn: Dict[str, Any],
        pending: ResolvedQuestion,
        user_input: Any,
        message: str
    ) -> TurnResult:
        """Record the rejected answer and ask the same question again."""
        logger.info(f"Answer for '{pending.id}' rejected: {message}")
        state_manager.add_dialogue_turn(
            question_id=pending.id,
            question_text=pending.text,
            user_response=user_input,
            accepted=False,
            message=message
        )
        return self._build_turn_result(
            system_output=f"{message}\n\n{pending.text}",
            state_manager=state_manager,
            turn=turn,
            question=pending,
            debug={'accepted': False, 'question_id': pending.id, 'validation_error': message}
        )

    def _edit(self, command: EditAnswer) -> CommandResult:
        state_manager, turn = self._restore(command.state)

        definition = self.catalog.get(command.question_id)
        if definition is None:
            return IllegalCommand(reason=f"Unknown question: {command.question_id}", command_type="EditAnswer")
        if not state_manager.remove_answer(command.question_id):
            return IllegalCommand(
                reason=f"Question has no answer to edit: {command.question_id}",
                command_type="EditAnswer"
            )

        # Walk forward again from the edited question's phase
        current = state_manager.current_phase
        if current is None or self.catalog.phase_order.index(definition.phase) < self.catalog.phase_order.index(current):
            state_manager.reopen_phase(definition.phase)
        turn['ended_early'] = False

        question, entered = self._advance(state_manager, turn)
        return self._build_turn_result(
            system_output=self._present(question, entered),
            state_manager=state_manager,
            turn=turn,
            question=question,
            debug={'edited': command.question_id, 'phases_entered': entered}
        )

    def _finalize(self, command: FinalizeInterview) -> CommandResult:
        state_manager, turn = self._restore(command.state)

        if not turn['interview_complete']:
            return IllegalCommand(reason="Interview is not complete", command_type="FinalizeInterview")

        answers = state_manager.get_answers()
        sections = self.draft_generator.generate(answers)

        completeness = {}
        if self.completeness_tracker is not None:
            completeness = self.completeness_tracker.calculate_overall_completeness(answers)

        warnings = list(turn['warnings'])
        if turn['ended_early']:
            warnings.append("Interview ended early by the user")
        for section in sections:
            if section['source'] == SOURCE_FALLBACK:
                warnings.append(f"Section '{section['id']}' uses the fallback draft")

        output_path, output_filename = self._save_draft(turn['session_id'], state_manager, sections, completeness, warnings)

        return DraftReport(
            session_id=turn['session_id'],
            sections=sections,
            completeness=completeness,
            output_path=output_path,
            output_filename=output_filename,
            warnings=warnings
        )

    def _save_draft(self, session_id, state_manager, sections, completeness, warnings) -> Tuple[str, str]:
        os.makedirs(self.output_dir, exist_ok=True)

        filename = generate_output_filename(session_id, prefix="draft", extension="json")
        path = os.path.join(self.output_dir, filename)

        with open(path, 'w', encoding='utf-8') as f:
            json.dump({
                'session_id': session_id,
                'catalog_version': self.catalog.version,
                'answers': state_manager.get_answers(),
                'sections': sections,
                'completeness': completeness,
                'warnings': warnings,
                'dialogue_history': state_manager.export_for_draft()['dialogue_history']
            }, f, indent=2, ensure_ascii=False)

        logger.info(f"Draft saved: {filename}")
        return os.path.abspath(path), filename

    # ========================
    # Read-only queries
    # ========================

    def get_progress(self, state: InterviewState) -> Dict[str, Any]:
        """
        Progress for display (does not advance the turn).

        Returns:
            dict: {'required': selector progress, 'completeness': score dict
                   (empty without tracker), 'summary': str}
        """
        state_manager, _ = self._restore(state)
        answers = state_manager.answers

        result = {'required': self.selector.get_progress(answers), 'completeness': {}, 'summary': ""}
        if self.completeness_tracker is not None:
            result['completeness'] = self.completeness_tracker.calculate_overall_completeness(answers)
            result['summary'] = self.completeness_tracker.generate_progress_summary(answers)
        return result

    def suggest_followups(self, state: InterviewState) -> Dict[str, Any]:
        state_manager, _ = self._restore(state)
        return self.draft_generator.suggest_followup_questions(state_manager.answers)


def build_interview_manager(settings: Dict[str, Any]) -> InterviewManager:
    """
    Wire catalog, criteria, LLM backend and draft generator from settings.

    Args:
        settings: Output of load_settings()

    Raises:
        FileNotFoundError: If the catalog or criteria file is missing
        InvalidCatalog: If the catalog is malformed
    """
    from backend.core.completeness_tracker import CompletenessTracker
    from backend.core.question_catalog import load_catalog
    from backend.utils.remote_capability import build_backend

    catalog = load_catalog(settings["CATALOG_PATH"])
    tracker = CompletenessTracker(settings["CRITERIA_PATH"])
    client = RemoteCapabilityClient(build_backend(settings))

    return InterviewManager(
        catalog=catalog,
        draft_generator=DraftGenerator(client, catalog),
        completeness_tracker=tracker,
        output_dir=os.path.join(settings["OUTPUT_DIR"], "drafts")
    )
