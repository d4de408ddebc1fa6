"""
Console Harness for InterviewManager (Functional Core)

Runs a full interview in the terminal, then drafts the application.
"""

import logging
import sys

from backend.commands import EditAnswer, FinalizeInterview, StartInterview, SubmitAnswer
from backend.config import load_settings
from backend.core.interview_manager import build_interview_manager
from backend.persistence import InterviewPersistence
from backend.results import IllegalCommand

logger = logging.getLogger(__name__)

EDIT_PREFIX = "/edit "


def print_separator(char="=", length=60):
    print(char * length)


def print_question(turn_result):
    """Print system output plus options/help for the pending question"""
    print(f"\nSystem: {turn_result.system_output}")

    question = turn_result.question
    if question is None:
        return
    for i, option in enumerate(question.options, 1):
        print(f"  {i}. {option}")
    if question.help_text:
        print(f"  ({question.help_text})")
    if question.placeholder:
        print(f"  {question.placeholder}")
    print()


def print_report(report):
    print_separator()
    print("DRAFT")
    print_separator()
    for section in report.sections:
        print(f"\n■ {section['title']} [{section['source']}]")
        print(section['text'])

    if report.completeness:
        print(f"\nCompleteness: {report.completeness['overall_score']}% ({report.completeness['overall_status']})")
    for warning in report.warnings:
        print(f"WARNING: {warning}")
    print(f"\nSaved: {report.output_filename}")


def main():
    """Run console interview"""
    settings = load_settings()
    logging.basicConfig(
        level=settings["LOG_LEVEL"],
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    print_separator()
    print("SUBSIDY APPLICATION INTERVIEW - CONSOLE")
    print_separator()

    try:
        manager = build_interview_manager(settings)
        persistence = InterviewPersistence(f"{settings['OUTPUT_DIR']}/sessions")
    except Exception as e:
        print(f"\nFailed to initialize: {e}")
        return 1

    print("Type 'quit', 'exit', 'stop' or '終了' to end early, '/edit <question id>' to redo an answer\n")

    turn_result = manager.handle(StartInterview())
    persistence.save_turn(turn_result.state)
    print_question(turn_result)

    while not turn_result.interview_complete:
        try:
            user_input = input("> ")
        except (KeyboardInterrupt, EOFError):
            print("\n\nInterview interrupted by user")
            return 0

        if user_input.startswith(EDIT_PREFIX):
            command = EditAnswer(question_id=user_input[len(EDIT_PREFIX):].strip(), state=turn_result.state)
        else:
            command = SubmitAnswer(user_input=user_input, state=turn_result.state)

        result = manager.handle(command)
        if isinstance(result, IllegalCommand):
            print(f"\n{result.reason}\n")
            continue

        turn_result = result
        persistence.save_turn(turn_result.state)
        print_question(turn_result)

    print("\nDrafting the application...")
    report = manager.handle(FinalizeInterview(state=turn_result.state))
    if isinstance(report, IllegalCommand):
        print(f"\n{report.reason}")
        return 1

    print_report(report)
    return 0


if __name__ == '__main__':
    sys.exit(main())
