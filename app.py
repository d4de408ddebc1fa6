"""
Flask Web Application for the Subsidy Application Interview

JSON API around InterviewManager. The client holds the opaque state
envelope and sends it back with every request; each turn is also saved
to append-only session files.
"""

from flask import Flask, request, jsonify, send_file
import logging
import os

from backend.commands import (
    EditAnswer,
    FinalizeInterview,
    InterviewState,
    StartInterview,
    SubmitAnswer,
)
from backend.config import load_settings
from backend.core.interview_manager import build_interview_manager
from backend.persistence import InterviewPersistence
from backend.results import IllegalCommand

logger = logging.getLogger(__name__)


def _turn_payload(result):
    return {
        'success': True,
        'session_id': result.turn_metadata['session_id'],
        'turn_count': result.turn_metadata['turn_count'],
        'phase': result.turn_metadata['phase'],
        'phase_title': result.turn_metadata['phase_title'],
        'message': result.system_output,
        'question': result.question.to_dict() if result.question else None,
        'finished': result.interview_complete,
        'state': result.state.to_json()
    }


def _error(message, status):
    return jsonify({'success': False, 'error': message}), status


def _state_from_request(data):
    """Unwrap the state envelope, None if the request carries none."""
    raw = (data or {}).get('state')
    if not isinstance(raw, dict):
        return None
    return InterviewState.from_json(raw)


def create_app(settings=None, manager=None, persistence=None):
    """
    Build the Flask app.

    Args:
        settings: Output of load_settings() (loaded from env if None)
        manager: InterviewManager (built from settings if None)
        persistence: InterviewPersistence (under OUTPUT_DIR/sessions if None)
    """
    settings = settings or load_settings()
    manager = manager or build_interview_manager(settings)
    persistence = persistence or InterviewPersistence(os.path.join(settings["OUTPUT_DIR"], "sessions"))

    app = Flask(__name__)
    app.json.ensure_ascii = False

    def run_turn(command):
        result = manager.handle(command)
        if isinstance(result, IllegalCommand):
            logger.warning(f"Illegal {result.command_type}: {result.reason}")
            return _error(result.reason, 409)
        persistence.save_turn(result.state)
        return jsonify(_turn_payload(result))

    @app.route('/api/start', methods=['POST'])
    def start_interview():
        """Start new interview"""
        try:
            return run_turn(StartInterview())
        except Exception as e:
            logger.error(f"Error starting interview: {e}")
            return _error(str(e), 500)

    @app.route('/api/answer', methods=['POST'])
    def submit_answer():
        """Submit an answer and get the next question"""
        data = request.get_json(silent=True) or {}
        state = _state_from_request(data)
        if state is None:
            return _error('Missing state', 400)
        if 'answer' not in data:
            return _error('Missing answer', 400)

        try:
            return run_turn(SubmitAnswer(user_input=data['answer'], state=state))
        except FileExistsError as e:
            return _error(str(e), 409)
        except ValueError as e:
            return _error(str(e), 400)
        except Exception as e:
            logger.error(f"Error processing answer: {e}")
            return _error(str(e), 500)

    @app.route('/api/edit', methods=['POST'])
    def edit_answer():
        """Clear an earlier answer so it is asked again"""
        data = request.get_json(silent=True) or {}
        state = _state_from_request(data)
        if state is None:
            return _error('Missing state', 400)
        if not data.get('question_id'):
            return _error('Missing question_id', 400)

        try:
            return run_turn(EditAnswer(question_id=data['question_id'], state=state))
        except FileExistsError as e:
            return _error(str(e), 409)
        except ValueError as e:
            return _error(str(e), 400)
        except Exception as e:
            logger.error(f"Error editing answer: {e}")
            return _error(str(e), 500)

    @app.route('/api/progress', methods=['POST'])
    def get_progress():
        """Required-question progress and application completeness"""
        state = _state_from_request(request.get_json(silent=True))
        if state is None:
            return _error('Missing state', 400)

        try:
            return jsonify({'success': True, **manager.get_progress(state)})
        except ValueError as e:
            return _error(str(e), 400)

    @app.route('/api/followups', methods=['POST'])
    def get_followups():
        """Follow-up questions that would strengthen the application"""
        state = _state_from_request(request.get_json(silent=True))
        if state is None:
            return _error('Missing state', 400)

        try:
            return jsonify({'success': True, **manager.suggest_followups(state)})
        except ValueError as e:
            return _error(str(e), 400)

    @app.route('/api/finalize', methods=['POST'])
    def finalize_interview():
        """Draft the application text"""
        state = _state_from_request(request.get_json(silent=True))
        if state is None:
            return _error('Missing state', 400)

        try:
            report = manager.handle(FinalizeInterview(state=state))
        except ValueError as e:
            return _error(str(e), 400)
        except Exception as e:
            logger.error(f"Error finalizing interview: {e}")
            return _error(str(e), 500)

        if isinstance(report, IllegalCommand):
            return _error(report.reason, 409)

        logger.info(f"Interview finalized: {report.session_id}")
        return jsonify({
            'success': True,
            'session_id': report.session_id,
            'sections': report.sections,
            'completeness': report.completeness,
            'output_filename': report.output_filename,
            'warnings': report.warnings
        })

    @app.route('/api/download/<filename>')
    def download_file(filename):
        """Download a finalized draft"""
        if os.path.basename(filename) != filename:
            return _error('Invalid filename', 400)

        file_path = os.path.abspath(os.path.join(manager.output_dir, filename))
        if not os.path.exists(file_path):
            return _error('File not found', 404)

        return send_file(file_path, as_attachment=True, download_name=filename)

    return app


if __name__ == '__main__':
    settings = load_settings()

    logging.basicConfig(
        level=settings["LOG_LEVEL"],
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = create_app(settings)

    print("\n" + "=" * 60)
    print("SUBSIDY APPLICATION INTERVIEW - WEB API")
    print("=" * 60)
    print("\nServer starting on http://localhost:5000")
    print("Press Ctrl+C to stop the server")
    print("=" * 60 + "\n")

    app.run(debug=False, host='0.0.0.0', port=5000)
