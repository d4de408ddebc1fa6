"""
Turn-based interview persistence.

Append-only JSON files for audit trail and restart resilience.

The session id arrives inside a client-held envelope, so it is checked
against the shape generate_session_id() produces before it is ever used
as a path component.
"""

import json
import logging
import re
from pathlib import Path
from typing import List, Optional

from backend.commands import InterviewState

logger = logging.getLogger(__name__)

# generate_session_id(): 8 hex chars (short) or 32 (full uuid4)
SESSION_ID_PATTERN = re.compile(r"[0-9a-f]{8,32}")
TURN_FILE_PATTERN = re.compile(r"SESSION-[0-9a-f]+_TURN-(\d+)\.json")


def check_session_id(session_id: str) -> str:
    """
    Raises:
        ValueError: If session_id is not a bare hex token
    """
    if not isinstance(session_id, str) or not SESSION_ID_PATTERN.fullmatch(session_id):
        raise ValueError(f"Invalid session_id: {session_id!r}")
    return session_id


class InterviewPersistence:
    """
    Manages turn-by-turn JSON persistence.

    Layout:
        outputs/sessions/SESSION-a3f7e2b9/
            SESSION-a3f7e2b9_TURN-001.json
            SESSION-a3f7e2b9_TURN-002.json
            ...

    Design:
    - Append-only: files are created exclusively, never overwritten
    - One file per turn
    - Restart-resilient: the latest turn restores the session
    """

    def __init__(self, base_dir: str = "outputs/sessions"):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"InterviewPersistence initialized: {self.base_dir}")

    def _session_dir(self, session_id: str) -> Path:
        return self.base_dir / f"SESSION-{check_session_id(session_id)}"

    def save_turn(self, state: InterviewState) -> str:
        """
        Save turn to append-only file.

        Args:
            state: Opaque state envelope (carries session_id and turn_count)

        Returns:
            str: Absolute path to saved file

        Raises:
            ValueError: If the session_id or turn_count is malformed
            FileExistsError: If turn file already exists (double-submit)
        """
        session_dir = self._session_dir(state.session_id)
        turn_count = state.turn_count
        if not isinstance(turn_count, int) or isinstance(turn_count, bool) or turn_count < 0:
            raise ValueError(f"Invalid turn_count: {turn_count!r}")

        session_dir.mkdir(exist_ok=True)
        filepath = session_dir / f"SESSION-{state.session_id}_TURN-{turn_count:03d}.json"

        # 'x' makes two concurrent submits of the same turn collide here
        try:
            with open(filepath, 'x', encoding='utf-8') as f:
                json.dump(state.to_json(), f, indent=2, ensure_ascii=False)
        except FileExistsError:
            raise FileExistsError(
                f"Turn {turn_count} of session {state.session_id} already saved "
                f"(double-submit or stale state)"
            )

        logger.info(f"Saved turn {turn_count} for {state.session_id}: {filepath.name}")
        return str(filepath.absolute())

    def list_turns(self, session_id: str) -> List[int]:
        """Saved turn numbers, ascending (empty if the session doesn't exist)."""
        session_dir = self._session_dir(session_id)
        if not session_dir.exists():
            return []

        turns = []
        for path in session_dir.iterdir():
            match = TURN_FILE_PATTERN.fullmatch(path.name)
            if match:
                turns.append(int(match.group(1)))
        return sorted(turns)

    def load_turn(self, session_id: str, turn_count: int) -> Optional[InterviewState]:
        """Load one saved turn, None if it was never saved."""
        filepath = self._session_dir(session_id) / f"SESSION-{session_id}_TURN-{turn_count:03d}.json"
        if not filepath.exists():
            return None

        with open(filepath, 'r', encoding='utf-8') as f:
            return InterviewState.from_json(json.load(f))

    def load_latest_turn(self, session_id: str) -> Optional[InterviewState]:
        """
        Load latest turn for a session.

        Returns:
            InterviewState if the session has saved turns, None otherwise

        Raises:
            ValueError: If session_id is malformed
        """
        turns = self.list_turns(session_id)
        if not turns:
            logger.warning(f"No saved turns for session {session_id}")
            return None

        logger.info(f"Loading turn {turns[-1]} of session {session_id}")
        return self.load_turn(session_id, turns[-1])

    def session_exists(self, session_id: str) -> bool:
        return bool(self.list_turns(session_id))

    def get_turn_count(self, session_id: str) -> int:
        """Number of saved turns (0 if the session doesn't exist)."""
        return len(self.list_turns(session_id))
