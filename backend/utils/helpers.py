"""
Utility helpers for the interview system

Simple utility functions for ID and filename generation.
"""

import uuid
from datetime import datetime


def generate_session_id(short=True):
    """
    Generate unique session identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full UUID.

    Returns:
        str: Session ID

    Examples:
        >>> generate_session_id()
        'a3f7e2b9'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def generate_output_filename(session_id, prefix="draft", extension="json"):
    """
    Generate timestamped filename for a session output

    Format: {prefix}_{session_id}_{YYYYMMDD_HHMMSS}.{extension}

    Examples:
        >>> generate_output_filename('a3f7e2b9')
        'draft_a3f7e2b9_20251126_153045.json'
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"{prefix}_{session_id}_{timestamp}.{extension}"
