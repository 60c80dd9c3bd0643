"""
Log sanitization for client-supplied values (topic names, envelope types).
"""

from __future__ import annotations

import re
from typing import Any

# Control characters and Unicode direction overrides
_CONTROL_CHAR_PATTERN = re.compile(
    r'[\x00-\x1f\x7f-\x9f'  # ASCII control characters
    r'\u200b-\u200f'  # Zero-width and direction marks
    r'\u202a-\u202e'  # Bidirectional text formatting (RTL override, etc.)
    r'\u2066-\u2069'  # Isolate formatting characters
    r'\ufeff]'  # BOM / Zero-width no-break space
)


def sanitize_log_data(data: Any, max_length: int = 100) -> str:
    """
    Sanitize user-provided data before logging.

    Truncates first, then strips control and direction-override characters,
    so the output length is bounded by max_length plus the "..." marker.

    Args:
        data: Raw user data; non-strings are logged via repr().
        max_length: Maximum length to include in logs.

    Returns:
        Sanitized, truncated string safe for structured logging.
    """
    text = data if isinstance(data, str) else repr(data)
    was_truncated = len(text) > max_length
    sanitized = _CONTROL_CHAR_PATTERN.sub("", text[:max_length])
    if was_truncated:
        return sanitized + "..."
    return sanitized
