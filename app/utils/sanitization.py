import html
import re
from typing import Any, Optional

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Escape HTML special characters in guest-supplied text before it is stored
    and later rendered on booking pages or in host calendars.
    Returns None if input is None.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    return html.escape(value, quote=True)


def sanitize_answers(data: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    """Escape every string in a custom-answers payload (one level of lists allowed)"""
    if not data:
        return data

    sanitized = {}
    for key, value in data.items():
        if isinstance(value, str):
            sanitized[key] = sanitize_string(value)
        elif isinstance(value, list):
            sanitized[key] = [sanitize_string(v) if isinstance(v, str) else v for v in value]
        else:
            sanitized[key] = value
    return sanitized


def validate_and_sanitize_input(value: Optional[str], max_length: int = 500) -> Optional[str]:
    """
    Strip, length-check, escape and drop control characters.

    Raises:
        ValueError: If input exceeds max_length
    """
    if value is None:
        return None

    value = str(value).strip()

    if len(value) > max_length:
        raise ValueError(f"Input exceeds maximum length of {max_length} characters")

    value = html.escape(value, quote=True)
    return CONTROL_CHARS.sub("", value)
