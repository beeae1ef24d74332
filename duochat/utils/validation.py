"""Input validation shared by rooms and messages."""

from typing import Any

from duochat.errors import ValidationError


def require_text(value: Any, message: str) -> str:
    """Return ``value`` if it is a string with visible text, else raise ValidationError.

    Whitespace-only strings count as empty, for ids as well as titles and bodies.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(message)
    return value


def optional_text(value: Any, message: str) -> str:
    """Return ``value`` or "" when unset; raise if set to a non-string."""
    if value is None or value == "":
        return ""
    if not isinstance(value, str):
        raise ValidationError(message)
    return value
