"""Helpers for document keys and user identifiers."""

from __future__ import annotations

import secrets
from typing import Any

from duochat.utils.validation import require_text

# Same alphabet and length as auto-generated document keys in hosted stores
_KEY_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789"
_KEY_LENGTH = 20


def new_document_id() -> str:
    """Generate a random 20-character document key."""
    return "".join(secrets.choice(_KEY_ALPHABET) for _ in range(_KEY_LENGTH))


def resolve_user_id(value: Any, what: str = "user") -> str:
    """Normalize a user reference to its user id.

    Accepts:
    - "u1"
    - {"userId": "u1"} or {"user_id": "u1"}
    - any object with a ``user_id`` or ``userId`` attribute (e.g. Member)

    Raises:
        ValidationError: if no non-empty string id can be extracted
    """
    if isinstance(value, str):
        user_id = value
    elif isinstance(value, dict):
        user_id = value.get("userId", value.get("user_id"))
    else:
        user_id = getattr(value, "user_id", None) or getattr(value, "userId", None)

    return require_text(user_id, f"{what} id should be a non-empty string")
