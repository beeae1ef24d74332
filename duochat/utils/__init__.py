"""Utility functions for duochat."""

from duochat.utils.ids import new_document_id, resolve_user_id
from duochat.utils.timestamps import from_millis, now, to_millis
from duochat.utils.validation import require_text

__all__ = [
    "new_document_id",
    "resolve_user_id",
    "now",
    "to_millis",
    "from_millis",
    "require_text",
]
