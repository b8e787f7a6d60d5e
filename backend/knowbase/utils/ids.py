"""Identifier helpers."""

from __future__ import annotations

import uuid


def new_id(prefix: str | None = None) -> str:
    """Generate a random UUID4 hex string with optional prefix."""
    base = uuid.uuid4().hex
    return f"{prefix}_{base}" if prefix else base


def is_safe_id(value: str) -> bool:
    """True when ``value`` can be used as a single path component."""
    if not value or value in {".", ".."}:
        return False
    return not any(sep in value for sep in ("/", "\\", "\x00"))


__all__ = ["new_id", "is_safe_id"]
