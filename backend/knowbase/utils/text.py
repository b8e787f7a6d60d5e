"""Text processing helpers."""

from __future__ import annotations

import re

NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")
_TRAILING_SPACE_RE = re.compile(r"[ \t]+\n")


def clean_document_text(text: str) -> str:
    """Unify line endings and drop NULs while keeping paragraph breaks."""
    text = text.replace("\r\n", "\n").replace("\r", "\n").replace("\x00", "")
    return _TRAILING_SPACE_RE.sub("\n", text).strip()


def tokenize(text: str) -> list[str]:
    """Lowercase ``text`` and split it on anything that is not a-z or 0-9."""
    return NON_ALNUM_RE.sub(" ", text.lower()).split()


__all__ = ["clean_document_text", "tokenize"]
