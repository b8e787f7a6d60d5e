"""Chunking utilities."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, Sequence

from knowbase.models.entities import FILE_NAME_KEY, TextSegment

_PARAGRAPH_RE = re.compile(r"\n\s*\n", re.MULTILINE)
_LINE_RE = re.compile(r"[^\n]+")
_SENTENCE_RE = re.compile(r"[^.!?\n]+[.!?]*", re.MULTILINE)
_WORD_RE = re.compile(r"\S+")

# finer levels are tried only when a piece is still longer than the chunk size
_SPLIT_LEVELS = (_LINE_RE, _SENTENCE_RE, _WORD_RE)


@dataclass(slots=True)
class Span:
    text: str
    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start


def chunk_text(text: str, chunk_size: int = 500, chunk_overlap: int = 50) -> list[str]:
    """Split text into overlapping chunks of at most ``chunk_size`` characters.

    Paragraphs are kept whole when they fit; longer ones are broken on lines,
    sentences, words and finally raw characters. Each chunk after the first starts
    with up to ``chunk_overlap`` characters of whole pieces carried over from the
    end of the previous chunk. Chunk text is always a verbatim slice of ``text``.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be in [0, chunk_size)")
    if not text.strip():
        return []

    pieces: list[Span] = []
    for paragraph in _iter_paragraphs(text):
        pieces.extend(_shrink(paragraph, chunk_size, level=0))

    chunks: list[str] = []
    current: list[Span] = []
    for piece in pieces:
        if current and piece.end - current[0].start > chunk_size:
            chunks.append(_join(text, current))
            current = _apply_overlap(current, chunk_overlap)
            while current and piece.end - current[0].start > chunk_size:
                current.pop(0)
        current.append(piece)
    if current:
        chunks.append(_join(text, current))
    return chunks


def build_segments(
    file_name: str,
    text: str,
    chunk_size: int = 500,
    chunk_overlap: int = 50,
) -> list[TextSegment]:
    """Chunk a document and tag every segment with its source file name."""
    return [
        TextSegment(text=chunk, metadata={FILE_NAME_KEY: file_name})
        for chunk in chunk_text(text, chunk_size=chunk_size, chunk_overlap=chunk_overlap)
    ]


def _iter_paragraphs(text: str) -> Iterator[Span]:
    last_index = 0
    for match in _PARAGRAPH_RE.finditer(text):
        span = _trim(text, last_index, match.start())
        if span:
            yield span
        last_index = match.end()
    if last_index < len(text):
        span = _trim(text, last_index, len(text))
        if span:
            yield span


def _trim(text: str, start: int, end: int) -> Span | None:
    while start < end and text[start].isspace():
        start += 1
    while end > start and text[end - 1].isspace():
        end -= 1
    if start >= end:
        return None
    return Span(text=text[start:end], start=start, end=end)


def _shrink(span: Span, chunk_size: int, level: int) -> list[Span]:
    if span.length <= chunk_size:
        return [span]
    for depth in range(level, len(_SPLIT_LEVELS)):
        parts = list(_split_on(span, _SPLIT_LEVELS[depth]))
        if len(parts) > 1:
            shrunk: list[Span] = []
            for part in parts:
                shrunk.extend(_shrink(part, chunk_size, depth + 1))
            return shrunk
    return _hard_split(span, chunk_size)


def _split_on(span: Span, pattern: re.Pattern[str]) -> Iterator[Span]:
    for match in pattern.finditer(span.text):
        piece = _trim(span.text, match.start(), match.end())
        if piece:
            yield Span(text=piece.text, start=span.start + piece.start, end=span.start + piece.end)


def _hard_split(span: Span, chunk_size: int) -> list[Span]:
    parts: list[Span] = []
    for offset in range(0, span.length, chunk_size):
        piece = span.text[offset : offset + chunk_size]
        parts.append(Span(text=piece, start=span.start + offset, end=span.start + offset + len(piece)))
    return parts


def _apply_overlap(spans: Sequence[Span], chunk_overlap: int) -> list[Span]:
    if not spans or chunk_overlap <= 0:
        return []
    retained: list[Span] = []
    end = spans[-1].end
    for span in reversed(spans):
        if end - span.start > chunk_overlap:
            break
        retained.append(span)
    return list(reversed(retained))


def _join(text: str, spans: Sequence[Span]) -> str:
    return text[spans[0].start : spans[-1].end]


__all__ = ["chunk_text", "build_segments"]
