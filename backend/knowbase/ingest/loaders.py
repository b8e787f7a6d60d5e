"""Text extractors for supported knowledgebase formats."""

from __future__ import annotations

import logging
from pathlib import Path

import fitz
import yaml
from markdown_it import MarkdownIt

from knowbase.core.errors import ExtractionFailure
from knowbase.utils.text import clean_document_text

logger = logging.getLogger(__name__)

_MD = MarkdownIt()


class BaseLoader:
    """Common loader interface."""

    suffixes: tuple[str, ...] = ()
    mime_type: str = "application/octet-stream"

    def can_load(self, path: Path) -> bool:
        return path.suffix.lower() in self.suffixes

    def load(self, path: Path) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class TextLoader(BaseLoader):
    suffixes = (".txt",)
    mime_type = "text/plain"

    def load(self, path: Path) -> str:
        return clean_document_text(path.read_bytes().decode("utf-8", errors="ignore"))


class MarkdownLoader(BaseLoader):
    suffixes = (".md", ".mdx")
    mime_type = "text/markdown"

    def load(self, path: Path) -> str:
        text = path.read_bytes().decode("utf-8", errors="ignore")
        _, body = _split_front_matter(text)
        return _markdown_to_text(body)


class PDFLoader(BaseLoader):
    suffixes = (".pdf",)
    mime_type = "application/pdf"

    def load(self, path: Path) -> str:
        with fitz.open(str(path)) as doc:
            pages = [page.get_text("text", sort=True) for page in doc]
        return clean_document_text("\n\n".join(pages))


class LoaderRegistry:
    """Registry that selects an appropriate loader for a path."""

    def __init__(self) -> None:
        self._loaders: list[BaseLoader] = [
            TextLoader(),
            MarkdownLoader(),
            PDFLoader(),
        ]

    def register(self, loader: BaseLoader) -> None:
        self._loaders.append(loader)

    def for_path(self, path: Path) -> BaseLoader | None:
        for loader in self._loaders:
            if loader.can_load(path):
                return loader
        return None

    def supported_suffixes(self) -> tuple[str, ...]:
        return tuple(suffix for loader in self._loaders for suffix in loader.suffixes)

    def supports(self, path: Path) -> bool:
        return self.for_path(path) is not None

    def read(self, path: Path) -> str:
        """Extract plain text from ``path`` or raise :class:`ExtractionFailure`."""
        loader = self.for_path(path)
        if loader is None:
            raise ExtractionFailure(path.name, f"unsupported file type {path.suffix or '(none)'}")
        try:
            text = loader.load(path)
        except ExtractionFailure:
            raise
        except Exception as exc:
            raise ExtractionFailure(path.name, str(exc)) from exc
        if not text:
            logger.warning("No text extracted from %s", path.name)
        return text


def _split_front_matter(text: str) -> tuple[dict[str, object] | None, str]:
    if text.startswith("---"):
        parts = text.split("---", 2)
        if len(parts) >= 3:
            try:
                front_matter = yaml.safe_load(parts[1]) or {}
            except yaml.YAMLError:
                return None, text
            if isinstance(front_matter, dict):
                return front_matter, parts[2]
    return None, text


def _markdown_to_text(text: str) -> str:
    tokens = _MD.parse(text)
    blocks: list[str] = []
    for token in tokens:
        content = token.content.strip()
        if content and token.type in {"inline", "fence", "code_block", "html_block"}:
            blocks.append(content)
    return clean_document_text("\n\n".join(blocks) if blocks else text)


__all__ = ["BaseLoader", "TextLoader", "MarkdownLoader", "PDFLoader", "LoaderRegistry"]
