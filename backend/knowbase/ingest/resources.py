"""Per-session knowledgebase file storage."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from knowbase.core.errors import ResourceError
from knowbase.ingest.loaders import LoaderRegistry
from knowbase.models.entities import FileEntry

logger = logging.getLogger(__name__)


class ResourceStore:
    """Files backing one session's knowledgebase.

    Files live flat in ``<root>/<session_id>``; a file's name is its identity, so
    importing a second file with the same name is rejected.
    """

    def __init__(self, root: Path, session_id: str, loaders: LoaderRegistry | None = None) -> None:
        self.session_id = session_id
        self.storage_path = root.expanduser() / session_id
        self.loaders = loaders or LoaderRegistry()

    def ensure_storage(self) -> Path:
        self.storage_path.mkdir(parents=True, exist_ok=True)
        return self.storage_path

    def list_files(self) -> list[FileEntry]:
        """Indexable files, sorted by name; dotfiles and unsupported formats are skipped."""
        if not self.storage_path.is_dir():
            return []
        entries = [
            _entry(path)
            for path in self.storage_path.iterdir()
            if path.is_file() and not path.name.startswith(".") and self.loaders.supports(path)
        ]
        entries.sort(key=lambda entry: entry.name)
        return entries

    def get(self, file_name: str) -> FileEntry | None:
        path = self._resolve(file_name)
        if not path.is_file():
            return None
        return _entry(path)

    def exists(self, file_name: str) -> bool:
        return self.get(file_name) is not None

    def is_supported(self, file_name: str) -> bool:
        return self.loaders.supports(Path(file_name))

    def import_resource(self, source: Path) -> FileEntry:
        """Copy ``source`` into the knowledgebase and return its entry."""
        source = source.expanduser()
        if not source.is_file():
            raise ResourceError(f"File not found: {source}", kind="missing")
        if not self.is_supported(source.name):
            raise ResourceError(f"Unsupported file format: {source.suffix.lower() or '(none)'}")
        destination = self._resolve(source.name)
        if destination.exists():
            raise ResourceError(f"File already exists: {source.name}", kind="duplicate")
        self.ensure_storage()
        shutil.copy2(source, destination)
        logger.info("Imported %s into knowledgebase %s", source.name, self.session_id)
        return _entry(destination)

    def delete_resource(self, file_name: str) -> bool:
        path = self._resolve(file_name)
        if not path.is_file():
            return False
        path.unlink()
        logger.info("Deleted %s from knowledgebase %s", file_name, self.session_id)
        return True

    def read_text(self, file_name: str) -> str:
        path = self._resolve(file_name)
        if not path.is_file():
            raise ResourceError(f"File not found: {file_name}", kind="missing")
        return self.loaders.read(path)

    def character_count(self, file_name: str) -> int:
        return len(self.read_text(file_name))

    def clear(self) -> None:
        if self.storage_path.exists():
            shutil.rmtree(self.storage_path)

    def _resolve(self, file_name: str) -> Path:
        name = Path(file_name).name
        if not name or name != file_name:
            raise ResourceError(f"Invalid resource name: {file_name!r}")
        return self.storage_path / name


def format_character_count(count: int) -> str:
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M chars"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K chars"
    return f"{count} chars"


def _entry(path: Path) -> FileEntry:
    return FileEntry(name=path.name, last_modified=path.stat().st_mtime_ns // 1_000_000, path=path)


__all__ = ["ResourceStore", "format_character_count"]
