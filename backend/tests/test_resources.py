"""Tests for text extraction and knowledgebase file storage."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from knowbase.core.errors import ExtractionFailure, ResourceError
from knowbase.ingest.loaders import LoaderRegistry
from knowbase.ingest.resources import ResourceStore, format_character_count


def test_text_loader_normalises_line_endings(tmp_path: Path) -> None:
    path = tmp_path / "notes.txt"
    path.write_bytes(b"line one  \r\nline two\r\n\r\nnext\x00 paragraph\n")
    assert LoaderRegistry().read(path) == "line one\nline two\n\nnext paragraph"


def test_markdown_loader_drops_front_matter_and_markup(tmp_path: Path) -> None:
    path = tmp_path / "doc.md"
    path.write_text("---\ntitle: Doc\n---\n# Heading\n\nSome **bold** text.\n\n- item one\n")
    text = LoaderRegistry().read(path)
    assert "title:" not in text
    assert "Heading" in text
    assert "Some **bold** text." in text
    assert "item one" in text
    assert "#" not in text


def test_unsupported_suffix_raises_extraction_failure(tmp_path: Path) -> None:
    path = tmp_path / "data.csv"
    path.write_text("a,b")
    with pytest.raises(ExtractionFailure) as info:
        LoaderRegistry().read(path)
    assert info.value.file_name == "data.csv"


def test_missing_file_raises_extraction_failure(tmp_path: Path) -> None:
    with pytest.raises(ExtractionFailure):
        LoaderRegistry().read(tmp_path / "gone.txt")


def test_supported_suffixes() -> None:
    assert set(LoaderRegistry().supported_suffixes()) == {".txt", ".md", ".mdx", ".pdf"}


def test_import_copies_file_and_lists_it(tmp_path: Path) -> None:
    source = tmp_path / "src" / "b.txt"
    source.parent.mkdir()
    source.write_text("bravo")
    (tmp_path / "src" / "a.md").write_text("alpha")

    store = ResourceStore(tmp_path / "kb", "s1")
    store.import_resource(source)
    entry = store.import_resource(tmp_path / "src" / "a.md")

    assert entry.name == "a.md"
    assert entry.path == tmp_path / "kb" / "s1" / "a.md"
    assert [e.name for e in store.list_files()] == ["a.md", "b.txt"]
    assert store.read_text("b.txt") == "bravo"
    assert store.character_count("b.txt") == 5


def test_listing_skips_unsupported_and_hidden_files(tmp_path: Path) -> None:
    store = ResourceStore(tmp_path / "kb", "s1")
    store.ensure_storage()
    for name in ("a.txt", "m.csv", ".notes.txt", "z.md"):
        (store.storage_path / name).write_text("content")

    assert [e.name for e in store.list_files()] == ["a.txt", "z.md"]


def test_last_modified_is_millisecond_mtime(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    source.write_text("alpha")
    store = ResourceStore(tmp_path / "kb", "s1")
    entry = store.import_resource(source)
    os.utime(entry.path, ns=(1_700_000_000_123_456_789, 1_700_000_000_123_456_789))
    assert store.get("a.txt").last_modified == 1_700_000_000_123


def test_import_rejects_duplicates_unsupported_and_missing(tmp_path: Path) -> None:
    store = ResourceStore(tmp_path / "kb", "s1")
    source = tmp_path / "a.txt"
    source.write_text("alpha")
    store.import_resource(source)

    with pytest.raises(ResourceError) as duplicate:
        store.import_resource(source)
    assert duplicate.value.kind == "duplicate"

    unsupported = tmp_path / "image.png"
    unsupported.write_bytes(b"\x89PNG")
    with pytest.raises(ResourceError) as invalid:
        store.import_resource(unsupported)
    assert invalid.value.kind == "invalid"

    with pytest.raises(ResourceError) as missing:
        store.import_resource(tmp_path / "nope.txt")
    assert missing.value.kind == "missing"


def test_delete_and_clear(tmp_path: Path) -> None:
    store = ResourceStore(tmp_path / "kb", "s1")
    source = tmp_path / "a.txt"
    source.write_text("alpha")
    store.import_resource(source)

    assert store.delete_resource("a.txt") is True
    assert store.delete_resource("a.txt") is False
    assert store.list_files() == []
    store.clear()
    assert not store.storage_path.exists()


def test_names_cannot_escape_storage(tmp_path: Path) -> None:
    store = ResourceStore(tmp_path / "kb", "s1")
    with pytest.raises(ResourceError):
        store.delete_resource("../a.txt")


@pytest.mark.parametrize(
    "count,label",
    [(523, "523 chars"), (1234, "1.2K chars"), (3_400_000, "3.4M chars")],
)
def test_format_character_count(count: int, label: str) -> None:
    assert format_character_count(count) == label
