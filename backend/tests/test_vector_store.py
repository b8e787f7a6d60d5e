"""Tests for the in-memory vector store."""

from __future__ import annotations

import pytest

from knowbase.core.errors import DimensionMismatch
from knowbase.models.entities import TextSegment
from knowbase.retrieval.vector_store import VectorStore


def _segment(text: str, file_name: str = "a.txt") -> TextSegment:
    return TextSegment(text=text, metadata={"fileName": file_name})


def test_search_orders_by_cosine_similarity() -> None:
    store = VectorStore()
    store.add([1.0, 0.0, 0.0], _segment("x"))
    store.add([0.0, 1.0, 0.0], _segment("y"))
    store.add([1.0, 1.0, 0.0], _segment("xy"))

    matches = store.search([1.0, 0.0, 0.0], max_results=3)
    assert [match.text for match in matches] == ["x", "xy", "y"]
    assert matches[0].score == pytest.approx(1.0)
    assert matches[1].score == pytest.approx(0.7071, abs=1e-4)
    assert matches[2].score == pytest.approx(0.0)


def test_search_applies_floor_and_limit() -> None:
    store = VectorStore()
    store.add([1.0, 0.0], _segment("same"))
    store.add([1.0, 1.0], _segment("diagonal"))
    store.add([0.0, 1.0], _segment("orthogonal"))

    assert [m.text for m in store.search([1.0, 0.0], max_results=10, min_score=0.5)] == ["same", "diagonal"]
    assert [m.text for m in store.search([1.0, 0.0], max_results=1)] == ["same"]
    assert store.search([1.0, 0.0], max_results=0) == []


def test_equal_scores_keep_insertion_order() -> None:
    store = VectorStore()
    for name in ("first", "second", "third"):
        store.add([2.0, 0.0], _segment(name))
    assert [m.text for m in store.search([1.0, 0.0], max_results=3)] == ["first", "second", "third"]


def test_empty_store_returns_no_matches() -> None:
    assert VectorStore().search([1.0, 2.0], max_results=5) == []


def test_dimension_is_fixed_by_first_insert() -> None:
    store = VectorStore()
    store.add([1.0, 0.0, 0.0], _segment("x"))
    assert store.dim == 3
    with pytest.raises(DimensionMismatch):
        store.add([1.0, 0.0], _segment("bad"))
    with pytest.raises(DimensionMismatch):
        store.search([1.0, 0.0], max_results=1)
    assert store.size == 1


def test_remove_by_metadata_drops_only_matching_records() -> None:
    store = VectorStore()
    store.add_all(
        [
            ([1.0, 0.0], _segment("a1", "a.txt")),
            ([0.0, 1.0], _segment("b1", "b.txt")),
            ([1.0, 1.0], _segment("a2", "a.txt")),
        ]
    )
    assert store.remove_by_metadata("fileName", "a.txt") == 2
    assert [record.segment.text for record in store.records()] == ["b1"]
    assert store.remove_by_metadata("fileName", "missing.txt") == 0


def test_replace_by_metadata_swaps_a_files_records() -> None:
    store = VectorStore()
    store.add([1.0, 0.0], _segment("old", "a.txt"))
    store.add([0.0, 1.0], _segment("keep", "b.txt"))

    removed = store.replace_by_metadata("fileName", "a.txt", [([1.0, 0.0], _segment("new", "a.txt"))])
    assert removed == 1
    assert sorted(record.segment.text for record in store.records()) == ["keep", "new"]


def test_rejected_batch_leaves_store_untouched() -> None:
    store = VectorStore()
    store.add([1.0, 0.0], _segment("old", "a.txt"))
    with pytest.raises(DimensionMismatch):
        store.replace_by_metadata(
            "fileName",
            "a.txt",
            [([1.0, 0.0], _segment("ok", "a.txt")), ([1.0, 0.0, 0.0], _segment("bad", "a.txt"))],
        )
    assert [record.segment.text for record in store.records()] == ["old"]


def test_remove_all_keeps_dimension() -> None:
    store = VectorStore()
    store.add([1.0, 0.0], _segment("x"))
    store.remove_all()
    assert store.size == 0
    assert store.dim == 2


def test_vector_matches_itself() -> None:
    store = VectorStore()
    vectors = [[0.3, -1.2, 4.0], [2.0, 2.0, -0.5]]
    for index, vector in enumerate(vectors):
        store.add(vector, _segment(f"v{index}"))
    for index, vector in enumerate(vectors):
        best = store.search(vector, max_results=1, min_score=0.0)[0]
        assert best.text == f"v{index}"
        assert best.score == pytest.approx(1.0)
