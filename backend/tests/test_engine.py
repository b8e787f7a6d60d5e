"""End-to-end tests for retrieval-augmented querying."""

from __future__ import annotations

import math
from pathlib import Path

import pytest

from conftest import FakeChatModel
from knowbase.core.errors import ChatCallFailure
from knowbase.ingest.embeddings import HashedEmbeddingModel
from knowbase.ingest.indexer import DocumentIndexer
from knowbase.ingest.loaders import LoaderRegistry
from knowbase.ingest.resources import ResourceStore
from knowbase.models.entities import ConversationTurn, Role, TextSegment
from knowbase.retrieval.context import ConversationContext
from knowbase.retrieval.engine import RetrievalEngine, build_prompt
from knowbase.retrieval.vector_store import VectorStore


def _engine(tmp_path: Path, chat, files: dict[str, str]) -> RetrievalEngine:
    model = HashedEmbeddingModel(dim=2048)
    store = VectorStore()
    resources = ResourceStore(tmp_path / "kb", "s1")
    for name, text in files.items():
        source = tmp_path / name
        source.write_text(text)
        resources.import_resource(source)
    indexer = DocumentIndexer("s1", store, {}, model, LoaderRegistry())
    indexer.index_knowledgebase(resources)
    return RetrievalEngine(store, ConversationContext(system_prompt="sys"), model, chat)


def test_answer_cites_only_matching_documents(tmp_path: Path, fake_chat: FakeChatModel) -> None:
    engine = _engine(tmp_path, fake_chat, {"a.txt": "apples are red", "b.txt": "bananas are yellow"})

    result = engine.query("what color are apples")

    assert result.answer_text == "canned answer"
    assert result.source_file_names == {"a.txt"}
    sent = fake_chat.requests[0]
    assert sent[0] == ConversationTurn.system("sys")
    assert sent[-1].role is Role.USER
    assert sent[-1].text == "Relevant context:\n\napples are red\n\n\nUser question: what color are apples"


def test_no_match_sends_the_bare_message(tmp_path: Path, fake_chat: FakeChatModel) -> None:
    engine = _engine(tmp_path, fake_chat, {"a.txt": "apples are red"})

    result = engine.query("quantum chromodynamics")

    assert result.source_file_names == set()
    assert fake_chat.requests[0][-1].text == "quantum chromodynamics"


def test_history_records_raw_messages(tmp_path: Path, fake_chat: FakeChatModel) -> None:
    engine = _engine(tmp_path, fake_chat, {"a.txt": "apples are red"})

    engine.query("what color are apples")
    engine.query("and how do they taste")

    turns = engine.context.turns
    assert [(t.role, t.text) for t in turns] == [
        (Role.SYSTEM, "sys"),
        (Role.USER, "what color are apples"),
        (Role.ASSISTANT, "canned answer"),
        (Role.USER, "and how do they taste"),
        (Role.ASSISTANT, "canned answer"),
    ]
    second_request = fake_chat.requests[1]
    assert [t.text for t in second_request[1:3]] == ["what color are apples", "canned answer"]


def test_results_are_capped_after_reranking(tmp_path: Path, fake_chat: FakeChatModel) -> None:
    files = {f"doc{i}.txt": f"apples are red number {i}" for i in range(8)}
    engine = _engine(tmp_path, fake_chat, files)

    ranked = engine.retrieve("apples are red")

    assert len(ranked) == 5
    assert len(engine.query("apples are red").source_file_names) == 5


class _FixedQueryModel:
    dim = 2

    def embed(self, text: str) -> list[float]:
        return [1.0, 0.0]


def test_lexical_match_below_the_cut_is_promoted_before_truncation(fake_chat: FakeChatModel) -> None:
    store = VectorStore()
    # similarities 0.95, 0.94, ... 0.89; only the weakest mentions the question
    texts = [f"filler paragraph {i}" for i in range(6)] + ["the capital of france is paris"]
    for i, text in enumerate(texts):
        similarity = 0.95 - 0.01 * i
        store.add(
            [similarity, math.sqrt(1.0 - similarity * similarity)],
            TextSegment(text, {"fileName": f"doc{i}.txt"}),
        )
    engine = RetrievalEngine(store, ConversationContext(system_prompt="sys"), _FixedQueryModel(), fake_chat)

    ranked = engine.retrieve("capital of France")

    assert len(ranked) == 5
    assert ranked[0].text == "the capital of france is paris"
    assert ranked[0].score == pytest.approx(0.89)
    assert [m.text for m in ranked[1:]] == [f"filler paragraph {i}" for i in range(4)]
    assert "doc6.txt" in engine.query("capital of France").source_file_names


def test_empty_store_still_answers(tmp_path: Path, fake_chat: FakeChatModel) -> None:
    engine = _engine(tmp_path, fake_chat, {})
    result = engine.query("hello")
    assert result.answer_text == "canned answer"
    assert result.source_file_names == set()


def test_chat_failure_propagates(tmp_path: Path) -> None:
    class BrokenChat:
        def chat(self, turns):
            raise ChatCallFailure("down")

    engine = _engine(tmp_path, BrokenChat(), {"a.txt": "apples are red"})
    with pytest.raises(ChatCallFailure):
        engine.query("what color are apples")


def test_clear_history_resets_context(tmp_path: Path, fake_chat: FakeChatModel) -> None:
    engine = _engine(tmp_path, fake_chat, {"a.txt": "apples are red"})
    engine.query("what color are apples")
    engine.clear_history()
    assert [t.role for t in engine.context.turns] == [Role.SYSTEM]


def test_build_prompt_layout() -> None:
    assert build_prompt("q", []) == "q"
