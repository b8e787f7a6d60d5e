"""Test fixtures for knowbase."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Sequence

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from knowbase.models.entities import ConversationTurn  # noqa: E402


class FakeChatModel:
    """Records every request and answers with a canned reply."""

    def __init__(self, reply: str = "canned answer", model_name: str = "fake") -> None:
        self.reply = reply
        self.model_name = model_name
        self.requests: list[list[ConversationTurn]] = []

    def chat(self, turns: Sequence[ConversationTurn]) -> str:
        self.requests.append(list(turns))
        return self.reply


def _reset_dependencies(deps) -> None:
    deps.get_app_settings.cache_clear()
    deps.shutdown()
    deps._EMBEDDING_MODEL = None
    deps._CHAT_MODEL_FACTORY = None


@pytest.fixture(autouse=True)
def reset_state(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Reset global singletons and environment between tests."""
    monkeypatch.setenv("KNB_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("KNB_EMBEDDING_DIM", "2048")
    monkeypatch.delenv("KNB_CONFIG", raising=False)
    monkeypatch.delenv("KNB_WATCH_KNOWLEDGEBASE", raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    from knowbase.api import dependencies as deps
    from knowbase.core import config

    config.get_settings.cache_clear()
    _reset_dependencies(deps)
    yield
    config.get_settings.cache_clear()
    _reset_dependencies(deps)


@pytest.fixture
def fake_chat() -> FakeChatModel:
    return FakeChatModel()


@pytest.fixture(scope="session")
def sample_text() -> str:
    return "Title\n\nParagraph one.\n\nParagraph two is here."
