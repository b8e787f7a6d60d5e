"""Chat-completion model adapters."""

from __future__ import annotations

import logging
import os
from typing import Protocol, Sequence, runtime_checkable

import openai

from knowbase.core.config import Settings
from knowbase.core.errors import ChatCallFailure
from knowbase.models.entities import ConversationTurn

logger = logging.getLogger(__name__)


@runtime_checkable
class ChatModel(Protocol):
    """Capability consumed by retrieval: ``chat(turns) -> reply text``."""

    def chat(self, turns: Sequence[ConversationTurn]) -> str: ...


class OpenAIChatModel:
    """Chat completions from the OpenAI API; failures surface as :class:`ChatCallFailure`."""

    def __init__(
        self,
        model_name: str,
        temperature: float = 1.0,
        api_key: str | None = None,
        client: openai.OpenAI | None = None,
    ) -> None:
        self.model_name = model_name
        self.temperature = temperature
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> openai.OpenAI:
        # created on first use so sessions can be opened and indexed without a key
        if self._client is None:
            key = self._api_key or os.environ.get("OPENAI_API_KEY")
            if not key:
                raise ChatCallFailure("OPENAI_API_KEY is not set; cannot reach the chat model")
            self._client = openai.OpenAI(api_key=key)
        return self._client

    def chat(self, turns: Sequence[ConversationTurn]) -> str:
        messages = [{"role": turn.role.value, "content": turn.text} for turn in turns]
        logger.debug("Sending %s messages to chat model %s", len(messages), self.model_name)
        client = self._get_client()
        try:
            response = client.chat.completions.create(
                model=self.model_name,
                messages=messages,
                temperature=self.temperature,
            )
        except openai.OpenAIError as exc:
            logger.warning("Chat call to %s failed: %s", self.model_name, exc)
            raise ChatCallFailure(f"Chat request failed: {exc}") from exc
        content = response.choices[0].message.content
        return content or ""


def build_chat_model(settings: Settings, model_name: str | None = None) -> ChatModel:
    return OpenAIChatModel(model_name=model_name or settings.chat_model, temperature=settings.chat_temperature)


__all__ = ["ChatModel", "OpenAIChatModel", "build_chat_model"]
