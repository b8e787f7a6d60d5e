"""Conversation history and follow-up query contextualisation."""

from __future__ import annotations

import logging
import threading
from typing import Iterable

from knowbase.core.config import DEFAULT_SYSTEM_PROMPT
from knowbase.models.entities import ChatRecord, ConversationTurn, Role

logger = logging.getLogger(__name__)


class ConversationContext:
    """Ordered turns for one session, always starting with a single system turn.

    History grows without a cap; trimming or summarising old turns is left to
    product policy.
    """

    def __init__(
        self,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        window: int = 4,
        snippet_chars: int = 100,
    ) -> None:
        self.system_prompt = system_prompt
        self.window = window
        self.snippet_chars = snippet_chars
        self._turns: list[ConversationTurn] = [ConversationTurn.system(system_prompt)]
        self._lock = threading.Lock()

    @classmethod
    def from_records(
        cls,
        records: Iterable[ChatRecord],
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        window: int = 4,
        snippet_chars: int = 100,
    ) -> "ConversationContext":
        """Rebuild a context from persisted transcript messages in storage order."""
        context = cls(system_prompt=system_prompt, window=window, snippet_chars=snippet_chars)
        count = 0
        for record in records:
            context.record_turn(Role.USER if record.is_user else Role.ASSISTANT, record.content)
            count += 1
        logger.debug("Loaded %s messages into session history", count)
        return context

    @property
    def turns(self) -> list[ConversationTurn]:
        with self._lock:
            return list(self._turns)

    def __len__(self) -> int:
        return len(self._turns)

    def record_turn(self, role: Role, text: str) -> None:
        if role is Role.SYSTEM:
            raise ValueError("the system turn is fixed; use clear() to reset it")
        with self._lock:
            self._turns.append(ConversationTurn(role, text))

    def clear(self) -> None:
        with self._lock:
            self._turns = [ConversationTurn.system(self.system_prompt)]

    def contextualize(self, current_query: str) -> str:
        """Prefix the query with recent turns so follow-up questions embed well.

        Only used for embedding search; never sent to the chat model.
        """
        with self._lock:
            recent = self._turns[1:]
        if not recent or self.window <= 0:
            return current_query
        parts: list[str] = []
        for turn in recent[-self.window :]:
            if turn.role is Role.USER:
                parts.append(f"User asked: {turn.text}")
            elif turn.role is Role.ASSISTANT:
                parts.append(f"Assistant answered: {self._snippet(turn.text)}")
        parts.append(f"Current question: {current_query}")
        contextualized = " ".join(parts)
        logger.debug("Contextualized query: %s", contextualized)
        return contextualized

    def request_turns(self, augmented_prompt: str) -> list[ConversationTurn]:
        """History as sent to the chat model: the last user turn carries the augmented prompt."""
        with self._lock:
            turns = list(self._turns)
        if len(turns) < 2 or turns[-1].role is not Role.USER:
            raise ValueError("the last turn must be the pending user message")
        turns[-1] = ConversationTurn.user(augmented_prompt)
        return turns

    def _snippet(self, text: str) -> str:
        if len(text) > self.snippet_chars:
            return text[: self.snippet_chars] + "..."
        return text


__all__ = ["ConversationContext"]
