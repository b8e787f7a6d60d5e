"""Embedding model adapters."""

from __future__ import annotations

import hashlib
import logging
import math
import os
import re
from typing import Protocol, runtime_checkable

import openai

from knowbase.core.config import Settings
from knowbase.core.errors import EmbeddingCallFailure

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r"\w+")

# text-embedding-3-* default output sizes
_OPENAI_DIMS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


@runtime_checkable
class EmbeddingModel(Protocol):
    """Capability consumed by indexing and retrieval: ``embed(text) -> vector``."""

    @property
    def dim(self) -> int: ...

    def embed(self, text: str) -> list[float]: ...


class HashedEmbeddingModel:
    """Lightweight hashed embedding model with deterministic output."""

    def __init__(self, model_name: str = "hashed", dim: int = 384) -> None:
        self.model_name = model_name
        self._dim = dim

    @property
    def dim(self) -> int:
        return self._dim

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dim
        for token in _tokenize(text):
            vector[_hash_token(token, self._dim)] += 1.0
        _normalize(vector)
        return vector


class OpenAIEmbeddingModel:
    """Embeddings from the OpenAI API; failures surface as :class:`EmbeddingCallFailure`."""

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        api_key: str | None = None,
        dim: int | None = None,
        client: openai.OpenAI | None = None,
    ) -> None:
        self.model_name = model_name
        self._dim = dim or _OPENAI_DIMS.get(model_name)
        if self._dim is None:
            raise ValueError(f"Unknown embedding dimension for model {model_name!r}; pass dim explicitly")
        if client is None:
            key = api_key or os.environ.get("OPENAI_API_KEY")
            if not key:
                raise ValueError("OPENAI_API_KEY is not set; cannot create the embedding client")
            client = openai.OpenAI(api_key=key)
        self._client = client

    @property
    def dim(self) -> int:
        return self._dim

    def embed(self, text: str) -> list[float]:
        try:
            response = self._client.embeddings.create(model=self.model_name, input=text)
        except openai.OpenAIError as exc:
            logger.warning("Embedding call to %s failed: %s", self.model_name, exc)
            raise EmbeddingCallFailure(f"Embedding request failed: {exc}") from exc
        return list(response.data[0].embedding)


def build_embedding_model(settings: Settings) -> EmbeddingModel:
    """Construct the configured embedding backend."""
    if settings.embedding_backend == "openai":
        return OpenAIEmbeddingModel(model_name=settings.embedding_model)
    return HashedEmbeddingModel(model_name="hashed", dim=settings.embedding_dim)


def _tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def _hash_token(token: str, dim: int) -> int:
    digest = hashlib.blake2b(token.encode("utf-8"), digest_size=8).digest()
    value = int.from_bytes(digest, "big")
    return value % dim


def _normalize(vector: list[float]) -> None:
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0:
        return
    inv = 1.0 / norm
    for idx, value in enumerate(vector):
        vector[idx] = value * inv


__all__ = [
    "EmbeddingModel",
    "HashedEmbeddingModel",
    "OpenAIEmbeddingModel",
    "build_embedding_model",
]
