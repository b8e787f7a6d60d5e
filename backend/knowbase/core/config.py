"""Application configuration handling."""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal, Mapping

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

ENV_PREFIX = "KNB_"
DEFAULT_CONFIG_PATH = Path("~/.config/knowbase/config.yaml")

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful AI assistant. Use the provided context to answer questions accurately. "
    "If the context doesn't contain relevant information, say so politely. "
    "In your response, do not use any markdown formatting. Simple plain text is preferred."
)

_YAML_KEY_MAP: Mapping[tuple[str, ...], str] = {
    ("storage", "data_dir"): "data_dir",
    ("storage", "db_path"): "db_path",
    ("storage", "cache_dir"): "cache_dir",
    ("storage", "knowledgebase_dir"): "knowledgebase_dir",
    ("embeddings", "backend"): "embedding_backend",
    ("embeddings", "model"): "embedding_model",
    ("embeddings", "dim"): "embedding_dim",
    ("chat", "model"): "chat_model",
    ("chat", "temperature"): "chat_temperature",
    ("chunking", "chunk_size"): "chunk_size",
    ("chunking", "chunk_overlap"): "chunk_overlap",
    ("retrieval", "max_results_before_rerank"): "max_results_before_rerank",
    ("retrieval", "min_score"): "min_score",
    ("retrieval", "top_k_final"): "top_k_final",
    ("conversation", "history_window"): "history_window",
    ("conversation", "snippet_chars"): "snippet_chars",
    ("conversation", "max_query_length"): "max_query_length",
    ("conversation", "system_prompt"): "system_prompt",
    ("watcher", "enabled"): "watch_knowledgebase",
}

_PATH_FIELDS = ("data_dir", "db_path", "cache_dir", "knowledgebase_dir")


class Settings(BaseModel):
    """Runtime configuration loaded from YAML file and environment variables."""

    data_dir: Path = Field(default=Path.home() / ".knowbase")
    db_path: Path | None = None
    cache_dir: Path | None = None
    knowledgebase_dir: Path | None = None
    embedding_backend: Literal["hashed", "openai"] = "hashed"
    embedding_model: str = "text-embedding-3-small"
    embedding_dim: int = Field(default=384, ge=1)
    chat_model: str = "gpt-4o-mini"
    chat_temperature: float = 1.0
    chunk_size: int = Field(default=500, ge=1)
    chunk_overlap: int = Field(default=50, ge=0)
    max_results_before_rerank: int = Field(default=15, ge=1)
    min_score: float = 0.5
    top_k_final: int = Field(default=5, ge=1)
    history_window: int = Field(default=4, ge=0)
    snippet_chars: int = Field(default=100, ge=1)
    max_query_length: int = Field(default=2000, ge=1)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    watch_knowledgebase: bool = False

    model_config = {
        "validate_assignment": True,
        "extra": "ignore",
    }

    @field_validator(*_PATH_FIELDS, mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path | None:
        if value is None:
            return None
        if isinstance(value, Path):
            return value.expanduser()
        if isinstance(value, str):
            return Path(value).expanduser()
        raise TypeError("storage paths must be a path or string")

    @model_validator(mode="after")
    def _check_chunking(self) -> "Settings":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be smaller than chunk_size")
        return self

    @property
    def resolved_db_path(self) -> Path:
        return self.db_path or self.data_dir / "knowbase.db"

    @property
    def resolved_cache_dir(self) -> Path:
        return self.cache_dir or self.data_dir / "cache"

    @property
    def resolved_knowledgebase_dir(self) -> Path:
        return self.knowledgebase_dir or self.data_dir / "knowledgebase"

    @classmethod
    def from_yaml(cls, path: Path | None = None) -> "Settings":
        """Load YAML config and overlay env vars; fall back to defaults."""
        config_path = cls._resolve_config_path(path)
        data: dict[str, Any] = {}
        if config_path and config_path.exists():
            with config_path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
            data.update(_flatten_yaml(raw))
        data.update(_load_env_overrides())
        return cls(**data)

    @staticmethod
    def _resolve_config_path(path: Path | None) -> Path | None:
        if path is not None:
            return path.expanduser()
        env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
        if env_path:
            return Path(env_path).expanduser()
        resolved_default = DEFAULT_CONFIG_PATH.expanduser()
        return resolved_default if resolved_default.exists() else None


def _flatten_yaml(raw: Mapping[str, Any], prefix: tuple[str, ...] = ()) -> dict[str, Any]:
    """Flatten nested YAML configuration to Settings field names."""
    flat: dict[str, Any] = {}
    for key, value in raw.items():
        next_prefix = prefix + (key,)
        if isinstance(value, Mapping):
            flat.update(_flatten_yaml(value, prefix=next_prefix))
        else:
            mapped_key = _YAML_KEY_MAP.get(next_prefix)
            if mapped_key:
                flat[mapped_key] = value
            elif key in Settings.model_fields:
                flat[key] = value
    return flat


def _load_env_overrides() -> dict[str, Any]:
    """Map environment variables with KNB_ prefix into Settings fields."""
    overrides: dict[str, Any] = {}
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        field_name = key[len(ENV_PREFIX) :].lower()
        if field_name in Settings.model_fields:
            overrides[field_name] = value
    return overrides


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings accessor for dependency injection."""
    return Settings.from_yaml()


__all__ = ["Settings", "get_settings", "DEFAULT_SYSTEM_PROMPT"]
