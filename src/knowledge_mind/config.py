"""Shared configuration loaded from environment / .env file.

A single :class:`Settings` value is built once at start-up (see
:func:`knowledge_mind.service.build_service`) and handed to every
component that needs it.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # Storage
    data_dir: Path = Field(
        default_factory=lambda: Path.home() / ".mcp-knowledge-mind",
        description="Directory holding the SQLite database and log files.",
    )
    db_filename: str = "docs.db"

    # Embedding
    embedding_dimension: int = Field(default=768, gt=0)
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "nomic-embed-text"
    local_embedding_model: str = "nomic-ai/nomic-embed-text-v1.5"
    max_embed_chars: int = Field(
        default=8000,
        description="Input longer than this is truncated before embedding.",
    )

    # GitHub
    github_token: str = Field(
        default="",
        validation_alias=AliasChoices("GITHUB_CLASSIC_TOKEN", "GITHUB_TOKEN", "github_token"),
    )
    github_api_url: str = "https://api.github.com"
    request_timeout: int = 60

    # Ingestion
    max_chunk_words: int = Field(default=1000, gt=0)
    min_batch_size: int = Field(default=5, gt=0)
    max_batch_size: int = Field(default=20, gt=0)
    skip_unchanged: bool = Field(
        default=True,
        description="Skip re-chunking documents whose content hash did not change.",
    )

    # Retrieval
    cache_max_entries: int = Field(default=1000, ge=0)
    default_search_limit: int = Field(default=10, gt=0)

    # Logging
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename
