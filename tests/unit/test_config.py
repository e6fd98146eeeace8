"""Tests for environment-driven settings."""

from __future__ import annotations

from pathlib import Path

import pytest

from knowledge_mind.config import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("GITHUB_CLASSIC_TOKEN", "GITHUB_TOKEN", "EMBEDDING_DIMENSION", "DATA_DIR"):
        monkeypatch.delenv(name, raising=False)


def test_defaults() -> None:
    settings = Settings(_env_file=None)
    assert settings.embedding_dimension == 768
    assert settings.max_chunk_words == 1000
    assert (settings.min_batch_size, settings.max_batch_size) == (5, 20)
    assert settings.cache_max_entries == 1000
    assert settings.github_token == ""
    assert settings.db_path == Path.home() / ".mcp-knowledge-mind" / "docs.db"


def test_db_path_follows_data_dir(tmp_path: Path) -> None:
    assert Settings(data_dir=tmp_path, _env_file=None).db_path == tmp_path / "docs.db"


def test_classic_token_takes_precedence(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GITHUB_TOKEN", "fine-grained")
    monkeypatch.setenv("GITHUB_CLASSIC_TOKEN", "classic")
    assert Settings(_env_file=None).github_token == "classic"


def test_env_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EMBEDDING_DIMENSION", "384")
    assert Settings(_env_file=None).embedding_dimension == 384
