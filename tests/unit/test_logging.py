"""Tests for process-wide logging setup."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from knowledge_mind.logging_utils import configure_logging


@pytest.fixture(autouse=True)
def _restore_root_logger() -> Iterator[None]:
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_writes_server_log(tmp_path: Path) -> None:
    log_dir = tmp_path / "logs"
    configure_logging("debug", log_dir)
    logging.getLogger("knowledge_mind.test").info("indexed %d files", 3)

    for handler in logging.getLogger().handlers:
        handler.flush()
    text = (log_dir / "server.log").read_text(encoding="utf-8")
    assert "INFO knowledge_mind.test: indexed 3 files" in text
    assert logging.getLogger().level == logging.DEBUG


def test_stderr_only_without_directory() -> None:
    configure_logging("WARNING")
    handlers = logging.getLogger().handlers
    assert len(handlers) == 1
    assert not isinstance(handlers[0], logging.FileHandler)
