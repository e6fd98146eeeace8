"""Header-aware text chunking.

Markdown headings drive the chunk boundaries: every ``##``/``###``/``####``
heading opens a new chunk scoped to that heading, a top-level ``#`` heading
resets the running header entirely.  Long sections are split on a soft
word limit and, as a safety valve, on a hard limit of 1.5x that.
"""

from __future__ import annotations

import re

from knowledge_mind.errors import ValidationError
from knowledge_mind.models import ChunkDraft

DEFAULT_HEADER = "Introduction"
MIN_CHUNK_CHARS = 50
HARD_LIMIT_FACTOR = 1.5

_SECTION_PREFIXES = ("## ", "### ", "#### ")
_HEADING_MARKS = re.compile(r"^#+\s*")
_WHITESPACE = re.compile(r"\s+")


def _word_count(line: str) -> int:
    # Leading whitespace and empty lines count as one token, like a plain
    # regex split would.
    return len(_WHITESPACE.split(line))


def continuation_marker(header: str) -> str:
    """Synthetic first line of a chunk that continues *header*'s section."""
    return f"(Continuation of: {header})"


class _ChunkBuilder:
    """Accumulates lines for the chunk currently being built."""

    def __init__(self) -> None:
        self.header = DEFAULT_HEADER
        self.lines: list[str] = []
        self.word_count = 0
        self.chunks: list[ChunkDraft] = []

    def add(self, line: str) -> None:
        self.lines.append(line)
        self.word_count += _word_count(line)

    def finalize(self) -> None:
        if not self.lines:
            return
        content = "\n".join(self.lines).strip()
        if len(content) > MIN_CHUNK_CHARS:
            self.chunks.append(
                ChunkDraft(header=self.header, content=content, word_count=self.word_count)
            )
        self.lines = []
        self.word_count = 0


def smart_chunk(text: str, max_chunk_words: int = 1000) -> list[ChunkDraft]:
    """Split *text* into ordered, header-tagged chunks.

    Parameters
    ----------
    text:
        Raw document text (Markdown or text extracted from a PDF).
    max_chunk_words:
        Soft word limit per chunk.  A chunk is force-closed once it grows
        past ``1.5 * max_chunk_words``.

    Returns
    -------
    list[ChunkDraft]
        Chunks in source order.  Chunks of 50 characters or fewer (after
        trimming) are dropped.
    """
    if max_chunk_words < 1:
        raise ValidationError("max_chunk_words must be a positive integer")
    if not text or not text.strip():
        return []

    builder = _ChunkBuilder()
    hard_limit = max_chunk_words * HARD_LIMIT_FACTOR

    for line in text.split("\n"):
        stripped = line.strip()

        if stripped.startswith(_SECTION_PREFIXES):
            builder.finalize()
            builder.header = _HEADING_MARKS.sub("", stripped).strip() or builder.header
            builder.add(line)
        elif stripped.startswith("# "):
            builder.finalize()
            builder.header = stripped[2:].strip()
            builder.add(line)
        else:
            line_words = _word_count(line)
            if builder.lines and builder.word_count + line_words > max_chunk_words:
                builder.finalize()
                builder.add(continuation_marker(builder.header))

            builder.add(line)

            if builder.word_count > hard_limit:
                builder.finalize()

    builder.finalize()
    return builder.chunks
