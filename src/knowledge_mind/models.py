"""Domain models shared by ingestion, storage and retrieval."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

LOCAL_OWNER = "__local__"


class SourceType(str, Enum):
    """Where a document came from."""

    GITHUB = "github"
    LOCAL = "local"


class SourceItem(BaseModel):
    """One file discovered by a text source, not yet fetched.

    Attributes
    ----------
    repo_owner / repo_name / path:
        Natural key of the resulting :class:`Document`.  Local folders use
        ``"__local__"`` as the owner and the folder name as ``repo_name``.
    source_type:
        ``github`` or ``local``.
    locator:
        What the source needs to fetch the bytes: an absolute file path for
        local files, the blob sha for GitHub.
    """

    repo_owner: str
    repo_name: str
    path: str
    source_type: SourceType
    locator: str


class Document(BaseModel):
    """A stored document, unique on ``(repo_owner, repo_name, path)``."""

    id: int | None = None
    repo_owner: str
    repo_name: str
    path: str
    content_hash: str
    content: str
    source_type: SourceType = SourceType.GITHUB


class ChunkDraft(BaseModel):
    """Splitter output: a header-scoped slice of a document."""

    header: str
    content: str
    word_count: int


class Chunk(BaseModel):
    """A retrieval unit owned by exactly one :class:`Document`."""

    id: int | None = None
    document_id: int | None = None
    header: str
    content: str
    word_count: int = 0
    embedding: list[float] | None = None

    def embedding_text(self) -> str:
        """Text handed to the embedding model: header line, then content."""
        return f"{self.header}\n{self.content}"


class SearchResult(BaseModel):
    """A hydrated search hit, carrying its owning document's provenance."""

    id: int
    header: str
    content: str
    path: str
    repo_owner: str
    repo_name: str
    source_type: SourceType
    score: float = 0.0

    def source_ref(self) -> str:
        """Return ``path`` for local files, ``owner/repo/path`` for GitHub."""
        if self.source_type is SourceType.LOCAL:
            return self.path
        return f"{self.repo_owner}/{self.repo_name}/{self.path}"


class ItemFailure(BaseModel):
    """Why one item was left out of an ingestion run."""

    path: str
    error: str


class IngestionReport(BaseModel):
    """Outcome of one ingestion run.

    ``processed_count`` counts items that succeeded, including unchanged
    documents that were skipped; ``chunk_count`` only counts chunks written
    during this run.
    """

    processed_count: int = 0
    total_count: int = 0
    chunk_count: int = 0
    skipped_count: int = 0
    failures: list[ItemFailure] = Field(default_factory=list)


class IndexStats(BaseModel):
    """Row counts reported by the status operation."""

    total_docs: int = 0
    github_docs: int = 0
    local_docs: int = 0
    total_chunks: int = 0
    cache_entries: int = 0
