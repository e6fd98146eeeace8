"""Exception taxonomy shared by ingestion, retrieval and serving.

Item-scoped failures (:class:`ItemProcessingError`) are isolated by the
ingestion pipeline; everything else propagates to the caller.
"""

from __future__ import annotations


class KnowledgeMindError(Exception):
    """Base class for all errors raised by this package."""


class ValidationError(KnowledgeMindError):
    """A required input is missing or invalid (empty query, missing path ...)."""


class ItemProcessingError(KnowledgeMindError):
    """A single file failed to fetch, parse or embed during ingestion."""

    def __init__(self, path: str, cause: BaseException) -> None:
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause


class ProviderUnavailableError(KnowledgeMindError):
    """An embedding, lexical, vector or remote-source backend is unreachable."""


class EmbeddingDimensionError(KnowledgeMindError):
    """A vector's length disagrees with the active model's dimension."""

    def __init__(self, expected: int, actual: int, *, where: str = "embedding") -> None:
        super().__init__(f"{where} has dimension {actual}, expected {expected}")
        self.expected = expected
        self.actual = actual


class CacheInconsistencyError(EmbeddingDimensionError):
    """A cached query vector does not match the active model's dimension."""

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(expected, actual, where="cached query embedding")
