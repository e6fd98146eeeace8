"""Embedding providers — single place to swap backends.

Two variants exist, both wrapping a LangChain ``Embeddings`` object:

1. **ollama** (preferred) — ``OllamaEmbeddings`` against a running Ollama
   server (``nomic-embed-text``).
2. **local** (fallback) — ``HuggingFaceEmbeddings`` running
   ``nomic-ai/nomic-embed-text-v1.5`` in-process.

:func:`select_embedding_provider` probes Ollama once at start-up and picks
the variant.  Both produce 768-dimensional vectors, so the vector index and
the query cache never see a dimension change when the fallback kicks in.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

import requests

from knowledge_mind.base import EmbeddingProvider
from knowledge_mind.config import Settings
from knowledge_mind.errors import EmbeddingDimensionError, ProviderUnavailableError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)

ProviderKind = Literal["ollama", "local"]

_PROBE_TIMEOUT = 5


class LangChainEmbeddingProvider(EmbeddingProvider):
    """:class:`EmbeddingProvider` backed by any LangChain ``Embeddings``.

    Parameters
    ----------
    embeddings:
        The LangChain embedding model.
    kind:
        Which backend variant this is (``"ollama"`` or ``"local"``).
    model_name:
        Model identifier; part of the query-cache key.
    dimension:
        Expected vector length.  Any other length is an error.
    max_chars:
        Longer input is truncated before embedding.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        *,
        kind: ProviderKind,
        model_name: str,
        dimension: int = 768,
        max_chars: int = 8000,
    ) -> None:
        self._embeddings = embeddings
        self.kind = kind
        self.model_name = model_name
        self.dimension = dimension
        self.max_chars = max_chars

    async def embed(self, text: str) -> list[float]:
        if len(text) > self.max_chars:
            text = text[: self.max_chars]
        try:
            vector = await self._embeddings.aembed_query(text)
        except Exception as exc:
            raise ProviderUnavailableError(
                f"{self.kind} embedding backend failed for model {self.model_name!r}: {exc}"
            ) from exc

        if len(vector) != self.dimension:
            raise EmbeddingDimensionError(self.dimension, len(vector))
        return [float(x) for x in vector]

    def __repr__(self) -> str:
        return f"LangChainEmbeddingProvider(kind={self.kind!r}, model_name={self.model_name!r})"


def ollama_provider(settings: Settings) -> LangChainEmbeddingProvider:
    """Build the Ollama-backed variant."""
    from langchain_ollama import OllamaEmbeddings

    return LangChainEmbeddingProvider(
        OllamaEmbeddings(model=settings.ollama_model, base_url=settings.ollama_base_url),
        kind="ollama",
        model_name=settings.ollama_model,
        dimension=settings.embedding_dimension,
        max_chars=settings.max_embed_chars,
    )


def local_provider(settings: Settings) -> LangChainEmbeddingProvider:
    """Build the in-process sentence-transformers variant."""
    from langchain_huggingface import HuggingFaceEmbeddings

    return LangChainEmbeddingProvider(
        HuggingFaceEmbeddings(
            model_name=settings.local_embedding_model,
            model_kwargs={"trust_remote_code": True},
            encode_kwargs={"normalize_embeddings": True},
        ),
        kind="local",
        model_name=settings.local_embedding_model,
        dimension=settings.embedding_dimension,
        max_chars=settings.max_embed_chars,
    )


def ollama_available(base_url: str) -> bool:
    """Return ``True`` when an Ollama server answers at *base_url*."""
    try:
        resp = requests.get(f"{base_url.rstrip('/')}/api/tags", timeout=_PROBE_TIMEOUT)
        resp.raise_for_status()
        return True
    except requests.RequestException:
        logger.debug("Ollama probe failed at %s", base_url, exc_info=True)
        return False


def select_embedding_provider(settings: Settings) -> LangChainEmbeddingProvider:
    """Pick the Ollama variant when reachable, otherwise the local model."""
    if ollama_available(settings.ollama_base_url):
        logger.info("Ollama is active at %s; using it for embeddings", settings.ollama_base_url)
        return ollama_provider(settings)

    logger.warning("Ollama not detected; switching to local model %s", settings.local_embedding_model)
    return local_provider(settings)
