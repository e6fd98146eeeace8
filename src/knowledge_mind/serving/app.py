"""FastAPI application exposing the knowledge service as a REST API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from knowledge_mind.config import Settings
from knowledge_mind.errors import (
    EmbeddingDimensionError,
    ProviderUnavailableError,
    ValidationError,
)
from knowledge_mind.models import IndexStats, IngestionReport, SearchResult
from knowledge_mind.service import KnowledgeService

logger = logging.getLogger(__name__)


# ── Request / Response schemas ────────────────────────────────────────
class AskRequest(BaseModel):
    """Incoming question from the user."""

    query: str
    limit: int | None = None


class AskResponse(BaseModel):
    """Ranked chunks answering the question."""

    query: str
    results: list[SearchResult] = []


class LearnRepositoryRequest(BaseModel):
    owner: str
    repo: str
    branch: str = "main"
    force: bool = False


class LearnFilesystemRequest(BaseModel):
    directory_path: str
    max_depth: int = 10
    force: bool = False


class CleanupResponse(BaseModel):
    removed: int


def create_app(service: KnowledgeService | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the API around *service*.

    When no service is given, one is built from *settings* (or the
    environment) on start-up.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = getattr(app.state, "service", None) is None
        if owned:
            from knowledge_mind.logging_utils import configure_logging
            from knowledge_mind.service import build_service

            resolved = settings or Settings()
            configure_logging(resolved.log_level, resolved.data_dir)
            app.state.service = build_service(resolved)
        yield
        # An injected service belongs to the caller.
        if owned:
            app.state.service.close()
            app.state.service = None

    app = FastAPI(
        title="Knowledge Mind API",
        version="0.1.0",
        description="Hybrid (lexical + semantic) search over indexed documentation.",
        lifespan=lifespan,
    )
    app.state.service = service

    def _service(request: Request) -> KnowledgeService:
        return request.app.state.service

    # ── Error mapping ─────────────────────────────────────────────────
    @app.exception_handler(ValidationError)
    async def _validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(ProviderUnavailableError)
    async def _provider_unavailable(request: Request, exc: ProviderUnavailableError) -> JSONResponse:
        logger.error("Backend unavailable on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    @app.exception_handler(EmbeddingDimensionError)
    async def _dimension_error(request: Request, exc: EmbeddingDimensionError) -> JSONResponse:
        logger.error("Embedding dimension mismatch on %s: %s", request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    # ── Routes ────────────────────────────────────────────────────────
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok"}

    # Plain ``def`` routes run in the threadpool: the store calls below block.
    @app.get("/status", response_model=IndexStats)
    def status(request: Request) -> IndexStats:
        """Document, chunk and cache counts."""
        return _service(request).status()

    @app.post("/ask", response_model=AskResponse)
    async def ask(body: AskRequest, request: Request) -> AskResponse:
        """Hybrid search over the indexed documents."""
        results = await _service(request).ask(body.query, body.limit)
        return AskResponse(query=body.query, results=results)

    @app.post("/learn/repository", response_model=IngestionReport)
    async def learn_repository(body: LearnRepositoryRequest, request: Request) -> IngestionReport:
        """Index a GitHub repository branch."""
        return await _service(request).learn_repository(
            body.owner, body.repo, body.branch, force=body.force
        )

    @app.post("/learn/filesystem", response_model=IngestionReport)
    async def learn_filesystem(body: LearnFilesystemRequest, request: Request) -> IngestionReport:
        """Index a local directory."""
        return await _service(request).learn_filesystem(
            body.directory_path, body.max_depth, force=body.force
        )

    @app.post("/cache/cleanup", response_model=CleanupResponse)
    def cleanup_cache(request: Request) -> CleanupResponse:
        """Evict least-recently-used query embeddings beyond the configured bound."""
        return CleanupResponse(removed=_service(request).cleanup_cache())

    return app
