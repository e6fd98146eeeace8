"""Unit tests for the serving layer."""

from __future__ import annotations

import inspect
from pathlib import Path
from unittest.mock import patch

import pytest
from conftest import InMemoryStore
from fastapi.testclient import TestClient

from knowledge_mind.serving.app import create_app


@pytest.fixture()
def client(service) -> TestClient:
    return TestClient(create_app(service))


def test_health_endpoint(client: TestClient) -> None:
    """GET /health should return 200 with status ok."""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_status_on_empty_index(client: TestClient) -> None:
    response = client.get("/status")
    assert response.status_code == 200
    assert response.json() == {
        "total_docs": 0,
        "github_docs": 0,
        "local_docs": 0,
        "total_chunks": 0,
        "cache_entries": 0,
    }


def test_learn_filesystem_then_ask(client: TestClient, memory_store: InMemoryStore, docs_tree: Path) -> None:
    response = client.post("/learn/filesystem", json={"directory_path": str(docs_tree)})
    assert response.status_code == 200
    body = response.json()
    assert body["processed_count"] == 2
    assert body["failures"] == []

    intro_id = memory_store.chunks_for(str((docs_tree / "intro.md").resolve()))[0].id
    memory_store.vector_hits = [(intro_id, 0.1)]

    response = client.post("/ask", json={"query": "what does it index?", "limit": 3})
    assert response.status_code == 200
    results = response.json()["results"]
    assert [r["id"] for r in results] == [intro_id]
    assert results[0]["header"] == "Intro"
    assert results[0]["source_type"] == "local"
    assert results[0]["score"] > 0


def test_blank_query_is_422(client: TestClient) -> None:
    response = client.post("/ask", json={"query": "  "})
    assert response.status_code == 422
    assert "query is required" in response.json()["detail"]


def test_missing_directory_is_422(client: TestClient, tmp_path: Path) -> None:
    response = client.post("/learn/filesystem", json={"directory_path": str(tmp_path / "nope")})
    assert response.status_code == 422


def test_unavailable_backend_is_503(client: TestClient, memory_store: InMemoryStore) -> None:
    memory_store.unavailable = True
    response = client.post("/ask", json={"query": "anything"})
    assert response.status_code == 503


def test_cache_cleanup(client: TestClient) -> None:
    for query in ("a", "b", "c"):
        client.post("/ask", json={"query": query})
    response = client.post("/cache/cleanup")
    assert response.status_code == 200
    assert response.json() == {"removed": 1}


@pytest.mark.parametrize("path", ["/status", "/cache/cleanup"])
def test_store_bound_routes_run_in_threadpool(path: str) -> None:
    app = create_app()
    route = next(r for r in app.routes if getattr(r, "path", None) == path)
    assert not inspect.iscoroutinefunction(route.endpoint)


def test_lifespan_closes_the_service_it_built(service, memory_store: InMemoryStore, settings) -> None:
    app = create_app(settings=settings)
    with (
        patch("knowledge_mind.service.build_service", return_value=service) as build,
        patch("knowledge_mind.logging_utils.configure_logging"),
    ):
        with TestClient(app) as client:
            assert client.get("/status").status_code == 200
            assert memory_store.closed is False

    build.assert_called_once_with(settings)
    assert memory_store.closed is True


def test_lifespan_leaves_injected_service_open(service, memory_store: InMemoryStore) -> None:
    with TestClient(create_app(service)) as client:
        assert client.get("/health").status_code == 200
    assert memory_store.closed is False
