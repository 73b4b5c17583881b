"""Pytest fixtures for daemon tests."""

from typing import Optional
from unittest.mock import AsyncMock

import pytest

from kbsync_contracts import ScoredResult, SyncEntry
from kbsync_daemon.context import DaemonContext
from kbsync_daemon.replica import StoreReplica
from kbsync_daemon.search import QueryOrchestrator


def _make_entry(
    base_id: str = "kb-1",
    name: Optional[str] = None,
    threshold: Optional[float] = 0.1,
    document_count: Optional[int] = 10,
    rerank: bool = False,
) -> SyncEntry:
    metadata = {
        "id": base_id,
        "name": name or f"Base {base_id}",
        "dimensions": 1024,
        "document_count": document_count,
        "threshold": threshold,
        "created_at": 1_690_000_000_000,
        "updated_at": 1_700_000_000_000,
        "version": 1,
        "model": {"id": "bge-m3", "name": "BGE M3", "provider": "ollama"},
    }
    params = {
        "id": base_id,
        "embed_api_client": {"provider": "ollama", "model": "bge-m3", "base_url": "http://localhost:11434"},
        "document_count": document_count,
    }
    if rerank:
        metadata["rerank_model"] = {"id": "bge-reranker", "name": "BGE Reranker", "provider": "jina"}
        params["rerank_api_client"] = {"provider": "jina", "model": "bge-reranker"}
    return SyncEntry.model_validate({"metadata": metadata, "params": params})


def _results(*scores: float) -> list[ScoredResult]:
    return [ScoredResult(content=f"chunk scored {s}", score=s) for s in scores]


@pytest.fixture
def make_entry():
    """Factory for sync entries."""
    return _make_entry


@pytest.fixture
def results():
    """Factory for scored results in the given order."""
    return _results


@pytest.fixture
def peer():
    """Owner channel."""
    channel = AsyncMock()
    channel.call = AsyncMock(return_value={"active": True})
    return channel


@pytest.fixture
def replica(peer):
    return StoreReplica(peer)


@pytest.fixture
def retriever():
    mock = AsyncMock()
    mock.retrieve = AsyncMock(return_value=[])
    return mock


@pytest.fixture
def reranker():
    mock = AsyncMock()
    mock.rerank = AsyncMock(side_effect=lambda query, params, results: list(reversed(results)))
    return mock


@pytest.fixture
def orchestrator(replica, retriever, reranker):
    return QueryOrchestrator(replica, retriever, reranker, default_document_count=6, default_threshold=0.0)


@pytest.fixture
def ctx(replica, orchestrator):
    return DaemonContext(replica=replica, orchestrator=orchestrator)
