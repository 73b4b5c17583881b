"""Pytest fixtures for owner tests."""

from unittest.mock import AsyncMock

import pytest

from kbsync_contracts import KnowledgeBase


def _make_base(
    base_id: str = "kb-1",
    updated_at: int = 1_700_000_000_000,
    version: int = 1,
    items: int = 0,
    **overrides,
) -> KnowledgeBase:
    data = {
        "id": base_id,
        "name": f"Base {base_id}",
        "description": "",
        "model": {
            "id": "text-embedding-3-small",
            "name": "Embedding Small",
            "provider": "openai",
            "group": "embedding",
            "owned_by": "openai",
        },
        "embed_api_client": {
            "provider": "openai",
            "model": "text-embedding-3-small",
            "api_key": "secret",
            "base_url": "https://api.openai.com",
        },
        "dimensions": 1536,
        "document_count": 10,
        "chunk_size": 512,
        "chunk_overlap": 128,
        "threshold": 0.1,
        "created_at": 1_690_000_000_000,
        "updated_at": updated_at,
        "version": version,
        "items": [{"id": f"{base_id}-item-{i}"} for i in range(items)],
    }
    data.update(overrides)
    return KnowledgeBase.model_validate(data)


@pytest.fixture
def make_base():
    """Factory for owner-side knowledge bases."""
    return _make_base


@pytest.fixture
def peer():
    """Daemon channel that accepts every push."""
    channel = AsyncMock()
    channel.call = AsyncMock(return_value={"accepted": True, "syncedAt": "2026-01-01T00:00:00+00:00"})
    return channel
