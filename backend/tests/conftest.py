"""
Root conftest.py — Shared fixtures for ALL tests (unit + integration)

Fixture hierarchy:
  function-scoped : redis_client, tenant_cache, qdrant_client, store,
                    unit_vector, make_chunks

Environment strategy:
  - Redis is replaced by fakeredis (one private FakeServer per test), so
    SETEX / SCAN / UNLINK / TTL behave like the real server without a socket.
  - Qdrant runs in-process (AsyncQdrantClient(location=":memory:")); every
    test gets a fresh, empty instance.
  - Failure paths use AsyncMock clients raising the backend's own errors.

How to run:
  pytest                               # all tests
  pytest -m unit                       # unit tests only
  pytest -m cache                      # TenantCache only
  pytest -m integration                # end-to-end flows
  pytest tests/unit/test_migration.py  # single file
"""

from __future__ import annotations

import math
import os
import uuid
from datetime import datetime, timezone
from typing import AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio
from qdrant_client import AsyncQdrantClient

# ─────────────────────────────────────────────────────────────────────────────
# Pin settings BEFORE any package imports so modules read test config
# ─────────────────────────────────────────────────────────────────────────────

os.environ.setdefault("REDIS_URL",       "redis://localhost:6379/15")
os.environ.setdefault("QDRANT_LOCATION", ":memory:")
os.environ.setdefault("APP_ENV",         "development")
os.environ.setdefault("DEBUG",           "true")

from tenant_access.cache import TenantCache  # noqa: E402
from tenant_access.vectorstore import DocumentChunk, TenantVectorStore  # noqa: E402


# ─────────────────────────────────────────────────────────────────────────────
# Tenant and user fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest.fixture
def tenant_a() -> str:
    return "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"


@pytest.fixture
def tenant_b() -> str:
    return "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"


@pytest.fixture
def user_id() -> str:
    return "cccccccc-cccc-cccc-cccc-cccccccccccc"


# ─────────────────────────────────────────────────────────────────────────────
# Cache fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def redis_client() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    client = fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def tenant_cache(redis_client) -> TenantCache:
    return TenantCache(redis_client, default_ttl=60)


# ─────────────────────────────────────────────────────────────────────────────
# Vector store fixtures
# ─────────────────────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def qdrant_client() -> AsyncGenerator[AsyncQdrantClient, None]:
    client = AsyncQdrantClient(location=":memory:")
    yield client
    await client.close()


@pytest.fixture
def store(qdrant_client) -> TenantVectorStore:
    """Small defaults: 4-dim vectors, 2-point migration batches."""
    return TenantVectorStore(
        qdrant_client,
        default_vector_size=4,
        migration_batch_size=2,
    )


# ─────────────────────────────────────────────────────────────────────────────
# Chunk / vector helpers
# ─────────────────────────────────────────────────────────────────────────────

def _unit_vector(cosine: float, dims: int = 2) -> list[float]:
    vec = [cosine, math.sqrt(max(0.0, 1.0 - cosine * cosine))]
    return vec + [0.0] * (dims - 2)


@pytest.fixture
def unit_vector():
    """Unit vector whose cosine similarity with [1, 0, ...] is the given value."""
    return _unit_vector


@pytest.fixture
def make_chunks():
    """
    Factory fixture: build DocumentChunks with fresh UUID point ids.

    Usage:
        chunks = make_chunks("doc-1", ["first chunk", "second chunk"])
    """
    def _build(document_id: str, contents: list[str]) -> list[DocumentChunk]:
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        return [
            DocumentChunk(
                id=str(uuid.uuid4()),
                document_id=document_id,
                content=content,
                chunk_index=i,
                tokens=len(content.split()),
                created_at=created,
            )
            for i, content in enumerate(contents)
        ]
    return _build
