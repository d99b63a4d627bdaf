"""
Unit Tests — tenant data migration
═══════════════════════════════════
Coverage targets:
  ✅ N source points → N target points re-owned by the target
  ✅ Source kept by default, removed with delete_source=True
  ✅ Target created with the source's vector size and distance
  ✅ Missing source → False, nothing created
  ✅ Same tenant / colliding collection names rejected
  ✅ Failed batch keeps the cursor; rerun resumes without duplicates
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from qdrant_client.http.exceptions import ResponseHandlingException

from tenant_access.core.errors import TenantValidationError
from tenant_access.vectorstore import (
    Document,
    TenantMigration,
    VectorSearchQuery,
    collection_name_for,
)


async def _count(client, tenant_id: str) -> int:
    return (await client.count(collection_name_for(tenant_id), exact=True)).count


@pytest.fixture
def populate(store, make_chunks, unit_vector):
    async def _populate(tenant_id: str, n: int, size: int = 4):
        chunks = make_chunks("d1", [f"chunk {i}" for i in range(n)])
        vectors = [unit_vector(1.0 - i / 100, size) for i in range(n)]
        await store.add_document_vectors(tenant_id, Document(id="d1"), chunks, vectors)
        return chunks
    return _populate


@pytest.mark.unit
@pytest.mark.vectorstore
class TestMigrateTenantData:

    async def test_copies_every_point(self, store, qdrant_client, populate, tenant_a, tenant_b):
        await populate(tenant_a, 5)

        assert await store.migrate_tenant_data(tenant_a, tenant_b) is True

        assert await _count(qdrant_client, tenant_b) == 5
        assert await _count(qdrant_client, tenant_a) == 5
        records, _ = await qdrant_client.scroll(collection_name_for(tenant_b), limit=10, with_payload=True)
        assert {r.payload["tenantId"] for r in records} == {tenant_b}
        assert {r.payload["content"] for r in records} == {f"chunk {i}" for i in range(5)}

    async def test_delete_source(self, store, qdrant_client, populate, tenant_a, tenant_b):
        await populate(tenant_a, 3)

        assert await store.migrate_tenant_data(tenant_a, tenant_b, delete_source=True) is True

        assert await _count(qdrant_client, tenant_b) == 3
        assert await _count(qdrant_client, tenant_a) == 0

    async def test_target_uses_source_vector_config(self, store, qdrant_client, make_chunks, tenant_a, tenant_b):
        await store.create_tenant_collection(tenant_a, 3, "Dot")
        await store.add_document_vectors(tenant_a, Document(id="d1"), make_chunks("d1", ["x"]), [[0.1, 0.2, 0.3]])

        await store.migrate_tenant_data(tenant_a, tenant_b)

        stats = await store.get_tenant_collection_stats(tenant_b)
        assert (stats.vector_size, stats.distance) == (3, "Dot")

    async def test_migrated_points_searchable_by_target_only(self, store, populate, tenant_a, tenant_b):
        await populate(tenant_a, 2)
        await store.migrate_tenant_data(tenant_a, tenant_b)

        hits = await store.search_vectors(VectorSearchQuery(tenant_id=tenant_b, vector=[1.0, 0.0, 0.0, 0.0]))
        assert len(hits) == 2
        assert all(h.payload.tenant_id == tenant_b for h in hits)

    async def test_missing_source_returns_false(self, store, tenant_a, tenant_b):
        assert await store.migrate_tenant_data(tenant_a, tenant_b) is False
        assert await store.collection_exists(tenant_b) is False

    async def test_same_tenant_rejected(self, store, tenant_a):
        with pytest.raises(TenantValidationError):
            await store.migrate_tenant_data(tenant_a, tenant_a)

    async def test_shared_collection_rejected(self, store):
        with pytest.raises(TenantValidationError, match="share collection"):
            await store.migrate_tenant_data("a-b", "a_b")


@pytest.mark.unit
@pytest.mark.vectorstore
class TestTenantMigrationJob:

    async def test_batches_follow_cursor(self, store, qdrant_client, populate, tenant_a, tenant_b):
        await populate(tenant_a, 5)
        await store.create_tenant_collection(tenant_b)

        job = store.migration(tenant_a, tenant_b)
        assert job.batch_size == 2
        upsert = AsyncMock(wraps=qdrant_client.upsert)
        qdrant_client.upsert = upsert

        assert await job.run() == 5
        assert job.done is True
        assert job.cursor is None
        assert upsert.await_count == 3

    async def test_resume_after_failed_batch(self, store, qdrant_client, populate, tenant_a, tenant_b):
        await populate(tenant_a, 5)
        await store.create_tenant_collection(tenant_b)
        job = store.migration(tenant_a, tenant_b)

        real_upsert = qdrant_client.upsert
        calls = 0

        async def _flaky_upsert(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 2:
                raise ResponseHandlingException(ConnectionError("reset by peer"))
            return await real_upsert(*args, **kwargs)

        qdrant_client.upsert = _flaky_upsert

        with pytest.raises(ResponseHandlingException):
            await job.run()
        assert job.migrated == 2
        assert job.done is False
        assert job.cursor is not None

        assert await job.run() == 5
        assert await _count(qdrant_client, tenant_b) == 5

    async def test_job_names_collections(self, qdrant_client):
        job = TenantMigration(qdrant_client, "src-1", "dst-1")
        assert job.source_collection == "tenant_src_1"
        assert job.target_collection == "tenant_dst_1"
        assert (job.migrated, job.cursor) == (0, None)
