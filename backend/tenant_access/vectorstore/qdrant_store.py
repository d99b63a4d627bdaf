"""
Qdrant Vector Store — Collection-per-Tenant Isolation

Isolation model:
  Every tenant maps to its own collection: "tenant_<sanitised tenant_id>"
  (see vectorstore/naming.py).

  - All upserts go to the tenant's collection, payload.tenantId = tenant
  - All searches and deletes are routed to the tenant's collection AND
    filtered on tenantId (vectorstore/filters.py)
  - Search results are re-checked after the backend answers: a hit whose
    payload tenant is not the query tenant is dropped and logged
    (defence-in-depth: sanitised names can collide, filters cannot)

Architecture:
  One shared AsyncQdrantClient (pooled HTTP), one TenantVectorStore per
  process, tenant id passed per call. Collections are created lazily on the
  first ingest; `tenantId` is indexed with is_tenant=True so Qdrant can
  co-locate a tenant's points on disk.

Failure policy:
  Backend errors are logged and mapped to False / None / []. Caller misuse
  (arity mismatch, missing query vector, empty tenant id, self-migration)
  raises TenantValidationError subclasses before any request is sent.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Sequence, TypeVar

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ApiException
from qdrant_client.http.models import (
    Distance,
    FilterSelector,
    KeywordIndexParams,
    KeywordIndexType,
    OptimizersConfigDiff,
    PayloadSchemaType,
    PointStruct,
    VectorParams,
)

from tenant_access.core.config import Settings
from tenant_access.core.deadline import bounded
from tenant_access.core.errors import (
    MissingQueryVectorError,
    TenantValidationError,
    VectorArityError,
)
from tenant_access.observability import traced
from tenant_access.vectorstore.base import (
    CHUNK_ID_FIELD,
    DOCUMENT_ID_FIELD,
    TENANT_ID_FIELD,
    Document,
    DocumentChunk,
    TenantCollection,
    VectorPayload,
    VectorSearchQuery,
    VectorSearchResult,
    VectorStats,
)
from tenant_access.vectorstore.filters import document_filter, tenant_filter
from tenant_access.vectorstore.hybrid import rerank
from tenant_access.vectorstore.migration import TenantMigration
from tenant_access.vectorstore.naming import (
    collection_name_for,
    guess_tenant_id,
    is_tenant_collection,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# ApiException covers HTTP status errors and transport failures wrapped by the
# REST client; local mode reports unknown collections / bad ids as ValueError.
_BACKEND_ERRORS: tuple[type[BaseException], ...] = (
    ApiException, OSError, asyncio.TimeoutError, ValueError,
)


def _require_tenant(tenant_id: str) -> None:
    if not tenant_id:
        raise TenantValidationError("tenant_id must be a non-empty string")


def _distance(name: str) -> Distance:
    try:
        return Distance(name)
    except ValueError as exc:
        valid = ", ".join(d.value for d in Distance)
        raise TenantValidationError(f"Unknown distance '{name}'. Valid options: {valid}") from exc


class TenantVectorStore:
    """
    Async, tenant-isolated vector store over a shared Qdrant deployment.

    Usage::

        store = TenantVectorStore.from_settings(settings)
        await store.add_document_vectors(tenant_id, document, chunks, vectors)
        hits = await store.search_vectors(
            VectorSearchQuery(tenant_id=tenant_id, vector=query_vec, limit=5)
        )
    """

    def __init__(
        self,
        client:               AsyncQdrantClient,
        default_vector_size:  int = 1536,
        default_distance:     str = "Cosine",
        search_threshold:     float = 0.7,
        text_weight:          float = 0.3,
        vector_weight:        float = 0.7,
        stats_scroll_limit:   int = 10_000,
        migration_batch_size: int = 256,
        operation_timeout:    float | None = None,
    ) -> None:
        self._client           = client
        self._default_size     = default_vector_size
        self._default_distance = default_distance
        self._threshold        = search_threshold
        self._text_weight      = text_weight
        self._vector_weight    = vector_weight
        self._stats_limit      = stats_scroll_limit
        self._batch_size       = migration_batch_size
        self._timeout          = operation_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "TenantVectorStore":
        return cls(
            client=create_qdrant_client(settings),
            default_vector_size=settings.vector_default_size,
            default_distance=settings.vector_default_distance,
            search_threshold=settings.vector_search_threshold,
            text_weight=settings.hybrid_text_weight,
            vector_weight=settings.hybrid_vector_weight,
            stats_scroll_limit=settings.stats_scroll_limit,
            migration_batch_size=settings.migration_batch_size,
            operation_timeout=settings.operation_timeout,
        )

    async def aclose(self) -> None:
        try:
            await self._client.close()
        except _BACKEND_ERRORS as exc:
            logger.warning("TenantVectorStore close error: %s", exc)

    # ------------------------------------------------------------------
    # Collection lifecycle
    # ------------------------------------------------------------------

    async def collection_exists(self, tenant_id: str) -> bool:
        _require_tenant(tenant_id)
        name = collection_name_for(tenant_id)
        try:
            return name in await self._collection_names()
        except _BACKEND_ERRORS:
            logger.exception("Collection lookup failed | tenant=%s collection=%s", tenant_id, name)
            return False

    @traced("TenantVectorStore.create_tenant_collection")
    async def create_tenant_collection(
        self,
        tenant_id:   str,
        vector_size: int | None = None,
        distance:    str | None = None,
    ) -> bool:
        """
        Create the tenant's collection and its keyword payload indexes.

        Idempotent: an existing collection is left untouched (its vector size
        is NOT checked against ``vector_size``) and the call returns True.
        """
        _require_tenant(tenant_id)
        size = vector_size or self._default_size
        if size <= 0:
            raise TenantValidationError(f"vector_size must be positive, got {size}")
        metric = _distance(distance or self._default_distance)
        name = collection_name_for(tenant_id)

        try:
            if name in await self._collection_names():
                logger.debug("Collection already exists | tenant=%s collection=%s", tenant_id, name)
                return True

            await self._call(self._client.create_collection(
                collection_name=name,
                vectors_config=VectorParams(size=size, distance=metric),
                optimizers_config=OptimizersConfigDiff(default_segment_number=2),
                replication_factor=1,
            ))
            await self._call(self._client.create_payload_index(
                collection_name=name,
                field_name=TENANT_ID_FIELD,
                field_schema=KeywordIndexParams(type=KeywordIndexType.KEYWORD, is_tenant=True),
            ))
            for field_name in (DOCUMENT_ID_FIELD, CHUNK_ID_FIELD):
                await self._call(self._client.create_payload_index(
                    collection_name=name,
                    field_name=field_name,
                    field_schema=PayloadSchemaType.KEYWORD,
                ))
        except _BACKEND_ERRORS:
            logger.exception("Collection create failed | tenant=%s collection=%s", tenant_id, name)
            return False

        logger.info(
            "Collection created | tenant=%s collection=%s size=%d distance=%s",
            tenant_id, name, size, metric.value,
        )
        return True

    @traced("TenantVectorStore.delete_tenant_collection")
    async def delete_tenant_collection(self, tenant_id: str) -> bool:
        """
        Remove the tenant's points, then drop the collection once it is empty.

        Tenant ids that sanitise to the same name share a collection; while a
        neighbour still owns points there, only this tenant's points go.
        Deleting a missing collection succeeds.
        """
        _require_tenant(tenant_id)
        name = collection_name_for(tenant_id)
        try:
            if name not in await self._collection_names():
                return True
            await self._call(self._client.delete(
                collection_name=name,
                points_selector=FilterSelector(filter=tenant_filter(tenant_id)),
                wait=True,
            ))
            remaining = await self._call(self._client.count(collection_name=name, exact=True))
            if remaining.count:
                logger.warning(
                    "Collection shared, kept after tenant delete | tenant=%s collection=%s remaining=%d",
                    tenant_id, name, remaining.count,
                )
                return True
            await self._call(self._client.delete_collection(collection_name=name))
        except _BACKEND_ERRORS:
            logger.exception("Collection delete failed | tenant=%s collection=%s", tenant_id, name)
            return False

        logger.info("Collection deleted | tenant=%s collection=%s", tenant_id, name)
        return True

    async def clear_tenant_data(self, tenant_id: str) -> bool:
        """Tenant offboarding. Same effect as delete_tenant_collection."""
        return await self.delete_tenant_collection(tenant_id)

    # ------------------------------------------------------------------
    # Ingest / remove
    # ------------------------------------------------------------------

    @traced("TenantVectorStore.add_document_vectors")
    async def add_document_vectors(
        self,
        tenant_id: str,
        document:  Document,
        chunks:    Sequence[DocumentChunk],
        vectors:   Sequence[Sequence[float]],
    ) -> bool:
        """
        Upsert one point per chunk (point id = chunk id).

        Re-ingesting the same chunks overwrites their points. The collection
        is created on first use with the dimension of ``vectors[0]``.
        """
        _require_tenant(tenant_id)
        if len(chunks) != len(vectors):
            raise VectorArityError(len(chunks), len(vectors))
        if not chunks:
            return True

        points = [
            PointStruct(
                id=chunk.id,
                vector=[float(x) for x in vector],
                payload=VectorPayload.for_chunk(tenant_id, document, chunk).to_wire(),
            )
            for chunk, vector in zip(chunks, vectors)
        ]

        if not await self.create_tenant_collection(tenant_id, vector_size=len(vectors[0])):
            return False

        name = collection_name_for(tenant_id)
        try:
            await self._call(self._client.upsert(collection_name=name, points=points, wait=True))
        except _BACKEND_ERRORS:
            logger.exception(
                "Vector upsert failed | tenant=%s document=%s chunks=%d",
                tenant_id, document.id, len(points),
            )
            return False

        logger.info(
            "Vectors upserted | tenant=%s document=%s chunks=%d",
            tenant_id, document.id, len(points),
        )
        return True

    @traced("TenantVectorStore.remove_document_vectors")
    async def remove_document_vectors(self, tenant_id: str, document_id: str) -> bool:
        _require_tenant(tenant_id)
        name = collection_name_for(tenant_id)
        try:
            if name not in await self._collection_names():
                return True
            await self._call(self._client.delete(
                collection_name=name,
                points_selector=FilterSelector(filter=document_filter(tenant_id, document_id)),
                wait=True,
            ))
        except _BACKEND_ERRORS:
            logger.exception("Vector delete failed | tenant=%s document=%s", tenant_id, document_id)
            return False

        logger.info("Vectors deleted | tenant=%s document=%s", tenant_id, document_id)
        return True

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    @traced("TenantVectorStore.search_vectors")
    async def search_vectors(self, query: VectorSearchQuery) -> list[VectorSearchResult]:
        """
        Top-``limit`` similarity hits inside the query tenant's data.

        Hits scoring below the threshold (query.threshold, else the store
        default) are not returned. A tenant with no collection yet gets [].
        """
        _require_tenant(query.tenant_id)
        if query.vector is None or len(query.vector) == 0:
            raise MissingQueryVectorError("Vector is required for vector search")
        if query.limit <= 0:
            raise TenantValidationError(f"limit must be positive, got {query.limit}")

        threshold = self._threshold if query.threshold is None else query.threshold
        name = collection_name_for(query.tenant_id)
        scope = tenant_filter(query.tenant_id, query.filter)

        try:
            if name not in await self._collection_names():
                return []
            response = await self._call(self._client.query_points(
                collection_name=name,
                query=[float(x) for x in query.vector],
                query_filter=scope,
                limit=query.limit,
                offset=query.offset or None,
                score_threshold=threshold,
                with_payload=True,
            ))
        except _BACKEND_ERRORS:
            logger.exception("Vector search failed | tenant=%s collection=%s", query.tenant_id, name)
            return []

        results: list[VectorSearchResult] = []
        for point in response.points:
            payload = VectorPayload.from_wire(point.payload)
            if payload.tenant_id != query.tenant_id:
                logger.warning(
                    "Dropped cross-tenant hit | tenant=%s hit_tenant=%s point=%s",
                    query.tenant_id, payload.tenant_id, point.id,
                )
                continue
            results.append(VectorSearchResult(id=str(point.id), score=point.score, payload=payload))

        logger.debug("Vector search | tenant=%s hits=%d", query.tenant_id, len(results))
        return results

    @traced("TenantVectorStore.hybrid_search")
    async def hybrid_search(
        self,
        tenant_id:     str,
        text_query:    str,
        vector:        Sequence[float] | None,
        limit:         int = 10,
        text_weight:   float | None = None,
        vector_weight: float | None = None,
        filter:        dict[str, Any] | None = None,
        threshold:     float | None = None,
    ) -> list[VectorSearchResult]:
        """
        Vector search over ``limit * 2`` candidates, re-ranked with a
        case-insensitive substring match of ``text_query`` (see hybrid.py).
        """
        candidates = await self.search_vectors(VectorSearchQuery(
            tenant_id=tenant_id,
            vector=None if vector is None else [float(x) for x in vector],
            text=text_query,
            limit=limit * 2,
            filter=filter,
            threshold=threshold,
        ))
        return rerank(
            candidates,
            text_query,
            limit,
            text_weight=self._text_weight if text_weight is None else text_weight,
            vector_weight=self._vector_weight if vector_weight is None else vector_weight,
        )

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    async def get_tenant_collection_stats(self, tenant_id: str) -> TenantCollection | None:
        """
        Size, distance and counts for one tenant's collection, or None.

        documents_count looks at no more than `stats_scroll_limit` points and
        undercounts tenants holding more chunks than that.
        """
        _require_tenant(tenant_id)
        name = collection_name_for(tenant_id)
        try:
            if name not in await self._collection_names():
                return None
            return await self._collection_stats(name, tenant_id)
        except _BACKEND_ERRORS:
            logger.exception("Collection stats failed | tenant=%s collection=%s", tenant_id, name)
            return None

    @traced("TenantVectorStore.get_vector_stats")
    async def get_vector_stats(self) -> VectorStats:
        """Aggregate over every tenant collection. Backend failure → zeroed stats."""
        try:
            names = [n for n in await self._collection_names() if is_tenant_collection(n)]
            collections = []
            for name in sorted(names):
                tenant_id = await self._stored_tenant_id(name) or guess_tenant_id(name)
                collections.append(await self._collection_stats(name, tenant_id))
        except _BACKEND_ERRORS:
            logger.exception("Vector stats failed")
            return VectorStats()

        return VectorStats(
            total_vectors=sum(c.chunks_count for c in collections),
            total_collections=len(collections),
            tenant_collections=collections,
        )

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    def migration(self, source_tenant_id: str, target_tenant_id: str) -> TenantMigration:
        """
        Build a resumable migration job. Use it directly to keep hold of the
        cursor across retries; migrate_tenant_data() runs a fresh one.
        """
        _require_tenant(source_tenant_id)
        _require_tenant(target_tenant_id)
        if source_tenant_id == target_tenant_id:
            raise TenantValidationError("Source and target tenant must differ")
        if collection_name_for(source_tenant_id) == collection_name_for(target_tenant_id):
            raise TenantValidationError(
                f"Tenants '{source_tenant_id}' and '{target_tenant_id}' share collection "
                f"'{collection_name_for(source_tenant_id)}'; migration would rewrite in place"
            )
        return TenantMigration(
            self._client,
            source_tenant_id,
            target_tenant_id,
            batch_size=self._batch_size,
            operation_timeout=self._timeout,
        )

    @traced("TenantVectorStore.migrate_tenant_data")
    async def migrate_tenant_data(
        self,
        source_tenant_id: str,
        target_tenant_id: str,
        delete_source:    bool = False,
    ) -> bool:
        """
        Copy every point of ``source_tenant_id`` into ``target_tenant_id``'s
        collection, re-owned by the target. Source points are kept unless
        ``delete_source`` is True. Returns False when the source has no
        collection or a batch fails.
        """
        job = self.migration(source_tenant_id, target_tenant_id)

        try:
            if job.source_collection not in await self._collection_names():
                logger.warning(
                    "Migration source missing | source=%s collection=%s",
                    source_tenant_id, job.source_collection,
                )
                return False
            size, distance = await self._vector_config(job.source_collection)
        except _BACKEND_ERRORS:
            logger.exception("Migration setup failed | source=%s target=%s", source_tenant_id, target_tenant_id)
            return False

        if not await self.create_tenant_collection(target_tenant_id, vector_size=size, distance=distance):
            return False

        try:
            migrated = await job.run(delete_source=delete_source)
        except _BACKEND_ERRORS:
            logger.exception(
                "Migration failed | source=%s target=%s migrated=%d cursor=%s",
                source_tenant_id, target_tenant_id, job.migrated, job.cursor,
            )
            return False

        logger.info(
            "Migration complete | source=%s target=%s migrated=%d delete_source=%s",
            source_tenant_id, target_tenant_id, migrated, delete_source,
        )
        return True

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> bool:
        try:
            await self._call(self._client.get_collections())
            return True
        except _BACKEND_ERRORS as exc:
            logger.warning("Qdrant health check failed: %s", exc)
            return False

    async def get_cluster_info(self) -> dict[str, Any] | None:
        """Collections listing as returned by the backend, or None."""
        try:
            response = await self._call(self._client.get_collections())
        except _BACKEND_ERRORS:
            logger.exception("Qdrant cluster info failed")
            return None
        return response.model_dump()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await bounded(awaitable, self._timeout)

    async def _collection_names(self) -> set[str]:
        response = await self._call(self._client.get_collections())
        return {c.name for c in response.collections}

    async def _vector_config(self, collection_name: str, info: Any = None) -> tuple[int, str]:
        if info is None:
            info = await self._call(self._client.get_collection(collection_name=collection_name))
        params = info.config.params.vectors
        if isinstance(params, dict):    # named vectors: report the first one
            params = next(iter(params.values()))
        distance = getattr(params.distance, "value", params.distance)
        return params.size, str(distance)

    async def _collection_stats(self, collection_name: str, tenant_id: str) -> TenantCollection:
        info = await self._call(self._client.get_collection(collection_name=collection_name))
        size, distance = await self._vector_config(collection_name, info)
        chunks = await self._call(self._client.count(
            collection_name=collection_name,
            count_filter=tenant_filter(tenant_id),
            exact=True,
        ))

        records, _ = await self._call(self._client.scroll(
            collection_name=collection_name,
            scroll_filter=tenant_filter(tenant_id),
            limit=self._stats_limit,
            with_payload=[DOCUMENT_ID_FIELD],
            with_vectors=False,
        ))
        documents = {(r.payload or {}).get(DOCUMENT_ID_FIELD) for r in records}
        documents.discard(None)

        return TenantCollection(
            tenant_id=tenant_id,
            collection_name=collection_name,
            vector_size=size,
            distance=distance,
            documents_count=len(documents),
            chunks_count=chunks.count,
        )

    async def _stored_tenant_id(self, collection_name: str) -> str | None:
        records, _ = await self._call(self._client.scroll(
            collection_name=collection_name,
            limit=1,
            with_payload=[TENANT_ID_FIELD],
            with_vectors=False,
        ))
        if not records:
            return None
        return (records[0].payload or {}).get(TENANT_ID_FIELD)


# ---------------------------------------------------------------------------
# Client factory: call once at startup and share via the AccessLayer
# ---------------------------------------------------------------------------

def create_qdrant_client(settings: Settings) -> AsyncQdrantClient:
    """
    Async Qdrant client. QDRANT_LOCATION=":memory:" selects the embedded
    in-process engine used in tests and local development.
    """
    if settings.qdrant_location:
        return AsyncQdrantClient(location=settings.qdrant_location)
    return AsyncQdrantClient(
        url=settings.qdrant_url,
        api_key=settings.qdrant_api_key or None,
        timeout=settings.qdrant_timeout,
    )
