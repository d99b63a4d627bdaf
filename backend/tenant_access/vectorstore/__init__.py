from tenant_access.vectorstore.base import (
    Document,
    DocumentChunk,
    TenantCollection,
    VectorPayload,
    VectorSearchQuery,
    VectorSearchResult,
    VectorStats,
)
from tenant_access.vectorstore.migration import TenantMigration
from tenant_access.vectorstore.naming import collection_name_for
from tenant_access.vectorstore.qdrant_store import TenantVectorStore, create_qdrant_client

__all__ = [
    "Document",
    "DocumentChunk",
    "TenantCollection",
    "TenantMigration",
    "TenantVectorStore",
    "VectorPayload",
    "VectorSearchQuery",
    "VectorSearchResult",
    "VectorStats",
    "collection_name_for",
    "create_qdrant_client",
]
