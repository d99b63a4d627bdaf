"""
Vector Store — Shared Data Types

Tenant isolation contract (enforced by TenantVectorStore):
  - Every upsert/search/delete is routed to the tenant's own collection.
  - Every search filter starts with tenantId == <query tenant>; caller
    filters are ANDed after it and can never remove or replace it.
  - Every stored payload carries the tenant id that owns it.

Wire format:
  Point payloads are stored camelCase (tenantId, documentId, chunkId, ...) so
  collections stay readable by the other services sharing the deployment.
  The dataclasses below are the Python-side view of the same records.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

# ---------------------------------------------------------------------------
# Payload keys (indexed as keyword fields on every tenant collection)
# ---------------------------------------------------------------------------

TENANT_ID_FIELD   = "tenantId"
DOCUMENT_ID_FIELD = "documentId"
CHUNK_ID_FIELD    = "chunkId"
CONTENT_FIELD     = "content"
METADATA_FIELD    = "metadata"

INDEXED_FIELDS = (TENANT_ID_FIELD, DOCUMENT_ID_FIELD, CHUNK_ID_FIELD)

DistanceName = Literal["Cosine", "Euclid", "Dot", "Manhattan"]


# ---------------------------------------------------------------------------
# Input entities (produced by the ingestion pipeline)
# ---------------------------------------------------------------------------

@dataclass
class Document:
    """The source document a set of chunks was cut from."""
    id:       str
    title:    str = ""
    type:     str = ""              # pdf | docx | txt | md | html | url
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class DocumentChunk:
    """One embedded sub-segment of a Document. `id` becomes the point id."""
    id:          str                # UUID string or unsigned int (Qdrant point id)
    document_id: str
    content:     str
    chunk_index: int = 0
    tokens:      int = 0
    created_at:  datetime | None = None
    metadata:    dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Stored payload
# ---------------------------------------------------------------------------

@dataclass
class VectorPayload:
    tenant_id:   str
    document_id: str
    chunk_id:    str
    content:     str
    metadata:    dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_chunk(cls, tenant_id: str, document: Document, chunk: DocumentChunk) -> "VectorPayload":
        """
        Build the payload for one chunk. Document-level facts go first so the
        chunk's own metadata wins on key conflicts.
        """
        metadata: dict[str, Any] = {
            "documentTitle": document.title,
            "documentType":  document.type,
            "chunkIndex":    chunk.chunk_index,
            "tokens":        chunk.tokens,
            "createdAt":     chunk.created_at.isoformat() if chunk.created_at else None,
            **chunk.metadata,
        }
        return cls(
            tenant_id=tenant_id,
            document_id=document.id,
            chunk_id=str(chunk.id),
            content=chunk.content,
            metadata=metadata,
        )

    def to_wire(self) -> dict[str, Any]:
        return {
            TENANT_ID_FIELD:   self.tenant_id,
            DOCUMENT_ID_FIELD: self.document_id,
            CHUNK_ID_FIELD:    self.chunk_id,
            CONTENT_FIELD:     self.content,
            METADATA_FIELD:    self.metadata,
        }

    @classmethod
    def from_wire(cls, payload: dict[str, Any] | None) -> "VectorPayload":
        payload = payload or {}
        return cls(
            tenant_id=str(payload.get(TENANT_ID_FIELD, "")),
            document_id=str(payload.get(DOCUMENT_ID_FIELD, "")),
            chunk_id=str(payload.get(CHUNK_ID_FIELD, "")),
            content=payload.get(CONTENT_FIELD, "") or "",
            metadata=dict(payload.get(METADATA_FIELD) or {}),
        )


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

@dataclass
class VectorSearchQuery:
    tenant_id: str
    vector:    list[float] | None = None
    text:      str = ""                      # informational; hybrid_search uses it
    limit:     int = 10
    offset:    int = 0
    filter:    dict[str, Any] | None = None  # extra payload terms, ANDed after tenantId
    threshold: float | None = None           # None → store default (0.7)


@dataclass
class VectorSearchResult:
    """One hit. `score` is the ranking score; `vector_score` the raw similarity."""
    id:           str
    score:        float
    payload:      VectorPayload
    vector_score: float | None = None

    def __post_init__(self) -> None:
        if self.vector_score is None:
            self.vector_score = self.score


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------

@dataclass
class TenantCollection:
    tenant_id:       str
    collection_name: str
    vector_size:     int
    distance:        str
    documents_count: int      # distinct documentId over at most stats_scroll_limit points
    chunks_count:    int


@dataclass
class VectorStats:
    total_vectors:      int = 0
    total_collections:  int = 0
    tenant_collections: list[TenantCollection] = field(default_factory=list)
    storage_size:       int = 0      # not exposed cheaply by the backend
