"""
Tenant-scoped Qdrant filters.

The tenant condition is always the first `must` clause and is built from the
tenant id the store was asked to serve, never from caller-supplied filter
terms. Caller terms are ANDed after it:

    {"documentType": "pdf", "chunkIndex": [0, 1]}
        → must = [tenantId == T, documentType == "pdf", chunkIndex in (0, 1)]
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from qdrant_client.http.models import FieldCondition, Filter, MatchAny, MatchValue

from tenant_access.vectorstore.base import DOCUMENT_ID_FIELD, TENANT_ID_FIELD

logger = logging.getLogger(__name__)


def _match(key: str, value: Any) -> FieldCondition:
    if isinstance(value, (list, tuple, set, frozenset)):
        return FieldCondition(key=key, match=MatchAny(any=list(value)))
    return FieldCondition(key=key, match=MatchValue(value=value))


def tenant_condition(tenant_id: str) -> FieldCondition:
    return FieldCondition(key=TENANT_ID_FIELD, match=MatchValue(value=tenant_id))


def tenant_filter(tenant_id: str, extra: Mapping[str, Any] | None = None) -> Filter:
    """
    Build a filter that ALWAYS scopes to ``tenant_id``.

    A caller term on tenantId is dropped and logged; the injected condition
    is the only tenant constraint that applies.
    """
    must: list[Any] = [tenant_condition(tenant_id)]
    for key, value in (extra or {}).items():
        if key == TENANT_ID_FIELD:
            logger.warning(
                "Ignoring caller-supplied tenant filter | tenant=%s supplied=%r",
                tenant_id, value,
            )
            continue
        must.append(_match(key, value))
    return Filter(must=must)


def document_filter(tenant_id: str, document_id: str) -> Filter:
    return Filter(must=[
        tenant_condition(tenant_id),
        FieldCondition(key=DOCUMENT_ID_FIELD, match=MatchValue(value=document_id)),
    ])
