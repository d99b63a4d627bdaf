"""
Collection naming — one Qdrant collection per tenant.

The name is a pure function of the tenant id, so it can be rebuilt anywhere
without a lookup table:

    tenant_<tenant_id with every non-alphanumeric character replaced by "_">

    "3fa85f64-5717-4562"  →  "tenant_3fa85f64_5717_4562"

The mapping is not injective ("a-b" and "a_b" share a collection). Isolation
never depends on the name alone: every point carries its tenantId, every
search and delete filters on it, and a shared collection is dropped only once
its last tenant is gone.
"""

from __future__ import annotations

import re

COLLECTION_PREFIX = "tenant_"

_UNSAFE = re.compile(r"[^A-Za-z0-9]")


def collection_name_for(tenant_id: str) -> str:
    return f"{COLLECTION_PREFIX}{_UNSAFE.sub('_', tenant_id)}"


def is_tenant_collection(name: str) -> bool:
    return name.startswith(COLLECTION_PREFIX) and len(name) > len(COLLECTION_PREFIX)


def guess_tenant_id(collection_name: str) -> str:
    """
    Best-effort inverse for collections with no stored points to read the
    real tenant id from. Assumes UUID-style ids ("_" was "-").
    """
    return collection_name[len(COLLECTION_PREFIX):].replace("_", "-")
