"""
Payload models cached under dedicated namespaces.

The cache does not interpret these; they only give callers a typed shape to
serialize into and validate out of Redis.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class TenantHierarchy(BaseModel):
    """A tenant and its sub-tenant tree, as resolved by the identity service."""
    model_config = ConfigDict(extra="allow")

    tenant:   dict[str, Any]
    children: list["TenantHierarchy"] = Field(default_factory=list)
    parent:   dict[str, Any] | None = None
    depth:    int = 0
    path:     list[str] = Field(default_factory=list)


class MultiTenantQuery(BaseModel):
    """
    Describes a dashboard query whose result is cached per tenant.

    Extra fields (page, filters, sort …) are allowed and become part of the
    cache key, so two queries differing in any field never share an entry.
    """
    model_config = ConfigDict(extra="allow")

    tenant_id:           str
    include_sub_tenants: bool = False
    tenant_path:         str | None = None
    max_depth:           int | None = None
