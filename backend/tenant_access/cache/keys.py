"""
Cache key builders — the single place where key formats live.

Key layout:
    tenant:<tenant_id>:<resource>[:<identifier>][:<b64 params>]
    hierarchy:<tenant_id>
    permissions:<user_id>:<tenant_id>
    query:<tenant_id>:<b64 canonical query JSON>

Tenant and user ids are the isolation boundary, so they may not contain the
separator or any Redis glob metacharacter: either would let one tenant's keys
(or its invalidation pattern) overlap another tenant's namespace.
"""

from __future__ import annotations

import base64
import json
import re
from dataclasses import dataclass, field
from typing import Any, Mapping

from tenant_access.cache.models import MultiTenantQuery
from tenant_access.core.errors import InvalidKeyComponentError

KEY_SEP = ":"

TENANT_PREFIX      = "tenant"
HIERARCHY_PREFIX   = "hierarchy"
PERMISSIONS_PREFIX = "permissions"
QUERY_PREFIX       = "query"

_FORBIDDEN = frozenset(KEY_SEP + "*?[]\\")
_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


@dataclass(frozen=True)
class TenantCacheKey:
    """Logical address of a tenant-scoped cache entry."""
    tenant_id:  str
    resource:   str
    identifier: str | None = None
    params:     Mapping[str, Any] | None = field(default=None, hash=False)

    def render(self) -> str:
        return tenant_key(self)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_key_component(value: str, name: str) -> str:
    """
    Reject ids that could collide with another namespace.

    Raises:
        InvalidKeyComponentError: empty value, separator or glob metacharacter.
    """
    if not value:
        raise InvalidKeyComponentError(f"Cache key component {name!r} must not be empty")
    bad = _FORBIDDEN.intersection(value)
    if bad:
        raise InvalidKeyComponentError(
            f"Cache key component {name!r} contains reserved characters {sorted(bad)!r}"
        )
    return value


def escape_glob(value: str) -> str:
    """Escape Redis MATCH metacharacters so ``value`` matches literally."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


# ---------------------------------------------------------------------------
# Canonical encodings
# ---------------------------------------------------------------------------

def _param_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def encode_params(params: Mapping[str, Any]) -> str:
    """
    Order-independent encoding of a parameter set.

    ``{"b": 2, "a": 1}`` and ``{"a": 1, "b": 2}`` both become
    base64("a=1&b=2").
    """
    joined = "&".join(f"{k}={_param_value(params[k])}" for k in sorted(params))
    return base64.b64encode(joined.encode("utf-8")).decode("ascii")


def encode_query(query: MultiTenantQuery) -> str:
    canonical = json.dumps(
        query.model_dump(mode="json"),
        sort_keys=True,
        separators=(",", ":"),
    )
    return base64.b64encode(canonical.encode("utf-8")).decode("ascii")


# ---------------------------------------------------------------------------
# Key builders
# ---------------------------------------------------------------------------

def tenant_key(key: TenantCacheKey) -> str:
    validate_key_component(key.tenant_id, "tenant_id")
    parts = [TENANT_PREFIX, key.tenant_id, key.resource]
    if key.identifier:
        parts.append(key.identifier)
    if key.params:
        parts.append(encode_params(key.params))
    return KEY_SEP.join(parts)


def hierarchy_key(tenant_id: str) -> str:
    validate_key_component(tenant_id, "tenant_id")
    return f"{HIERARCHY_PREFIX}{KEY_SEP}{tenant_id}"


def permissions_key(user_id: str, tenant_id: str) -> str:
    validate_key_component(user_id, "user_id")
    validate_key_component(tenant_id, "tenant_id")
    return f"{PERMISSIONS_PREFIX}{KEY_SEP}{user_id}{KEY_SEP}{tenant_id}"


def query_key(query: MultiTenantQuery) -> str:
    validate_key_component(query.tenant_id, "tenant_id")
    return f"{QUERY_PREFIX}{KEY_SEP}{query.tenant_id}{KEY_SEP}{encode_query(query)}"


# ---------------------------------------------------------------------------
# SCAN patterns used by invalidation
# ---------------------------------------------------------------------------

def tenant_patterns(tenant_id: str, resource: str | None = None) -> list[str]:
    """
    Patterns covering a tenant's data keys, or one resource of it.

    A resource pattern matches the bare resource key and its sub-keys, but not
    a sibling resource sharing the same prefix ("user" does not hit "users").
    """
    validate_key_component(tenant_id, "tenant_id")
    base = f"{TENANT_PREFIX}{KEY_SEP}{tenant_id}{KEY_SEP}"
    if resource is None:
        return [f"{base}*"]
    res = escape_glob(resource)
    return [f"{base}{res}", f"{base}{res}{KEY_SEP}*"]


def permissions_patterns(user_id: str, tenant_id: str | None = None) -> list[str]:
    if tenant_id is not None:
        return [permissions_key(user_id, tenant_id)]
    validate_key_component(user_id, "user_id")
    return [f"{PERMISSIONS_PREFIX}{KEY_SEP}{user_id}{KEY_SEP}*"]


def query_patterns(tenant_id: str) -> list[str]:
    validate_key_component(tenant_id, "tenant_id")
    return [f"{QUERY_PREFIX}{KEY_SEP}{tenant_id}{KEY_SEP}*"]


def offboarding_patterns(tenant_id: str) -> list[str]:
    """Every pattern under which a tenant's cache entries can live."""
    validate_key_component(tenant_id, "tenant_id")
    return [
        *tenant_patterns(tenant_id),
        hierarchy_key(tenant_id),
        f"{PERMISSIONS_PREFIX}{KEY_SEP}*{KEY_SEP}{tenant_id}",
        *query_patterns(tenant_id),
    ]
