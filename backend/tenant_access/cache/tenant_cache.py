"""
TenantCache — Redis key-value cache with hard tenant namespacing

Isolation model:
  Every key is built server-side from the tenant id (see cache/keys.py):
      tenant:<tenant_id>:<resource>[:<identifier>][:<params>]
  A caller can never address another tenant's entry because the tenant id is
  a validated key component, not a free-form string prefix.

Contract: the cache is best-effort.
  - Backend failures (connection, timeout, malformed payload) are logged,
    counted as `errors`, and surface as False / None / 0. Upstream code
    treats a cache outage as a miss, never as an exception.
  - Caller misuse (an id that would break the namespace) raises
    InvalidKeyComponentError before any I/O.

Invalidation:
  Redis has no "delete by prefix". Keys are enumerated with SCAN (cursor
  based, never the blocking KEYS) and removed with UNLINK in batches.
  The two phases are NOT atomic: a key written by a concurrent caller between
  the scan and the unlink survives the invalidation.
"""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Any, Awaitable, Mapping, Sequence, TypeVar

import redis.asyncio as redis
from pydantic import TypeAdapter
from redis.asyncio.retry import Retry
from redis.backoff import ConstantBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from tenant_access.cache import keys
from tenant_access.cache.keys import TenantCacheKey
from tenant_access.cache.models import MultiTenantQuery, TenantHierarchy
from tenant_access.cache.stats import GLOBAL_BUCKET, CacheStats, StatsRegistry
from tenant_access.core.config import Settings
from tenant_access.core.deadline import bounded

logger = logging.getLogger(__name__)

T = TypeVar("T")

# DeadlineExceeded and socket errors are both OSError subclasses
_BACKEND_ERRORS: tuple[type[BaseException], ...] = (RedisError, OSError, asyncio.TimeoutError)
# pydantic's serialization / validation errors subclass ValueError
_CODEC_ERRORS: tuple[type[BaseException], ...] = (ValueError, TypeError)

_SCAN_COUNT   = 500
_UNLINK_CHUNK = 500

_ANY: TypeAdapter[Any] = TypeAdapter(Any)


@lru_cache(maxsize=128)
def _adapter(model: Any) -> TypeAdapter[Any]:
    return TypeAdapter(model)


class TenantCache:
    """
    Async, tenant-namespaced cache over one shared Redis connection pool.

    Build once at startup (see tenant_access.container) and share. The
    redis.asyncio client is pooled and safe for concurrent callers::

        cache = TenantCache.from_settings(settings)
        await cache.connect()
        key = TenantCacheKey(tenant_id="acme", resource="contacts", params={"page": 2})
        await cache.set_tenant_data(key, rows, ttl=300)
        rows = await cache.get_tenant_data(key, model=list[Contact])
    """

    def __init__(
        self,
        client:             redis.Redis,
        default_ttl:        int = 3600,
        operation_timeout:  float | None = None,
        enable_ready_check: bool = True,
    ) -> None:
        self._redis        = client
        self._default_ttl  = default_ttl
        self._timeout      = operation_timeout
        self._ready_check  = enable_ready_check
        self._stats        = StatsRegistry()

    @classmethod
    def from_settings(cls, settings: Settings) -> "TenantCache":
        return cls(
            client=create_redis_client(settings),
            default_ttl=settings.cache_default_ttl,
            operation_timeout=settings.operation_timeout,
            enable_ready_check=settings.redis_enable_ready_check,
        )

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """
        Optional readiness probe at startup. The client connects lazily, so a
        failed probe is only logged: the cache keeps degrading to misses.
        """
        if not self._ready_check:
            return True
        ready = await self.is_connected()
        if ready:
            logger.info("TenantCache ready")
        else:
            self._stats.incr(GLOBAL_BUCKET, "errors")
            logger.warning("TenantCache ready check failed, continuing with cache degraded")
        return ready

    async def is_connected(self) -> bool:
        """Liveness probe (PING)."""
        try:
            return bool(await self._call(self._redis.ping()))
        except _BACKEND_ERRORS as exc:
            logger.debug("TenantCache ping failed: %s", exc)
            return False

    async def disconnect(self) -> None:
        """Graceful shutdown; closes the pool."""
        try:
            await self._redis.aclose()
            logger.info("TenantCache disconnected")
        except _BACKEND_ERRORS as exc:
            logger.warning("TenantCache disconnect error: %s", exc)

    async def get_backend_info(self) -> dict[str, Any] | None:
        """Redis INFO, or None when the server is unreachable."""
        try:
            return await self._call(self._redis.info())
        except _BACKEND_ERRORS:
            logger.exception("TenantCache info failed")
            return None

    # ------------------------------------------------------------------
    # Tenant data
    # ------------------------------------------------------------------

    async def set_tenant_data(
        self,
        key:   TenantCacheKey,
        value: Any,
        ttl:   int | None = None,
    ) -> bool:
        return await self._write(key.tenant_id, keys.tenant_key(key), value, ttl)

    async def get_tenant_data(self, key: TenantCacheKey, model: Any = None) -> Any:
        """
        Return the cached value or None.

        With ``model`` (a pydantic model, dataclass or typing form such as
        ``list[Contact]``) the payload is validated into that type; a payload
        that does not fit counts as an error and reads as a miss.
        """
        return await self._read(key.tenant_id, keys.tenant_key(key), model)

    # ------------------------------------------------------------------
    # Tenant hierarchy
    # ------------------------------------------------------------------

    async def set_tenant_hierarchy(
        self,
        tenant_id: str,
        hierarchy: TenantHierarchy | Mapping[str, Any],
        ttl:       int | None = None,
    ) -> bool:
        return await self._write(tenant_id, keys.hierarchy_key(tenant_id), hierarchy, ttl)

    async def get_tenant_hierarchy(self, tenant_id: str) -> TenantHierarchy | None:
        return await self._read(tenant_id, keys.hierarchy_key(tenant_id), TenantHierarchy)

    # ------------------------------------------------------------------
    # User permissions
    # ------------------------------------------------------------------

    async def set_user_permissions(
        self,
        user_id:     str,
        tenant_id:   str,
        permissions: Sequence[str],
        ttl:         int | None = None,
    ) -> bool:
        return await self._write(
            tenant_id, keys.permissions_key(user_id, tenant_id), list(permissions), ttl
        )

    async def get_user_permissions(self, user_id: str, tenant_id: str) -> list[str] | None:
        return await self._read(tenant_id, keys.permissions_key(user_id, tenant_id), list[str])

    # ------------------------------------------------------------------
    # Query results
    # ------------------------------------------------------------------

    async def set_query_result(
        self,
        query:  MultiTenantQuery,
        result: Any,
        ttl:    int | None = None,
    ) -> bool:
        return await self._write(query.tenant_id, keys.query_key(query), result, ttl)

    async def get_query_result(self, query: MultiTenantQuery, model: Any = None) -> Any:
        return await self._read(query.tenant_id, keys.query_key(query), model)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate_tenant_cache(self, tenant_id: str, resource: str | None = None) -> int:
        """Delete the tenant's data keys (or one resource of them). Returns count deleted."""
        return await self._invalidate(tenant_id, keys.tenant_patterns(tenant_id, resource))

    async def invalidate_hierarchy_cache(self, tenant_id: str) -> bool:
        key = keys.hierarchy_key(tenant_id)
        try:
            removed = await self._call(self._redis.delete(key))
        except _BACKEND_ERRORS as exc:
            logger.warning("TenantCache invalidate failed | tenant=%s key=%s error=%s", tenant_id, key, exc)
            self._stats.incr(tenant_id, "errors")
            return False
        self._stats.incr(tenant_id, "deletes", removed)
        return removed > 0

    async def invalidate_user_permissions(self, user_id: str, tenant_id: str | None = None) -> int:
        """Drop a user's cached permissions in one tenant, or in every tenant."""
        return await self._invalidate(tenant_id, keys.permissions_patterns(user_id, tenant_id))

    async def invalidate_query_cache(self, tenant_id: str) -> int:
        return await self._invalidate(tenant_id, keys.query_patterns(tenant_id))

    async def clear_tenant_cache(self, tenant_id: str) -> int:
        """Tenant offboarding: remove data, hierarchy, permissions and query entries."""
        deleted = await self._invalidate(tenant_id, keys.offboarding_patterns(tenant_id))
        logger.info("TenantCache cleared | tenant=%s deleted=%d", tenant_id, deleted)
        return deleted

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_cache_stats(self, tenant_id: str | None = None) -> CacheStats | dict[str, CacheStats]:
        """Snapshot for one tenant, or a tenant → stats map of every tenant seen."""
        if tenant_id is not None:
            return self._stats.snapshot(tenant_id)
        return self._stats.snapshot_all()

    def reset_stats(self, tenant_id: str | None = None) -> None:
        self._stats.reset(tenant_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _call(self, awaitable: Awaitable[T]) -> T:
        return await bounded(awaitable, self._timeout)

    def _resolve_ttl(self, ttl: int | None) -> int:
        # None, zero and negative TTLs all mean "use the default"
        if ttl is None or ttl <= 0:
            return self._default_ttl
        return ttl

    async def _write(self, tenant_id: str, key: str, value: Any, ttl: int | None) -> bool:
        expiry = self._resolve_ttl(ttl)
        try:
            payload = _ANY.dump_json(value).decode("utf-8")
        except _CODEC_ERRORS as exc:
            logger.warning("TenantCache serialize failed | tenant=%s key=%s error=%s", tenant_id, key, exc)
            self._stats.incr(tenant_id, "errors")
            return False

        try:
            ok = await self._call(self._redis.setex(key, expiry, payload))
        except _BACKEND_ERRORS as exc:
            logger.warning("TenantCache set failed | tenant=%s key=%s error=%s", tenant_id, key, exc)
            self._stats.incr(tenant_id, "errors")
            return False

        self._stats.incr(tenant_id, "sets")
        logger.debug("TenantCache set | tenant=%s key=%s ttl=%d", tenant_id, key, expiry)
        return bool(ok)

    async def _read(self, tenant_id: str, key: str, model: Any) -> Any:
        try:
            raw = await self._call(self._redis.get(key))
        except _BACKEND_ERRORS as exc:
            logger.warning("TenantCache get failed | tenant=%s key=%s error=%s", tenant_id, key, exc)
            self._stats.incr(tenant_id, "errors")
            return None

        if raw is None:
            self._stats.incr(tenant_id, "misses")
            logger.debug("TenantCache miss | tenant=%s key=%s", tenant_id, key)
            return None

        adapter = _ANY if model is None else _adapter(model)
        try:
            value = adapter.validate_json(raw)
        except _CODEC_ERRORS as exc:
            logger.warning("TenantCache malformed entry | tenant=%s key=%s error=%s", tenant_id, key, exc)
            self._stats.incr(tenant_id, "errors")
            return None

        self._stats.incr(tenant_id, "hits")
        logger.debug("TenantCache hit | tenant=%s key=%s", tenant_id, key)
        return value

    async def _invalidate(self, tenant_id: str | None, patterns: Sequence[str]) -> int:
        try:
            deleted = await self._call(self._scan_unlink(patterns))
        except _BACKEND_ERRORS as exc:
            logger.warning(
                "TenantCache invalidate failed | tenant=%s patterns=%s error=%s",
                tenant_id, patterns, exc,
            )
            self._stats.incr(tenant_id, "errors")
            return 0

        self._stats.incr(tenant_id, "deletes", deleted)
        if deleted:
            logger.info("TenantCache invalidate | tenant=%s patterns=%s deleted=%d", tenant_id, patterns, deleted)
        return deleted

    async def _scan_unlink(self, patterns: Sequence[str]) -> int:
        deleted = 0
        for pattern in patterns:
            chunk: list[str] = []
            async for key in self._redis.scan_iter(match=pattern, count=_SCAN_COUNT):
                chunk.append(key)
                if len(chunk) >= _UNLINK_CHUNK:
                    deleted += await self._redis.unlink(*chunk)
                    chunk = []
            if chunk:
                deleted += await self._redis.unlink(*chunk)
        return deleted


# ---------------------------------------------------------------------------
# Client factory: call once at startup and share via the AccessLayer
# ---------------------------------------------------------------------------

def create_redis_client(settings: Settings) -> redis.Redis:
    """
    Pooled async Redis client. Retries transient connection/timeout errors
    `redis_max_retries_per_request` times with a constant backoff.
    """
    retry = Retry(
        ConstantBackoff(settings.redis_retry_delay_on_failover / 1000),
        settings.redis_max_retries_per_request,
    )
    return redis.from_url(
        settings.redis_url,
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
        retry=retry,
        retry_on_error=[RedisConnectionError, RedisTimeoutError],
    )
