"""
Cache package — tenant-namespaced Redis cache.

Provides:
  TenantCache       — best-effort async cache with per-tenant counters
  TenantCacheKey    — logical key (tenant, resource, identifier, params)
  CacheStats        — hits / misses / sets / deletes / errors snapshot
  TenantHierarchy,
  MultiTenantQuery  — payload models with dedicated key namespaces
"""

from tenant_access.cache.keys import TenantCacheKey
from tenant_access.cache.models import MultiTenantQuery, TenantHierarchy
from tenant_access.cache.stats import CacheStats
from tenant_access.cache.tenant_cache import TenantCache, create_redis_client

__all__ = [
    "CacheStats",
    "MultiTenantQuery",
    "TenantCache",
    "TenantCacheKey",
    "TenantHierarchy",
    "create_redis_client",
]
