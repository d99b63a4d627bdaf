"""
Per-tenant cache counters.

Counters live in process memory only: created lazily on first use, reset on
explicit request, gone on restart. Readers always get snapshots.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

GLOBAL_BUCKET = "global"

StatName = Literal["hits", "misses", "sets", "deletes", "errors"]


@dataclass
class CacheStats:
    hits:    int = 0
    misses:  int = 0
    sets:    int = 0
    deletes: int = 0
    errors:  int = 0

    @property
    def hit_ratio(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0


class StatsRegistry:
    """Tenant id → CacheStats. Single event loop, so plain increments are safe."""

    __slots__ = ("_stats",)

    def __init__(self) -> None:
        self._stats: dict[str, CacheStats] = {}

    def incr(self, tenant_id: str | None, stat: StatName, amount: int = 1) -> None:
        bucket = tenant_id or GLOBAL_BUCKET
        stats = self._stats.get(bucket)
        if stats is None:
            stats = self._stats[bucket] = CacheStats()
        setattr(stats, stat, getattr(stats, stat) + amount)

    def snapshot(self, tenant_id: str) -> CacheStats:
        stats = self._stats.get(tenant_id)
        return replace(stats) if stats is not None else CacheStats()

    def snapshot_all(self) -> dict[str, CacheStats]:
        return {tenant: replace(stats) for tenant, stats in self._stats.items()}

    def reset(self, tenant_id: str | None = None) -> None:
        if tenant_id is None:
            self._stats.clear()
        else:
            self._stats.pop(tenant_id, None)
