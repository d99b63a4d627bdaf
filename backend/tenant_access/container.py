"""
AccessLayer — the process-wide pair of tenant-isolated clients

Build once at application startup and hand the two components to whatever
needs them (request handlers, workers). Both wrap pooled async clients and
are safe to share across tenants and concurrent tasks.

Usage::

    async with access_layer() as layer:
        await layer.cache.set_tenant_data(key, rows)
        hits = await layer.vectors.search_vectors(query)

or, inside a framework lifespan hook::

    layer = build_access_layer()
    await layer.connect()
    ...
    await layer.aclose()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from tenant_access.cache import TenantCache
from tenant_access.core.config import Settings, get_settings
from tenant_access.core.logging_config import configure_logging
from tenant_access.vectorstore import TenantVectorStore

logger = logging.getLogger(__name__)


@dataclass
class AccessLayer:
    cache:   TenantCache
    vectors: TenantVectorStore

    async def connect(self) -> dict[str, bool]:
        """
        Probe both backends. Neither failure is fatal: the components degrade
        to empty results, so the caller decides whether to refuse traffic.
        """
        status = {
            "cache":   await self.cache.connect(),
            "vectors": await self.vectors.health_check(),
        }
        if all(status.values()):
            logger.info("AccessLayer ready")
        else:
            logger.warning("AccessLayer degraded | status=%s", status)
        return status

    async def aclose(self) -> None:
        await self.cache.disconnect()
        await self.vectors.aclose()
        logger.info("AccessLayer closed")


def build_access_layer(settings: Settings | None = None) -> AccessLayer:
    settings = settings or get_settings()
    configure_logging(settings)
    logger.info(
        "Building AccessLayer | env=%s qdrant=%s",
        settings.app_env, settings.qdrant_location or settings.qdrant_url,
    )
    return AccessLayer(
        cache=TenantCache.from_settings(settings),
        vectors=TenantVectorStore.from_settings(settings),
    )


@asynccontextmanager
async def access_layer(settings: Settings | None = None) -> AsyncIterator[AccessLayer]:
    layer = build_access_layer(settings)
    await layer.connect()
    try:
        yield layer
    finally:
        await layer.aclose()
