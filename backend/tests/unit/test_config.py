"""
Unit Tests — Settings and AccessLayer wiring
"""

from __future__ import annotations

import fakeredis
import pytest
from qdrant_client import AsyncQdrantClient

from tenant_access.cache import TenantCache, create_redis_client
from tenant_access.container import AccessLayer, build_access_layer
from tenant_access.core.config import Settings, get_settings
from tenant_access.vectorstore import TenantVectorStore, create_qdrant_client


@pytest.mark.unit
class TestSettings:

    def test_defaults(self, monkeypatch):
        for var in ("REDIS_URL", "QDRANT_LOCATION", "APP_ENV", "DEBUG"):
            monkeypatch.delenv(var, raising=False)
        s = Settings(_env_file=None)
        assert s.redis_url == "redis://localhost:6379/0"
        assert s.cache_default_ttl == 3600
        assert s.qdrant_url == "http://localhost:6333"
        assert s.vector_default_size == 1536
        assert s.vector_search_threshold == 0.7
        assert (s.hybrid_text_weight, s.hybrid_vector_weight) == (0.3, 0.7)
        assert s.stats_scroll_limit == 10_000
        assert s.migration_batch_size == 256
        assert s.operation_timeout is None
        assert s.is_production is False

    def test_env_vars_case_insensitive(self, monkeypatch):
        monkeypatch.setenv("redis_max_retries_per_request", "7")
        monkeypatch.setenv("OPERATION_TIMEOUT", "0.25")
        monkeypatch.setenv("APP_ENV", "production")
        s = Settings(_env_file=None)
        assert s.redis_max_retries_per_request == 7
        assert s.operation_timeout == 0.25
        assert s.is_production is True

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()
        get_settings.cache_clear()


@pytest.mark.unit
class TestClientFactories:

    def test_redis_client_from_settings(self):
        s = Settings(_env_file=None, redis_url="redis://cache.internal:6380/2", redis_socket_timeout=1.5)
        client = create_redis_client(s)
        kwargs = client.connection_pool.connection_kwargs
        assert kwargs["host"] == "cache.internal"
        assert kwargs["port"] == 6380
        assert kwargs["db"] == 2
        assert kwargs["socket_timeout"] == 1.5
        assert kwargs["decode_responses"] is True

    def test_memory_location_selects_local_qdrant(self):
        client = create_qdrant_client(Settings(_env_file=None, qdrant_location=":memory:"))
        assert isinstance(client, AsyncQdrantClient)


@pytest.mark.unit
class TestAccessLayer:

    async def test_build_from_settings(self):
        s = Settings(_env_file=None, qdrant_location=":memory:", cache_default_ttl=30)
        layer = build_access_layer(s)

        assert isinstance(layer, AccessLayer)
        assert isinstance(layer.cache, TenantCache)
        assert isinstance(layer.vectors, TenantVectorStore)
        assert await layer.vectors.health_check() is True

        await layer.aclose()

    async def test_connect_reports_degraded_cache(self):
        server = fakeredis.FakeServer()
        server.connected = False
        broken = fakeredis.FakeAsyncRedis(server=server, decode_responses=True)
        layer = AccessLayer(
            cache=TenantCache(broken),
            vectors=TenantVectorStore(AsyncQdrantClient(location=":memory:")),
        )

        status = await layer.connect()

        assert status == {"cache": False, "vectors": True}
        await layer.aclose()
