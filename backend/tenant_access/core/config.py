"""
Access-layer configuration via environment variables (12-factor).
Pydantic BaseSettings validates and coerces all values at startup.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # ------------------------------------------------------------------
    # Cache backend (Redis)
    # ------------------------------------------------------------------
    redis_url: str = "redis://localhost:6379/0"

    redis_max_retries_per_request: int   = 3
    redis_retry_delay_on_failover: int   = 100    # milliseconds between retries
    redis_enable_ready_check:      bool  = True   # PING once on connect()
    redis_socket_timeout:          float = 5.0

    cache_default_ttl: int = 3600   # seconds

    # ------------------------------------------------------------------
    # Vector backend (Qdrant)
    # ------------------------------------------------------------------
    qdrant_url:      str   = "http://localhost:6333"
    qdrant_location: str   = ""     # ":memory:" → embedded local mode (tests / dev)
    qdrant_api_key:  str   = ""     # empty = local/Docker (no auth)
    qdrant_timeout:  int   = 30     # seconds

    vector_default_size:     int   = 1536       # text-embedding-3-small
    vector_default_distance: str   = "Cosine"   # Cosine | Euclid | Dot
    vector_search_threshold: float = 0.7

    # Hybrid re-ranking weights
    hybrid_text_weight:   float = 0.3
    hybrid_vector_weight: float = 0.7

    # Upper bound on points read when counting distinct documents
    stats_scroll_limit:   int = 10_000
    migration_batch_size: int = 256

    # Per backend call, in seconds; None = rely on client-level timeouts only
    operation_timeout: float | None = None

    # ------------------------------------------------------------------
    # Application
    # ------------------------------------------------------------------
    app_env:   str  = "development"   # development | staging | production
    debug:     bool = False
    log_level: str  = "INFO"

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
