"""
Operation tracing — timing and outcome logging for data-access calls

Decorator `@traced(name)`:
  Wraps an async store/cache operation, logs its wall-clock duration on
  success and the failure (with traceback) on error, then re-raises.
  Caller-misuse errors (TenantValidationError and friends) are logged
  without a traceback: they are expected control flow for API layers.

Log line format (logger `tenant_access.observability.tracing`):
  trace | span=TenantVectorStore.search_vectors elapsed_ms=12.3 ok
  trace | span=TenantVectorStore.add_document_vectors elapsed_ms=0.1 rejected=...
"""

from __future__ import annotations

import functools
import logging
import time
from typing import Any, Callable, Coroutine, TypeVar

from tenant_access.core.errors import TenantValidationError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Coroutine[Any, Any, Any]])


def traced(name: str | None = None) -> Callable[[F], F]:
    """
    Instrument an async function with timing and error logging.

    Usage::

        @traced("vector_search")
        async def search_vectors(self, query): ...

        @traced()   # uses the function's qualified name as span name
        async def health_check(self): ...
    """
    def decorator(func: F) -> F:
        span_name = name or func.__qualname__

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            t0 = time.perf_counter()
            try:
                result = await func(*args, **kwargs)
            except TenantValidationError as exc:
                elapsed_ms = (time.perf_counter() - t0) * 1000
                logger.info("trace | span=%s elapsed_ms=%.1f rejected=%s", span_name, elapsed_ms, exc)
                raise
            except Exception as exc:
                elapsed_ms = (time.perf_counter() - t0) * 1000
                logger.error(
                    "trace | span=%s elapsed_ms=%.1f error=%s",
                    span_name, elapsed_ms, exc, exc_info=True,
                )
                raise
            elapsed_ms = (time.perf_counter() - t0) * 1000
            logger.debug("trace | span=%s elapsed_ms=%.1f ok", span_name, elapsed_ms)
            return result

        return wrapper  # type: ignore[return-value]
    return decorator
