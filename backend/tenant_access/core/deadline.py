"""
Per-call deadlines for backend operations.

Client-level timeouts (socket timeout, Qdrant request timeout) are fixed at
construction. A caller that needs a tighter bound for one request wraps the
calls in ``deadline()``; the remaining budget travels with the asyncio task
through a ContextVar, so nested helpers need no extra parameter::

    with deadline(0.25):
        hits = await store.search_vectors(query)
        cached = await cache.get_query_result(q)

Nested deadlines never extend an outer one. Cancellation of the surrounding
task is untouched: asyncio.CancelledError always propagates.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Awaitable, Iterator, TypeVar

from tenant_access.core.errors import DeadlineExceeded

T = TypeVar("T")

# Absolute expiry on the monotonic clock, or None when no deadline is active.
_expires_at: ContextVar[float | None] = ContextVar("tenant_access_deadline", default=None)


@contextmanager
def deadline(seconds: float) -> Iterator[None]:
    """Bound every backend call made inside the block to ``seconds`` in total."""
    expires = time.monotonic() + seconds
    outer = _expires_at.get()
    if outer is not None:
        expires = min(expires, outer)
    token = _expires_at.set(expires)
    try:
        yield
    finally:
        _expires_at.reset(token)


def remaining() -> float | None:
    """Seconds left in the active deadline, or None when there is none."""
    expires = _expires_at.get()
    if expires is None:
        return None
    return expires - time.monotonic()


async def bounded(awaitable: Awaitable[T], timeout: float | None = None) -> T:
    """
    Await ``awaitable`` within the tighter of ``timeout`` and the active deadline.

    Raises DeadlineExceeded when the budget is already spent or runs out.
    """
    budget = remaining()
    limits = [t for t in (timeout, budget) if t is not None]
    if not limits:
        return await awaitable

    limit = min(limits)
    if limit <= 0:
        if inspect.iscoroutine(awaitable):
            awaitable.close()   # never scheduled; avoid "was never awaited"
        raise DeadlineExceeded("deadline expired before the backend call was sent")

    try:
        return await asyncio.wait_for(awaitable, timeout=limit)
    except asyncio.TimeoutError as exc:
        raise DeadlineExceeded(f"backend call exceeded {limit:.3f}s") from exc
