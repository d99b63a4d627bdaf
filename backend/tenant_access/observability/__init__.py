"""
Observability package — operation tracing

Provides:
  traced — decorator that logs timing and failures of async operations

Usage::

    from tenant_access.observability import traced

    @traced("tenant_migration")
    async def migrate(...): ...
"""

from tenant_access.observability.tracing import traced

__all__ = ["traced"]
