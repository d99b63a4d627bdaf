"""
Process-wide logging setup.

Every module logs through ``logging.getLogger(__name__)``; this only installs
the root handler and format, once, at application startup.
"""

from __future__ import annotations

import logging

from tenant_access.core.config import Settings

_configured: bool = False


def configure_logging(settings: Settings) -> None:
    """Install the root handler. Repeated calls are no-ops."""
    global _configured
    if _configured:
        return
    _configured = True

    level = logging.DEBUG if settings.debug else getattr(
        logging, settings.log_level.upper(), logging.INFO
    )
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
