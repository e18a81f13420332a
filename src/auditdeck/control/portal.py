"""Captive-portal controller.

The portal itself (soft AP, DNS responder, credential page) lives outside
this package behind ``PortalBackend``. The controller only tracks whether
it runs and aggregates the counts the backend reports.
"""

import importlib
import logging
from datetime import datetime
from typing import Protocol

from auditdeck.core.models import PortalStats

logger = logging.getLogger(__name__)


class PortalBackend(Protocol):
    """External captive-portal implementation."""

    async def start(self, ssid: str) -> None: ...

    async def stop(self) -> None: ...


def load_portal_backend(path: str) -> PortalBackend:
    """Build a backend from a ``"package.module:factory"`` path.

    The factory is called with no arguments, so a backend class works.

    Raises:
        ValueError: If the path is not ``module:attribute``.
        ImportError: If the module cannot be imported.
        AttributeError: If the module has no such attribute.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Portal backend must be given as 'module:factory', got {path!r}")
    factory = getattr(importlib.import_module(module_name), attr)
    return factory()


class PortalController:
    """Start/stop bookkeeping and counters for one portal backend.

    ``report`` runs on the event loop; a backend serving from another
    thread should hand its counts over with ``loop.call_soon_threadsafe``.
    """

    def __init__(self, backend: PortalBackend):
        self._backend = backend
        self._stats = PortalStats()

    @property
    def running(self) -> bool:
        return self._stats.running

    @property
    def stats(self) -> PortalStats:
        """Copy of the current counters."""
        return self._stats.model_copy()

    async def start(self, ssid: str) -> bool:
        """Start the portal under ``ssid``. Counters restart from zero.

        Returns:
            False if the portal was already running.
        """
        if self._stats.running:
            logger.warning("Portal already running as '%s'", self._stats.ssid)
            return False

        await self._backend.start(ssid)
        self._stats = PortalStats(running=True, ssid=ssid, started_at=datetime.now())
        logger.info("Portal started as '%s'", ssid)
        return True

    async def stop(self) -> bool:
        """Stop the portal. Counters stay readable until the next start.

        Returns:
            False if the portal was not running.
        """
        if not self._stats.running:
            logger.warning("Portal not running")
            return False

        await self._backend.stop()
        self._stats = self._stats.model_copy(update={"running": False})
        logger.info(
            "Portal stopped: %d DNS queries, %d HTTP requests, %d credentials",
            self._stats.dns_queries,
            self._stats.http_requests,
            self._stats.credentials_captured,
        )
        return True

    def report(self, dns_queries: int = 0, http_requests: int = 0, credentials_captured: int = 0) -> None:
        """Add counts reported by the backend.

        Raises:
            ValueError: If any count is negative.
        """
        if min(dns_queries, http_requests, credentials_captured) < 0:
            raise ValueError("Portal counts cannot be negative")
        if credentials_captured:
            logger.info("Portal captured %d credential(s)", credentials_captured)
        self._stats = self._stats.model_copy(
            update={
                "dns_queries": self._stats.dns_queries + dns_queries,
                "http_requests": self._stats.http_requests + http_requests,
                "credentials_captured": self._stats.credentials_captured + credentials_captured,
            }
        )
