"""pid -> application id cache refreshed from the device process table."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Protocol

import structlog

from android_device_hub.errors import HubError

logger = structlog.get_logger()

DEFAULT_TTL_SECONDS = 30.0


class ProcessLister(Protocol):
    async def list_processes(self, device_id: str) -> dict[str, str]: ...


class ProcessIdentityCache:
    """Maps pids to application ids for one device.

    All entries share one refresh clock. A refresh replaces the whole table;
    concurrent lookups wait on the same refresh instead of starting their own.
    """

    def __init__(
        self,
        bridge: ProcessLister,
        ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._bridge = bridge
        self._ttl = ttl
        self._clock = clock
        self._device_id: str | None = None
        self._entries: dict[str, str] = {}
        self._refreshed_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def device_id(self) -> str | None:
        return self._device_id

    def _expired(self) -> bool:
        return self._refreshed_at is None or self._clock() - self._refreshed_at >= self._ttl

    def reset(self, device_id: str | None) -> None:
        """Bind to `device_id`, dropping all entries and expiring the clock."""
        self._device_id = device_id
        self._entries = {}
        self._refreshed_at = None

    async def lookup(self, pid: str) -> str | None:
        """Return the application id running as `pid`, if known."""
        if not self._expired() and pid in self._entries:
            return self._entries[pid]
        if self._device_id is None:
            return None

        async with self._lock:
            # Another lookup may have refreshed while we waited
            if self._expired():
                await self._refresh()
        return self._entries.get(pid)

    async def _refresh(self) -> None:
        device_id = self._device_id
        if device_id is None:
            return
        try:
            entries = await self._bridge.list_processes(device_id)
        except HubError as exc:
            logger.warning("identity_refresh_failed", device=device_id, error=exc.code)
            # Keep the old table; retry once the clock expires again
            self._refreshed_at = self._clock()
            return
        if device_id != self._device_id:
            return
        self._entries = entries
        self._refreshed_at = self._clock()
        logger.debug("identity_refreshed", device=device_id, processes=len(entries))
