"""Device registry - reconciles the AVD catalog with running devices."""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable
from typing import Protocol

import structlog

from android_device_hub.db.models import SELECTED_AVD_KEY
from android_device_hub.device.avd import AvdCatalog
from android_device_hub.device.bridge import DeviceBridgeClient
from android_device_hub.device.models import (
    AvdDefinition,
    Device,
    RegistrySnapshot,
    UnifiedSelection,
)
from android_device_hub.errors import (
    HubError,
    device_not_found_error,
    device_not_online_error,
)
from android_device_hub.observers import ObserverList, Subscription

logger = structlog.get_logger()

DEVICE_LIST_TTL_SECONDS = 300.0


class SelectionStore(Protocol):
    async def get_setting(self, key: str) -> str | None: ...

    async def set_setting(self, key: str, value: str) -> None: ...

    async def delete_setting(self, key: str) -> None: ...


def _same_avd(left: str, right: str) -> bool:
    return left.strip().lower() == right.strip().lower()


class DeviceRegistry:
    """Authoritative device list plus the user's AVD/device selection.

    Refreshes fetch from the bridge concurrently but commit one at a time;
    a refresh that finishes after a newer one has committed is dropped
    without touching state. Observers are notified synchronously after
    each commit, in commit order.
    """

    def __init__(
        self,
        bridge: DeviceBridgeClient,
        catalog: AvdCatalog,
        store: SelectionStore,
        device_list_ttl: float = DEVICE_LIST_TTL_SECONDS,
        auto_select: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._bridge = bridge
        self._catalog = catalog
        self._store = store
        self._ttl = device_list_ttl
        self._auto_select = auto_select
        self._clock = clock

        self._devices: list[Device] = []
        self._listed_at: float | None = None
        self._avd_names: dict[str, str] = {}
        self._selection: UnifiedSelection | None = None
        self._persisted_name: str | None = None

        self._lock = asyncio.Lock()
        self._generation = 0
        self._committed_generation = 0
        self._observers: ObserverList[RegistrySnapshot] = ObserverList("device_registry")

        self._poll_task: asyncio.Task[None] | None = None
        self._poll_interval: float | None = None
        self._poll_paused = False

    @property
    def devices(self) -> list[Device]:
        return list(self._devices)

    @property
    def selection(self) -> UnifiedSelection | None:
        return self._selection

    def online_devices(self) -> list[Device]:
        return [device for device in self._devices if device.is_online]

    def selected_device(self) -> Device | None:
        """The selected device, only while it is ONLINE in the current list."""
        if self._selection is None or self._selection.device_id is None:
            return None
        for device in self._devices:
            if device.id == self._selection.device_id and device.is_online:
                return device
        return None

    def snapshot(self) -> RegistrySnapshot:
        return RegistrySnapshot(selection=self._selection, devices=tuple(self._devices))

    def subscribe(self, callback: Callable[[RegistrySnapshot], None]) -> Subscription:
        """Call `callback` with a snapshot after every committed change."""
        return self._observers.subscribe(callback)

    async def start(self, poll_interval: float = 0.0) -> None:
        """Restore the persisted AVD, load the device list, begin polling."""
        logger.info("device_registry_starting")
        saved = await self._store.get_setting(SELECTED_AVD_KEY)
        self._persisted_name = saved
        if saved:
            try:
                await self.select_avd(saved)
            except HubError as exc:
                logger.warning("selection_restore_failed", avd=saved, error=exc.code)

        try:
            await self.refresh(force=True)
        except HubError as exc:
            logger.warning("initial_refresh_failed", error=exc.code)

        if poll_interval > 0:
            self.start_polling(poll_interval)
        logger.info(
            "device_registry_started",
            device_count=len(self._devices),
            selected_avd=self._selection.avd_name if self._selection else None,
        )

    async def stop(self) -> None:
        await self.stop_polling()
        logger.info("device_registry_stopped")

    def _list_is_fresh(self) -> bool:
        return self._listed_at is not None and self._clock() - self._listed_at < self._ttl

    async def refresh(self, force: bool = False) -> RegistrySnapshot:
        """Reload the device list (unless cached and not forced) and remap the selection.

        Raises:
            BridgeUnavailableError: Listing failed; the previous list is kept.
        """
        self._generation += 1
        generation = self._generation

        fetched: list[Device] | None = None
        if force or not self._list_is_fresh():
            listed = await self._bridge.list_devices()
            fetched = [await self._bridge.describe_device(device) for device in listed]

        async with self._lock:
            if generation < self._committed_generation:
                logger.debug("device_refresh_superseded", generation=generation)
                return self.snapshot()

            if fetched is not None:
                devices = fetched
                avd_names = {d.id: d.avd_name for d in fetched if d.avd_name}
            else:
                devices = self._devices
                avd_names = dict(self._avd_names)

            selection = await self._map_selection(self._selection, devices, avd_names)
            if selection is None and self._auto_select:
                selection = await self._auto_selection(devices, avd_names)

            self._committed_generation = generation
            self._devices = list(devices)
            self._avd_names = avd_names
            if fetched is not None:
                self._listed_at = self._clock()
                logger.info("device_list_refreshed", device_count=len(devices))
            await self._commit_selection(selection)
            return self.snapshot()

    async def select_avd(self, avd: str | AvdDefinition) -> UnifiedSelection | None:
        """Select an AVD by name or definition.

        An unknown name clears the selection instead of raising.
        """
        if isinstance(avd, str):
            definition = await self._catalog.get(avd)
            if definition is None:
                logger.info("avd_unknown", avd=avd)
        else:
            definition = avd

        async with self._lock:
            selection = None
            if definition is not None:
                selection = await self._map_selection(
                    UnifiedSelection(avd=definition), self._devices, self._avd_names
                )
            await self._commit_selection(selection)
            return selection

    async def select_device(self, device_id: str) -> UnifiedSelection:
        """Select a device from the current list.

        An emulator selects the AVD it runs; a physical device is selected
        directly and is not persisted.

        Raises:
            NotFoundError: The id is not in the current list
            NotOnlineError: The device is present but not ONLINE
        """
        device = next((d for d in self._devices if d.id == device_id), None)
        if device is None:
            raise device_not_found_error(device_id, [d.id for d in self._devices])
        if not device.is_online:
            raise device_not_online_error(device_id, device.status.value)

        async with self._lock:
            selection = UnifiedSelection(avd=None, device_id=device.id)
            if device.is_emulator:
                avd_name = await self._avd_name(device.id, self._avd_names)
                if avd_name:
                    definition = await self._catalog.get(avd_name)
                    if definition is None:
                        # Booted from an AVD outside the catalog's home
                        definition = AvdDefinition(name=avd_name)
                    selection = UnifiedSelection(avd=definition, device_id=device.id)
            await self._commit_selection(selection)
            return selection

    async def _avd_name(self, device_id: str, avd_names: dict[str, str]) -> str | None:
        if device_id in avd_names:
            return avd_names[device_id]
        try:
            name = await self._bridge.query_avd_name(device_id)
        except HubError as exc:
            logger.debug("avd_name_query_failed", device=device_id, error=exc.code)
            return None
        if name:
            avd_names[device_id] = name
        return name

    async def _map_selection(
        self,
        selection: UnifiedSelection | None,
        devices: list[Device],
        avd_names: dict[str, str],
    ) -> UnifiedSelection | None:
        if selection is None:
            return None

        if selection.avd is None:
            # Physical device picked directly: keep it only while it is online
            for device in devices:
                if device.id == selection.device_id and device.is_online:
                    return selection
            logger.info("selected_device_gone", device=selection.device_id)
            return None

        for device in devices:
            if not (device.is_emulator and device.is_online):
                continue
            name = await self._avd_name(device.id, avd_names)
            if name and _same_avd(name, selection.avd.name):
                return UnifiedSelection(avd=selection.avd, device_id=device.id)
        return UnifiedSelection(avd=selection.avd)

    async def _auto_selection(
        self, devices: list[Device], avd_names: dict[str, str]
    ) -> UnifiedSelection | None:
        emulator = next((d for d in devices if d.is_online and d.is_emulator), None)
        if emulator is None:
            return None
        name = await self._avd_name(emulator.id, avd_names)
        if not name:
            return None
        definition = await self._catalog.get(name) or AvdDefinition(name=name)
        logger.info("avd_auto_selected", avd=name, device=emulator.id)
        return await self._map_selection(UnifiedSelection(avd=definition), devices, avd_names)

    async def _commit_selection(
        self, selection: UnifiedSelection | None
    ) -> None:
        # Called with the lock held, after the device list was committed
        self._selection = selection
        name = selection.avd_name if selection else None
        if name != self._persisted_name:
            if name:
                await self._store.set_setting(SELECTED_AVD_KEY, name)
            else:
                await self._store.delete_setting(SELECTED_AVD_KEY)
            self._persisted_name = name
            logger.info("selection_persisted", avd=name)
        self._observers.notify(self.snapshot())

    @property
    def polling_state(self) -> str:
        if self._poll_task is not None:
            return "running"
        if self._poll_paused:
            return "paused"
        return "stopped"

    def start_polling(self, interval: float) -> None:
        """Refresh (forced) every `interval` seconds until stopped."""
        self._poll_interval = interval
        self._poll_paused = False
        if self._poll_task is not None:
            return
        self._poll_task = asyncio.create_task(self._poll_loop(interval))
        logger.info("device_polling_started", interval=interval)

    async def stop_polling(self) -> None:
        await self._cancel_poll_task()
        self._poll_interval = None
        self._poll_paused = False

    async def pause_polling(self) -> None:
        if self._poll_task is None:
            return
        await self._cancel_poll_task()
        self._poll_paused = True
        logger.info("device_polling_paused")

    def resume_polling(self) -> None:
        if not self._poll_paused or self._poll_interval is None:
            return
        logger.info("device_polling_resumed")
        self.start_polling(self._poll_interval)

    async def _cancel_poll_task(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _poll_loop(self, interval: float) -> None:
        while True:
            try:
                await self.refresh(force=True)
            except HubError as exc:
                logger.warning("device_poll_failed", error=exc.code, message=exc.message)
            except Exception:
                logger.exception("device_poll_error")
            await asyncio.sleep(interval)
