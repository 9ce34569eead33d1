"""Daemon core - lifecycle and wiring of the registry and the log stream."""

import structlog

from android_device_hub.build.application_id import (
    ApplicationIdProvider,
    GradleApplicationIdProvider,
    StaticApplicationIdProvider,
)
from android_device_hub.config import HubConfig
from android_device_hub.db.models import Database
from android_device_hub.device.avd import AvdCatalog
from android_device_hub.device.bridge import DeviceBridgeClient
from android_device_hub.device.models import RegistrySnapshot
from android_device_hub.device.registry import DeviceRegistry
from android_device_hub.logcat.buffer import BoundedLogBuffer
from android_device_hub.logcat.identity import ProcessIdentityCache
from android_device_hub.logcat.models import StreamEvent
from android_device_hub.logcat.session import LogStreamSession
from android_device_hub.validation import validate_package

logger = structlog.get_logger()


def build_application_id_provider(config: HubConfig) -> ApplicationIdProvider:
    if config.application_id:
        validate_package(config.application_id)
        return StaticApplicationIdProvider(default=config.application_id)
    return GradleApplicationIdProvider(config.project_dir)


class DaemonCore:
    """Central daemon coordinator managing all subsystems."""

    def __init__(self, config: HubConfig | None = None) -> None:
        self.config = config or HubConfig.from_env()
        self.database = Database(self.config.db_path)
        self.bridge = DeviceBridgeClient(
            adb_path=self.config.adb_path,
            timeout=self.config.bridge_timeout,
            pid_lookup_methods=self.config.pid_lookup_methods,
        )
        self.avd_catalog = AvdCatalog(
            avdmanager_path=self.config.avdmanager_path,
            emulator_path=self.config.emulator_path,
            emulator_options=self.config.emulator_options,
        )
        self.registry = DeviceRegistry(
            self.bridge,
            self.avd_catalog,
            self.database,
            device_list_ttl=self.config.device_list_ttl,
            auto_select=self.config.auto_select_device,
        )
        self.application_ids = build_application_id_provider(self.config)
        self.logcat = LogStreamSession(
            self.bridge,
            self.registry,
            self.application_ids,
            module=self.config.module,
            buffer=BoundedLogBuffer(self.config.logcat_buffer_size),
            identity=ProcessIdentityCache(self.bridge, ttl=self.config.identity_cache_ttl),
        )
        # Filtered records as a client would display them
        self.delivered = BoundedLogBuffer(self.config.logcat_buffer_size)
        self.logcat.subscribe(self.delivered.append)
        self.logcat.subscribe_events(self._on_log_event)
        self.registry.subscribe(self._on_registry_change)
        self._running = False

    def _on_log_event(self, event: StreamEvent) -> None:
        if event in (StreamEvent.CLEARED, StreamEvent.STARTED):
            self.delivered.clear()

    def _on_registry_change(self, snapshot: RegistrySnapshot) -> None:
        selection = snapshot.selection
        logger.debug(
            "registry_changed",
            device_count=len(snapshot.devices),
            avd=selection.avd_name if selection else None,
            device=selection.device_id if selection else None,
        )

    async def start(self) -> None:
        """Initialize all subsystems."""
        logger.info("daemon_core_starting")
        await self.database.connect()
        await self.registry.start(poll_interval=self.config.device_poll_interval)
        self._running = True
        logger.info("daemon_core_started")

    async def stop(self) -> None:
        """Gracefully shutdown all subsystems."""
        logger.info("daemon_core_stopping")
        self._running = False
        await self.logcat.stop()
        await self.registry.stop()
        await self.database.disconnect()
        logger.info("daemon_core_stopped")

    @property
    def is_running(self) -> bool:
        """Check if daemon is running."""
        return self._running
