"""AVD catalog - avdmanager listing plus pass-through create/rename/delete/launch."""

from __future__ import annotations

import asyncio
import shlex
from pathlib import Path

import structlog

from android_device_hub.device.bridge import run_command
from android_device_hub.device.models import AvdDefinition
from android_device_hub.device.parsing import parse_avd_list, parse_avd_names
from android_device_hub.errors import BridgeUnavailableError, bridge_not_found_error
from android_device_hub.validation import validate_avd_name

logger = structlog.get_logger()


class AvdCatalog:
    """Lists AVD definitions and forwards edits to avdmanager.

    The listing is cached until `list_avds(no_cache=True)` or an edit.
    """

    def __init__(
        self,
        avdmanager_path: str = "avdmanager",
        emulator_path: str = "emulator",
        timeout: float = 60.0,
        avd_home: Path | None = None,
        emulator_options: str = "",
    ) -> None:
        self.avdmanager_path = avdmanager_path
        self.emulator_path = emulator_path
        self.timeout = timeout
        self.avd_home = avd_home
        self.emulator_options = emulator_options
        self._avds: list[AvdDefinition] | None = None

    @property
    def loaded(self) -> bool:
        return self._avds is not None

    async def list_avds(self, no_cache: bool = False) -> list[AvdDefinition]:
        """Return the AVD catalog, loading it on first use.

        Falls back to `emulator -list-avds` (names only) when avdmanager
        is unavailable.
        """
        if self._avds is not None and not no_cache:
            return list(self._avds)

        try:
            output = await run_command([self.avdmanager_path, "list", "avd"], self.timeout)
            avds = parse_avd_list(output)
        except BridgeUnavailableError as exc:
            logger.warning("avdmanager_unavailable", error=exc.code)
            output = await run_command([self.emulator_path, "-list-avds"], self.timeout)
            avds = parse_avd_names(output)

        self._avds = avds
        logger.info("avd_catalog_loaded", count=len(avds))
        return list(avds)

    async def get(self, name: str) -> AvdDefinition | None:
        """Find an AVD by exact name, reloading once if it is not cached."""
        for avd in await self.list_avds():
            if avd.name == name:
                return avd
        for avd in await self.list_avds(no_cache=True):
            if avd.name == name:
                return avd
        return None

    def invalidate(self) -> None:
        self._avds = None

    async def create(self, name: str, package: str, device: str | None = None) -> str:
        """Create an AVD from a system image package path."""
        validate_avd_name(name)
        cmd = [self.avdmanager_path, "create", "avd", "-n", name, "-k", package]
        if device:
            cmd.extend(["-d", device])
        if self.avd_home:
            cmd.extend(["-p", str(self.avd_home / f"{name}.avd")])
        output = await run_command(cmd, self.timeout)
        self.invalidate()
        logger.info("avd_created", name=name, package=package)
        return output.strip()

    async def rename(self, name: str, new_name: str) -> str:
        validate_avd_name(new_name)
        output = await run_command(
            [self.avdmanager_path, "move", "avd", "-n", name, "-r", new_name], self.timeout
        )
        self.invalidate()
        logger.info("avd_renamed", name=name, new_name=new_name)
        return output.strip()

    async def delete(self, name: str) -> str:
        output = await run_command([self.avdmanager_path, "delete", "avd", "-n", name], self.timeout)
        self.invalidate()
        logger.info("avd_deleted", name=name)
        return output.strip()

    async def launch(self, name: str, options: str = "") -> int:
        """Boot an AVD in a detached emulator process.

        Returns:
            PID of the emulator process
        """
        args = [
            self.emulator_path,
            "-avd",
            name,
            *shlex.split(options),
            *shlex.split(self.emulator_options),
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.DEVNULL,
                start_new_session=True,
            )
        except FileNotFoundError as exc:
            raise bridge_not_found_error(self.emulator_path) from exc
        logger.info("emulator_launched", avd=name, pid=process.pid)
        return process.pid
