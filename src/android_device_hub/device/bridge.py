"""Device bridge client - runs adb as a black box and parses its answers."""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import shlex
from collections.abc import Awaitable, Callable, Sequence

import structlog

from android_device_hub.config import DEFAULT_PID_LOOKUP_METHODS
from android_device_hub.device.models import Device
from android_device_hub.device.parsing import (
    find_pid_in_dumpsys,
    find_pid_in_ps,
    parse_avd_name,
    parse_devices_list,
    parse_pid,
    parse_process_table,
)
from android_device_hub.errors import (
    HubError,
    bridge_command_error,
    bridge_not_found_error,
    bridge_timeout_error,
)

logger = structlog.get_logger()


async def run_command(cmd: Sequence[str], timeout: float) -> str:
    """Run a one-shot command and return its stdout.

    Raises:
        BridgeUnavailableError: If the binary is missing, fails or times out.
            A timed-out child is killed before raising.
    """
    display = shlex.join(cmd)
    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as exc:
        raise bridge_not_found_error(cmd[0]) from exc
    except OSError as exc:
        raise bridge_command_error(display, str(exc)) from exc

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        raise bridge_timeout_error(display, timeout) from None

    output = stdout.decode("utf-8", errors="replace")
    if process.returncode != 0:
        reason = (stderr.decode("utf-8", errors="replace") or output).strip()
        raise bridge_command_error(display, reason or f"exit code {process.returncode}")
    return output


class DeviceBridgeClient:
    """Wraps the adb binary for the registry and the log stream."""

    def __init__(
        self,
        adb_path: str = "adb",
        timeout: float = 10.0,
        pid_lookup_methods: Sequence[str] = DEFAULT_PID_LOOKUP_METHODS,
    ) -> None:
        self.adb_path = adb_path
        self.timeout = timeout
        self.pid_lookup_methods = tuple(pid_lookup_methods)
        self._pid_lookups: dict[str, Callable[[str, str], Awaitable[str | None]]] = {
            "pidof": self._pid_via_pidof,
            "ps": self._pid_via_ps,
            "dumpsys": self._pid_via_dumpsys,
        }

    def command(self, args: Sequence[str], device_id: str | None = None) -> list[str]:
        cmd = [self.adb_path]
        if device_id:
            cmd.extend(["-s", device_id])
        cmd.extend(args)
        return cmd

    async def run(self, args: Sequence[str], device_id: str | None = None) -> str:
        """Run one adb command under the bridge timeout."""
        return await run_command(self.command(args, device_id), self.timeout)

    async def list_devices(self) -> list[Device]:
        """List connected devices (`adb devices`)."""
        output = await self.run(["devices"])
        return parse_devices_list(output)

    async def query_avd_name(self, device_id: str) -> str | None:
        """Ask a running emulator for the AVD it was booted from."""
        output = await self.run(["emu", "avd", "name"], device_id)
        return parse_avd_name(output)

    async def get_prop(self, device_id: str, prop: str) -> str | None:
        output = await self.run(["shell", "getprop", prop], device_id)
        return output.strip() or None

    async def describe_device(self, device: Device) -> Device:
        """Best-effort enrichment with model, Android version and AVD name.

        Emulators are named after their AVD rather than the system image model.
        """
        if not device.is_online:
            return device

        async def _best_effort(call: Awaitable[str | None]) -> str | None:
            try:
                return await call
            except HubError as exc:
                logger.debug("device_detail_unavailable", device=device.id, error=exc.code)
                return None

        model = await _best_effort(self.get_prop(device.id, "ro.product.model"))
        version = await _best_effort(self.get_prop(device.id, "ro.build.version.release"))
        avd_name = None
        if device.is_emulator:
            avd_name = await _best_effort(self.query_avd_name(device.id))
        return dataclasses.replace(
            device,
            display_name=avd_name or model,
            os_version=version,
            avd_name=avd_name,
        )

    async def list_processes(self, device_id: str) -> dict[str, str]:
        """Return pid -> application id for processes that look like apps."""
        output = await self.run(["shell", "ps", "-A", "-o", "PID,NAME"], device_id)
        return parse_process_table(output)

    async def resolve_pid(self, device_id: str, package: str) -> str | None:
        """Resolve the live pid of `package`, trying each lookup method in order."""
        for method in self.pid_lookup_methods:
            lookup = self._pid_lookups.get(method)
            if lookup is None:
                logger.warning("pid_lookup_unknown_method", method=method)
                continue
            try:
                pid = await lookup(device_id, package)
            except HubError as exc:
                logger.debug("pid_lookup_failed", method=method, package=package, error=exc.code)
                continue
            if pid:
                logger.info("pid_resolved", device=device_id, package=package, pid=pid, method=method)
                return pid
        return None

    async def clear_log(self, device_id: str) -> None:
        """Empty the device's log ring (`logcat -c`); failures are logged only."""
        try:
            await self.run(["logcat", "-c"], device_id)
        except HubError as exc:
            logger.warning("logcat_clear_failed", device=device_id, error=exc.code)

    async def spawn_logcat(
        self, device_id: str, args: Sequence[str]
    ) -> asyncio.subprocess.Process:
        """Spawn a long-running `adb logcat` with both output pipes."""
        cmd = self.command(["logcat", *args], device_id)
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise bridge_not_found_error(self.adb_path) from exc
        except OSError as exc:
            raise bridge_command_error(shlex.join(cmd), str(exc)) from exc
        logger.info("logcat_spawned", device=device_id, pid=process.pid, args=list(args))
        return process

    async def _pid_via_pidof(self, device_id: str, package: str) -> str | None:
        return parse_pid(await self.run(["shell", "pidof", "-s", package], device_id))

    async def _pid_via_ps(self, device_id: str, package: str) -> str | None:
        return find_pid_in_ps(await self.run(["shell", "ps", "-A"], device_id), package)

    async def _pid_via_dumpsys(self, device_id: str, package: str) -> str | None:
        output = await self.run(["shell", "dumpsys", "activity", "processes"], device_id)
        return find_pid_in_dumpsys(output, package)
