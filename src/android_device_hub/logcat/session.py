"""Live logcat stream for the selected device and application."""

from __future__ import annotations

import asyncio
import codecs
import contextlib
import dataclasses
from collections.abc import Callable, Sequence
from typing import Protocol

import structlog

from android_device_hub.build.application_id import ApplicationIdProvider
from android_device_hub.device.models import Device
from android_device_hub.errors import no_device_error, no_target_error
from android_device_hub.logcat.buffer import BoundedLogBuffer
from android_device_hub.logcat.filters import matches
from android_device_hub.logcat.identity import ProcessIdentityCache
from android_device_hub.logcat.models import (
    LogFilterSpec,
    LogLevel,
    LogRecord,
    StreamEvent,
    StreamState,
    normalize_log_level,
)
from android_device_hub.logcat.parser import parse_log_line
from android_device_hub.observers import ObserverList, Subscription

logger = structlog.get_logger()

STOP_GRACE_SECONDS = 2.0
_CHUNK_SIZE = 8192
_STDERR_NOISE = ("waiting for device",)
_STDERR_ERRORS = ("error", "Error", "ERROR")


class DeviceSource(Protocol):
    def selected_device(self) -> Device | None: ...


class LogcatBridge(Protocol):
    async def resolve_pid(self, device_id: str, package: str) -> str | None: ...

    async def clear_log(self, device_id: str) -> None: ...

    async def spawn_logcat(
        self, device_id: str, args: Sequence[str]
    ) -> asyncio.subprocess.Process: ...

    async def list_processes(self, device_id: str) -> dict[str, str]: ...


def build_logcat_args(pid: str | None, level: LogLevel) -> list[str]:
    """Arguments after `adb -s <id> logcat`."""
    args = []
    if pid:
        args.append(f"--pid={pid}")
    args.extend(["-v", "threadtime", f"*:{level.value}"])
    return args


async def terminate_process(
    process: asyncio.subprocess.Process, grace: float = STOP_GRACE_SECONDS
) -> None:
    """SIGTERM, then SIGKILL once `grace` seconds pass without an exit."""
    if process.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        process.terminate()
    try:
        await asyncio.wait_for(process.wait(), timeout=grace)
    except TimeoutError:
        logger.warning("logcat_kill", pid=process.pid)
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()


class LogStreamSession:
    """Owns at most one `adb logcat` child and feeds its records to subscribers.

    Both pipes are drained for as long as the child lives, paused or not;
    lines read while paused are dropped. Parsed lines go through one queue
    and one consumer, so records reach the buffer and subscribers in the
    order they were read.
    """

    def __init__(
        self,
        bridge: LogcatBridge,
        devices: DeviceSource,
        application_ids: ApplicationIdProvider,
        module: str = "app",
        buffer: BoundedLogBuffer | None = None,
        identity: ProcessIdentityCache | None = None,
        level: LogLevel = LogLevel.VERBOSE,
        stop_grace: float = STOP_GRACE_SECONDS,
    ) -> None:
        self._bridge = bridge
        self._devices = devices
        self._application_ids = application_ids
        self.module = module
        self.buffer = buffer or BoundedLogBuffer()
        self._identity = identity or ProcessIdentityCache(bridge)
        self._stop_grace = stop_grace

        self._state = StreamState.IDLE
        self._level = level
        self._tag: str | None = None
        self._filter = LogFilterSpec(min_level=level)
        self._device_id: str | None = None
        self._process: asyncio.subprocess.Process | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._start_token: object | None = None

        self._records: ObserverList[LogRecord] = ObserverList("log_records")
        self._events: ObserverList[StreamEvent] = ObserverList("log_events")

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def filter(self) -> LogFilterSpec:
        return self._filter

    @property
    def level(self) -> LogLevel:
        return self._level

    @property
    def tag_filter(self) -> str | None:
        return self._tag

    @property
    def device_id(self) -> str | None:
        return self._device_id

    def status(self) -> dict[str, object]:
        return {
            "state": self._state.value,
            "device_id": self._device_id,
            "filter": self._filter.to_dict(),
            "buffered": len(self.buffer),
            "cursor": self.buffer.cursor,
        }

    def subscribe(self, on_record: Callable[[LogRecord], None]) -> Subscription:
        """Receive every record that passes the filter."""
        return self._records.subscribe(on_record)

    def subscribe_events(self, on_event: Callable[[StreamEvent], None]) -> Subscription:
        return self._events.subscribe(on_event)

    async def start(self) -> None:
        """Spawn logcat for the selected device and configured module.

        Returns once the child is spawned; records then arrive through
        subscribers.

        Raises:
            NoDeviceError: No online device is selected
            NoTargetError: The module has no application id
            BridgeUnavailableError: adb could not be spawned
        """
        if self._state is not StreamState.IDLE:
            await self.stop()

        device = self._devices.selected_device()
        if device is None or not device.is_online:
            raise no_device_error()
        application_id = await self._application_ids.application_id(self.module)
        if not application_id:
            raise no_target_error(self.module)

        token = object()
        self._start_token = token
        self._state = StreamState.STARTING
        logger.info("logcat_starting", device=device.id, application_id=application_id)

        try:
            pid = await self._bridge.resolve_pid(device.id, application_id)
            if pid is None:
                logger.info("logcat_unscoped", application_id=application_id)
            args = build_logcat_args(pid, self._level)
            if self._start_token is not token:
                return
            await self._bridge.clear_log(device.id)
            if self._start_token is not token:
                return
            process = await self._bridge.spawn_logcat(device.id, args)
        except BaseException:
            if self._start_token is token:
                self._start_token = None
                self._state = StreamState.IDLE
            raise

        if self._start_token is not token:
            # stop() ran while spawning
            await terminate_process(process, self._stop_grace)
            return

        self.buffer.clear()
        self._identity.reset(device.id)
        self._device_id = device.id
        self._filter = LogFilterSpec(
            package_name=application_id,
            min_level=self._level,
            tag_substring=self._tag,
            pid=pid,
        )
        self._process = process
        queue: asyncio.Queue[tuple[str, str] | None] = asyncio.Queue()
        readers = [
            asyncio.create_task(self._read(process.stdout, "stdout", queue)),
            asyncio.create_task(self._read(process.stderr, "stderr", queue)),
        ]
        consumer = asyncio.create_task(self._consume(queue))
        watcher = asyncio.create_task(self._watch(process, readers, consumer, queue))
        self._tasks = [*readers, consumer, watcher]
        self._state = StreamState.STREAMING
        logger.info("logcat_started", device=device.id, pid=pid, logcat_pid=process.pid)
        self._events.notify(StreamEvent.STARTED)

    async def stop(self) -> None:
        """Stop streaming. Safe in any state; the buffer is kept.

        When this returns the child is gone and no subscriber is called again
        until the next `start()`.
        """
        self._start_token = None
        process, tasks = self._process, self._tasks
        self._process = None
        self._tasks = []
        if self._state is StreamState.IDLE and process is None:
            return

        self._state = StreamState.STOPPED
        current = asyncio.current_task()
        tasks = [task for task in tasks if task is not current]
        for task in tasks:
            task.cancel()
        if process is not None:
            await terminate_process(process, self._stop_grace)
        await asyncio.gather(*tasks, return_exceptions=True)

        self._state = StreamState.IDLE
        logger.info("logcat_stopped", device=self._device_id)
        self._events.notify(StreamEvent.STOPPED)

    def pause(self) -> None:
        if self._state is not StreamState.STREAMING:
            logger.debug("logcat_pause_ignored", state=self._state.value)
            return
        self._state = StreamState.PAUSED
        logger.info("logcat_paused")
        self._events.notify(StreamEvent.PAUSED)

    def resume(self) -> None:
        if self._state is not StreamState.PAUSED:
            logger.debug("logcat_resume_ignored", state=self._state.value)
            return
        self._state = StreamState.STREAMING
        logger.info("logcat_resumed")
        self._events.notify(StreamEvent.RESUMED)

    def clear(self) -> None:
        self.buffer.clear()
        logger.info("logcat_cleared")
        self._events.notify(StreamEvent.CLEARED)

    async def set_log_level(self, level: str | LogLevel) -> None:
        """Change the minimum level; a running stream is restarted."""
        self._level = normalize_log_level(level)
        self._filter = dataclasses.replace(self._filter, min_level=self._level)
        logger.info("logcat_level_changed", level=self._level.value)
        if self._state is StreamState.STREAMING:
            await self.stop()
            await self.start()

    async def set_tag_filter(self, tag: str | None) -> None:
        """Change the tag substring filter; a running stream is restarted."""
        self._tag = tag or None
        self._filter = dataclasses.replace(self._filter, tag_substring=self._tag)
        logger.info("logcat_tag_changed", tag=self._tag)
        if self._state is StreamState.STREAMING:
            await self.stop()
            await self.start()

    async def _read(
        self,
        reader: asyncio.StreamReader | None,
        source: str,
        queue: asyncio.Queue[tuple[str, str] | None],
    ) -> None:
        if reader is None:
            return
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        pending = ""
        while True:
            chunk = await reader.read(_CHUNK_SIZE)
            pending += decoder.decode(chunk, final=not chunk)
            *lines, pending = pending.split("\n")
            for line in lines:
                self._accept(line, source, queue)
            if not chunk:
                if pending:
                    self._accept(pending, source, queue)
                return

    def _accept(
        self, line: str, source: str, queue: asyncio.Queue[tuple[str, str] | None]
    ) -> None:
        if not line.strip():
            return
        if self._state is StreamState.PAUSED:
            return
        queue.put_nowait((source, line))

    async def _consume(self, queue: asyncio.Queue[tuple[str, str] | None]) -> None:
        while True:
            item = await queue.get()
            if item is None:
                return
            source, line = item
            try:
                await self._handle_line(line, source)
            except Exception:
                logger.exception("logcat_line_failed", source=source)

    async def _handle_line(self, line: str, source: str) -> None:
        if source == "stderr":
            if any(noise in line for noise in _STDERR_NOISE):
                logger.debug("logcat_waiting_for_device", device=self._device_id)
                return
            if any(word in line for word in _STDERR_ERRORS):
                logger.warning("logcat_stderr", line=line.strip())
                return

        record = parse_log_line(line)
        if record is None:
            return
        if record.pid is not None and record.package_name is None:
            package_name = await self._identity.lookup(record.pid)
            if package_name:
                record = dataclasses.replace(record, package_name=package_name)
        if self._state not in (StreamState.STREAMING, StreamState.PAUSED):
            return

        self.buffer.append(record)
        if matches(record, self._filter):
            self._records.notify(record)

    async def _watch(
        self,
        process: asyncio.subprocess.Process,
        readers: list[asyncio.Task[None]],
        consumer: asyncio.Task[None],
        queue: asyncio.Queue[tuple[str, str] | None],
    ) -> None:
        returncode = await process.wait()
        await asyncio.gather(*readers, return_exceptions=True)
        queue.put_nowait(None)
        await asyncio.gather(consumer, return_exceptions=True)
        if self._process is not process:
            return

        self._process = None
        self._tasks = []
        self._state = StreamState.IDLE
        logger.warning("logcat_exited", device=self._device_id, returncode=returncode)
        self._events.notify(StreamEvent.EXITED)
