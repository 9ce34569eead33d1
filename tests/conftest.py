"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Callable, Sequence
from typing import Any

import pytest

from android_device_hub.device.models import AvdDefinition, Device, DeviceKind, DeviceStatus
from android_device_hub.errors import HubError, bridge_command_error


def make_device(device_id: str, status: DeviceStatus = DeviceStatus.ONLINE) -> Device:
    kind = DeviceKind.EMULATOR if device_id.startswith("emulator-") else DeviceKind.PHYSICAL
    return Device(id=device_id, status=status, kind=kind)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll `predicate` on the loop until it holds."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeProcess:
    """Stands in for an asyncio subprocess with pipe readers we can feed."""

    def __init__(self, pid: int = 4242, ignore_terminate: bool = False) -> None:
        self.pid = pid
        self.returncode: int | None = None
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.ignore_terminate = ignore_terminate
        self.terminated = False
        self.killed = False
        self._exited = asyncio.Event()

    def feed(self, data: bytes, stream: str = "stdout") -> None:
        reader = self.stdout if stream == "stdout" else self.stderr
        reader.feed_data(data)

    def exit(self, code: int = 0) -> None:
        if self.returncode is not None:
            return
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self.returncode = code
        self._exited.set()

    def terminate(self) -> None:
        self.terminated = True
        if not self.ignore_terminate:
            self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode


class FakeBridge:
    """In-memory device bridge.

    `devices` is what `list_devices()` returns; `avd_names` answers
    `query_avd_name()`; ids in `failing_avd_queries` raise instead.
    """

    def __init__(self, devices: Sequence[Device] = ()) -> None:
        self.devices = list(devices)
        self.list_error: HubError | None = None
        self.avd_names: dict[str, str] = {}
        self.failing_avd_queries: set[str] = set()
        self.processes: dict[str, str] = {}
        self.pids: dict[str, str] = {}
        self.list_calls = 0
        self.avd_queries: list[str] = []
        self.process_calls = 0
        self.spawned: list[tuple[str, list[str]]] = []
        self.processes_spawned: list[FakeProcess] = []
        self.spawn_error: HubError | None = None
        self.log_clears: list[str] = []

    async def list_devices(self) -> list[Device]:
        self.list_calls += 1
        if self.list_error is not None:
            raise self.list_error
        return list(self.devices)

    async def query_avd_name(self, device_id: str) -> str | None:
        self.avd_queries.append(device_id)
        if device_id in self.failing_avd_queries:
            raise bridge_command_error(f"adb -s {device_id} emu avd name", "KO")
        return self.avd_names.get(device_id)

    async def describe_device(self, device: Device) -> Device:
        if not (device.is_online and device.is_emulator):
            return device
        try:
            avd_name = await self.query_avd_name(device.id)
        except HubError:
            return device
        return dataclasses.replace(device, avd_name=avd_name, display_name=avd_name)

    async def list_processes(self, device_id: str) -> dict[str, str]:
        self.process_calls += 1
        return dict(self.processes)

    async def resolve_pid(self, device_id: str, package: str) -> str | None:
        return self.pids.get(package)

    async def clear_log(self, device_id: str) -> None:
        self.log_clears.append(device_id)

    async def spawn_logcat(self, device_id: str, args: Sequence[str]) -> Any:
        if self.spawn_error is not None:
            raise self.spawn_error
        self.spawned.append((device_id, list(args)))
        process = FakeProcess(pid=5000 + len(self.processes_spawned))
        self.processes_spawned.append(process)
        return process


class FakeCatalog:
    def __init__(self, avds: Sequence[AvdDefinition] = ()) -> None:
        self.avds = list(avds)

    async def list_avds(self, no_cache: bool = False) -> list[AvdDefinition]:
        return list(self.avds)

    async def get(self, name: str) -> AvdDefinition | None:
        for avd in self.avds:
            if avd.name == name:
                return avd
        return None


class MemoryStore:
    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values = dict(values or {})
        self.writes: list[tuple[str, str | None]] = []

    async def get_setting(self, key: str) -> str | None:
        return self.values.get(key)

    async def set_setting(self, key: str, value: str) -> None:
        self.values[key] = value
        self.writes.append((key, value))

    async def delete_setting(self, key: str) -> None:
        self.values.pop(key, None)
        self.writes.append((key, None))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bridge() -> FakeBridge:
    return FakeBridge()


@pytest.fixture
def pixel_avd() -> AvdDefinition:
    return AvdDefinition(
        name="Pixel_6_API_34",
        path="/home/dev/.android/avd/Pixel_6_API_34.avd",
        target="Google APIs (Google Inc.)",
        tag_abi="google_apis/x86_64",
    )


@pytest.fixture
def catalog(pixel_avd: AvdDefinition) -> FakeCatalog:
    return FakeCatalog([pixel_avd, AvdDefinition(name="Tablet_API_33")])


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture(name="make_device")
def make_device_fixture() -> Callable[..., Device]:
    return make_device


@pytest.fixture(name="wait_until")
def wait_until_fixture() -> Callable[..., Any]:
    return wait_until


@pytest.fixture
def fake_process() -> Callable[..., FakeProcess]:
    """Factory for FakeProcess; call it inside a running event loop."""
    return FakeProcess
