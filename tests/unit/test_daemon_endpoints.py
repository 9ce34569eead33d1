"""Tests for the daemon HTTP endpoints."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from android_device_hub.build.application_id import StaticApplicationIdProvider
from android_device_hub.device.models import AvdDefinition
from android_device_hub.device.registry import DeviceRegistry
from android_device_hub.logcat.buffer import BoundedLogBuffer
from android_device_hub.logcat.models import LogLevel, LogRecord
from android_device_hub.logcat.session import LogStreamSession


class DummyAvdCatalog:
    def __init__(self, names: list[str]) -> None:
        self.avds = [AvdDefinition(name=name) for name in names]
        self.created: list[tuple[str, str, str | None]] = []
        self.launched: list[tuple[str, str]] = []

    async def list_avds(self, no_cache: bool = False) -> list[AvdDefinition]:
        return list(self.avds)

    async def get(self, name: str) -> AvdDefinition | None:
        return next((avd for avd in self.avds if avd.name == name), None)

    async def create(self, name: str, package: str, device: str | None = None) -> str:
        self.created.append((name, package, device))
        self.avds.append(AvdDefinition(name=name))
        return "Done."

    async def rename(self, name: str, new_name: str) -> str:
        self.avds = [AvdDefinition(name=new_name) if a.name == name else a for a in self.avds]
        return ""

    async def delete(self, name: str) -> str:
        self.avds = [a for a in self.avds if a.name != name]
        return ""

    async def launch(self, name: str, options: str = "") -> int:
        self.launched.append((name, options))
        return 777


class DummyCore:
    registry: DeviceRegistry
    avd_catalog: DummyAvdCatalog
    logcat: LogStreamSession
    delivered: BoundedLogBuffer

    def __init__(self) -> None:
        self.registry = self.__class__.registry
        self.avd_catalog = self.__class__.avd_catalog
        self.logcat = self.__class__.logcat
        self.delivered = self.__class__.delivered
        self._running = False

    async def start(self) -> None:
        self._running = True

    async def stop(self) -> None:
        await self.logcat.stop()
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running


@contextmanager
def _client_with_core(bridge: Any, store: Any) -> Iterator[tuple[TestClient, DummyAvdCatalog]]:
    from android_device_hub.daemon import server

    catalog = DummyAvdCatalog(["Pixel_6_API_34", "Tablet_API_33"])
    registry = DeviceRegistry(bridge, catalog, store)
    DummyCore.registry = registry
    DummyCore.avd_catalog = catalog
    DummyCore.logcat = LogStreamSession(
        bridge,
        registry,
        StaticApplicationIdProvider(default="com.example.app"),
        stop_grace=0.05,
    )
    DummyCore.delivered = BoundedLogBuffer(100)

    with patch.object(server, "DaemonCore", DummyCore), TestClient(server.app) as client:
        yield client, catalog


@pytest.fixture
def running_emulator(bridge, make_device) -> None:
    bridge.devices = [make_device("emulator-5554"), make_device("R58M123ABC")]
    bridge.avd_names = {"emulator-5554": "Pixel_6_API_34"}


class TestDeviceEndpoints:
    """Tests for /health and /devices."""

    def test_health(self, bridge, store) -> None:
        """Should report the daemon and stream state."""
        with _client_with_core(bridge, store) as (client, _catalog):
            resp = client.get("/health")

        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "ok"
        assert data["running"] is True
        assert data["logcat"] == "idle"
        assert data["polling"] == "stopped"

    def test_list_devices(self, bridge, store, running_emulator) -> None:
        """Should return the device list and the selection."""
        with _client_with_core(bridge, store) as (client, _catalog):
            resp = client.get("/devices")

        assert resp.status_code == 200
        data = resp.json()
        assert [d["id"] for d in data["devices"]] == ["emulator-5554", "R58M123ABC"]
        assert data["devices"][0]["kind"] == "emulator"
        assert data["selection"] is None

    def test_select_emulator(self, bridge, store, running_emulator) -> None:
        """Should select the AVD an emulator runs."""
        with _client_with_core(bridge, store) as (client, _catalog):
            resp = client.post("/devices/select", json={"device_id": "emulator-5554"})

        assert resp.status_code == 200
        selection = resp.json()["selection"]
        assert selection["avd"]["name"] == "Pixel_6_API_34"
        assert selection["is_running"] is True

    def test_select_unknown_device(self, bridge, store, running_emulator) -> None:
        """Should answer 404 with an actionable error."""
        with _client_with_core(bridge, store) as (client, _catalog):
            resp = client.post("/devices/select", json={"device_id": "emulator-9999"})

        assert resp.status_code == 404
        error = resp.json()["error"]
        assert error["code"] == "ERR_DEVICE_NOT_FOUND"
        assert error["remediation"]

    def test_refresh_bridge_failure(self, bridge, store) -> None:
        """Should map bridge failures to 503."""
        from android_device_hub.errors import bridge_not_found_error

        with _client_with_core(bridge, store) as (client, _catalog):
            bridge.list_error = bridge_not_found_error("adb")
            resp = client.post("/devices/refresh", json={"force": True})

        assert resp.status_code == 503
        assert resp.json()["error"]["code"] == "ERR_BRIDGE_NOT_FOUND"

    def test_polling_pause_resume(self, bridge, store) -> None:
        """Should report polling state changes."""
        with _client_with_core(bridge, store) as (client, _catalog):
            paused = client.post("/polling/pause")
            resumed = client.post("/polling/resume")

        assert paused.json()["polling"] == "stopped"
        assert resumed.json()["status"] == "done"


class TestAvdEndpoints:
    """Tests for /avds."""

    def test_list_and_select(self, bridge, store, running_emulator) -> None:
        """Should list AVDs and mark the selected one."""
        with _client_with_core(bridge, store) as (client, _catalog):
            select = client.post("/avds/select", json={"name": "Pixel_6_API_34"})
            listing = client.get("/avds")

        assert select.status_code == 200
        assert [a["name"] for a in listing.json()["avds"]] == ["Pixel_6_API_34", "Tablet_API_33"]
        assert listing.json()["selected"] == "Pixel_6_API_34"

    def test_select_unknown_clears(self, bridge, store) -> None:
        """Should clear the selection instead of failing."""
        with _client_with_core(bridge, store) as (client, _catalog):
            client.post("/avds/select", json={"name": "Pixel_6_API_34"})
            resp = client.post("/avds/select", json={"name": "Gone_AVD"})

        assert resp.status_code == 200
        assert resp.json()["selection"] is None

    def test_rename_carries_selection(self, bridge, store) -> None:
        """Should reselect the renamed AVD."""
        with _client_with_core(bridge, store) as (client, _catalog):
            client.post("/avds/select", json={"name": "Tablet_API_33"})
            resp = client.post("/avds/rename", json={"name": "Tablet_API_33", "new_name": "Tablet"})
            listing = client.get("/avds")

        assert resp.status_code == 200
        assert listing.json()["selected"] == "Tablet"

    def test_delete_clears_selection(self, bridge, store) -> None:
        """Should clear the selection when the selected AVD is deleted."""
        with _client_with_core(bridge, store) as (client, _catalog):
            client.post("/avds/select", json={"name": "Tablet_API_33"})
            resp = client.post("/avds/delete", json={"name": "Tablet_API_33"})
            listing = client.get("/avds")

        assert resp.status_code == 200
        assert listing.json()["selected"] is None

    def test_missing_avd(self, bridge, store) -> None:
        """Should answer 404 for unknown AVDs."""
        with _client_with_core(bridge, store) as (client, _catalog):
            resp = client.post("/avds/launch", json={"name": "Nope"})

        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "ERR_AVD_NOT_FOUND"

    def test_create_and_launch(self, bridge, store) -> None:
        """Should forward create and launch to the catalog."""
        with _client_with_core(bridge, store) as (client, catalog):
            created = client.post(
                "/avds/create",
                json={"name": "Pixel_7", "package": "system-images;android-34;default;x86_64"},
            )
            launched = client.post("/avds/launch", json={"name": "Pixel_7", "options": "-no-snapshot"})

        assert created.status_code == 200
        assert catalog.created == [("Pixel_7", "system-images;android-34;default;x86_64", None)]
        assert launched.json()["pid"] == 777
        assert catalog.launched == [("Pixel_7", "-no-snapshot")]


class TestLogcatEndpoints:
    """Tests for /logcat."""

    def test_start_without_device(self, bridge, store) -> None:
        """Should refuse to start without a selected device."""
        with _client_with_core(bridge, store) as (client, _catalog):
            resp = client.post("/logcat/start")

        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "ERR_NO_DEVICE"
        assert bridge.spawned == []

    def test_start_and_stop(self, bridge, store, running_emulator) -> None:
        """Should spawn logcat for the selected device and stop it."""
        with _client_with_core(bridge, store) as (client, _catalog):
            client.post("/devices/select", json={"device_id": "emulator-5554"})
            started = client.post("/logcat/start")
            stopped = client.post("/logcat/stop")

        assert started.status_code == 200
        assert started.json()["state"] == "streaming"
        assert started.json()["filter"]["package_name"] == "com.example.app"
        assert bridge.spawned[0][0] == "emulator-5554"
        assert stopped.json()["state"] == "idle"
        assert bridge.processes_spawned[0].terminated

    def test_level(self, bridge, store) -> None:
        """Should accept aliases and reject unknown levels."""
        with _client_with_core(bridge, store) as (client, _catalog):
            ok = client.post("/logcat/level", json={"level": "warn"})
            bad = client.post("/logcat/level", json={"level": "loud"})

        assert ok.json()["filter"]["min_level"] == "W"
        assert bad.status_code == 400
        assert bad.json()["error"]["code"] == "ERR_INVALID_LOG_LEVEL"

    def test_tag(self, bridge, store) -> None:
        """Should set and clear the tag filter."""
        with _client_with_core(bridge, store) as (client, _catalog):
            set_resp = client.post("/logcat/tag", json={"tag": "Net"})
            clear_resp = client.post("/logcat/tag", json={"tag": ""})

        assert set_resp.json()["filter"]["tag_substring"] == "Net"
        assert clear_resp.json()["filter"]["tag_substring"] is None

    def test_records_after_cursor(self, bridge, store) -> None:
        """Should page delivered records by cursor."""
        with _client_with_core(bridge, store) as (client, _catalog):
            for index in range(3):
                DummyCore.delivered.append(
                    LogRecord(level=LogLevel.INFO, tag="T", message=str(index), raw=f"I/T: {index}")
                )
            after = client.get("/logcat/records", params={"after": 1})
            limited = client.get("/logcat/records", params={"limit": 1})

        data = after.json()
        assert [r["message"] for r in data["records"]] == ["1", "2"]
        assert data["cursor"] == 3
        assert [r["message"] for r in limited.json()["records"]] == ["2"]

    def test_pause_when_idle(self, bridge, store) -> None:
        """Should leave an idle stream idle."""
        with _client_with_core(bridge, store) as (client, _catalog):
            resp = client.post("/logcat/pause")

        assert resp.json()["state"] == "idle"
