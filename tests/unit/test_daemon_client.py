"""Tests for daemon process control and the CLI client."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from android_device_hub.cli import daemon_client
from android_device_hub.cli.daemon_client import DaemonClient, DaemonController

DEAD_PID = 999_999_999


@pytest.fixture
def state_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr(daemon_client, "PID_FILE", tmp_path / "daemon.pid")
    monkeypatch.setattr(daemon_client, "LOG_FILE", tmp_path / "daemon.log")
    return tmp_path


@pytest.fixture
def controller(state_dir: Path) -> DaemonController:
    return DaemonController(socket_path=state_dir / "hub.sock")


class TestDaemonController:
    """Tests for DaemonController."""

    def test_status_without_daemon(self, controller, state_dir) -> None:
        """Should report no pid and no socket."""
        status = controller.status()

        assert status["pid"] is None
        assert status["pid_running"] is False
        assert status["socket"] == str(state_dir / "hub.sock")
        assert status["socket_exists"] is False

    def test_start_returns_running_pid(self, controller, state_dir) -> None:
        """Should not spawn when the pid file names a live process."""
        (state_dir / "daemon.pid").write_text(str(os.getpid()))

        with patch("subprocess.Popen") as popen:
            pid = controller.start()

        assert pid == os.getpid()
        popen.assert_not_called()

    def test_start_replaces_stale_state(self, controller, state_dir) -> None:
        """Should drop a dead pid and a leftover socket before spawning uvicorn."""
        (state_dir / "daemon.pid").write_text(str(DEAD_PID))
        (state_dir / "hub.sock").write_text("")

        with patch("subprocess.Popen", return_value=MagicMock(pid=4321)) as popen:
            pid = controller.start()

        assert pid == 4321
        assert (state_dir / "daemon.pid").read_text() == "4321"
        assert not (state_dir / "hub.sock").exists()
        args = popen.call_args.args[0]
        assert args[1:4] == ["-m", "uvicorn", "android_device_hub.daemon.server:app"]
        assert args[args.index("--uds") + 1] == str(state_dir / "hub.sock")
        assert popen.call_args.kwargs["start_new_session"] is True

    def test_stop_with_stale_pid(self, controller, state_dir) -> None:
        """Should clean up the pid file and report nothing stopped."""
        (state_dir / "daemon.pid").write_text(str(DEAD_PID))

        assert controller.stop() is False
        assert not (state_dir / "daemon.pid").exists()

    def test_wait_healthy_times_out(self, controller) -> None:
        """Should raise when the daemon never answers."""
        with pytest.raises(RuntimeError):
            controller.wait_healthy(timeout=0.0)


class TestDaemonClient:
    """Tests for DaemonClient."""

    def test_request_starts_unhealthy_daemon(self, state_dir) -> None:
        """Should start the daemon and wait before the first request."""
        client = DaemonClient(socket_path=state_dir / "hub.sock")
        with (
            patch.object(client.controller, "healthy", return_value=False),
            patch.object(client.controller, "start") as start,
            patch.object(client.controller, "wait_healthy") as wait,
            patch.object(client._client, "request") as request,
        ):
            client.request("GET", "/devices", params={"refresh": True})

        start.assert_called_once()
        wait.assert_called_once()
        request.assert_called_once_with("GET", "/devices", json=None, params={"refresh": True})
        client.close()

    def test_request_without_auto_start(self, state_dir) -> None:
        """Should go straight to the socket when auto start is off."""
        client = DaemonClient(socket_path=state_dir / "hub.sock", auto_start=False)
        with (
            patch.object(client.controller, "start") as start,
            patch.object(client._client, "request") as request,
        ):
            client.request("POST", "/logcat/stop")

        start.assert_not_called()
        request.assert_called_once_with("POST", "/logcat/stop", json=None, params=None)
        client.close()
