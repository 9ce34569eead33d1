"""Daemon process control and the CLI's HTTP client over the daemon socket."""

from __future__ import annotations

import json
import os
import signal
import subprocess
import sys
import time
from pathlib import Path
from typing import Any

import httpx

from android_device_hub.config import DEFAULT_STATE_DIR, ENV_PREFIX

SOCKET_PATH = Path(os.environ.get(f"{ENV_PREFIX}SOCKET", "/tmp/android-device-hub.sock"))
PID_FILE = DEFAULT_STATE_DIR / "daemon.pid"
LOG_FILE = DEFAULT_STATE_DIR / "daemon.log"
BASE_URL = "http://android-device-hub"
STARTUP_TIMEOUT = 5.0
STOP_TIMEOUT = 5.0


def _uds_client(socket_path: Path, timeout: float) -> httpx.Client:
    return httpx.Client(
        transport=httpx.HTTPTransport(uds=str(socket_path)),
        base_url=BASE_URL,
        timeout=timeout,
    )


def _alive(pid: int | None) -> bool:
    if not pid:
        return False
    try:
        os.kill(pid, 0)
    except OSError:
        return False
    return True


class DaemonController:
    """Spawns the uvicorn daemon on the hub socket and tracks it by pid file."""

    def __init__(self, socket_path: Path = SOCKET_PATH) -> None:
        self.socket_path = socket_path
        PID_FILE.parent.mkdir(parents=True, exist_ok=True)

    def pid(self) -> int | None:
        try:
            return int(PID_FILE.read_text().strip())
        except (OSError, ValueError):
            return None

    def healthy(self) -> bool:
        if not self.socket_path.exists():
            return False
        with _uds_client(self.socket_path, timeout=1.0) as client:
            try:
                return client.get("/health").status_code == 200
            except httpx.HTTPError:
                return False

    def start(self) -> int:
        """Start the daemon unless one answers already.

        Returns the new pid, the running pid, or -1 for a healthy daemon
        without a pid file. ANDROID_DEVICE_HUB_* variables are passed on.
        """
        pid = self.pid()
        if pid is not None and _alive(pid):
            return pid
        PID_FILE.unlink(missing_ok=True)
        if self.healthy():
            return -1

        # uvicorn cannot bind over a socket left by a crashed daemon
        self.socket_path.unlink(missing_ok=True)
        env = dict(os.environ)
        env.setdefault(f"{ENV_PREFIX}PROJECT_DIR", str(Path.cwd()))
        log_level = env.get(f"{ENV_PREFIX}LOG_LEVEL", "info").lower()
        with LOG_FILE.open("a", encoding="utf-8") as log_handle:
            proc = subprocess.Popen(
                [
                    sys.executable,
                    "-m",
                    "uvicorn",
                    "android_device_hub.daemon.server:app",
                    "--uds",
                    str(self.socket_path),
                    "--log-level",
                    log_level,
                ],
                stdout=log_handle,
                stderr=log_handle,
                env=env,
                start_new_session=True,
            )
        PID_FILE.write_text(str(proc.pid))
        return proc.pid

    def wait_healthy(self, timeout: float = STARTUP_TIMEOUT) -> None:
        deadline = time.monotonic() + timeout
        while not self.healthy():
            if time.monotonic() > deadline:
                raise RuntimeError(f"Daemon did not become healthy in time (see {LOG_FILE})")
            time.sleep(0.1)

    def stop(self) -> bool:
        """SIGTERM the daemon and wait for it to exit."""
        pid = self.pid()
        if pid is None or not _alive(pid):
            PID_FILE.unlink(missing_ok=True)
            return False
        os.kill(pid, signal.SIGTERM)
        deadline = time.monotonic() + STOP_TIMEOUT
        while _alive(pid):
            if time.monotonic() > deadline:
                return False
            time.sleep(0.1)
        PID_FILE.unlink(missing_ok=True)
        return True

    def status(self) -> dict[str, Any]:
        pid = self.pid()
        return {
            "pid": pid,
            "pid_running": _alive(pid),
            "socket": str(self.socket_path),
            "socket_exists": self.socket_path.exists(),
            "log_file": str(LOG_FILE),
        }


class DaemonClient:
    """Talks to the daemon over its Unix socket, starting it on demand."""

    def __init__(
        self,
        socket_path: Path = SOCKET_PATH,
        *,
        auto_start: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.auto_start = auto_start
        self.controller = DaemonController(socket_path)
        self._client = _uds_client(socket_path, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def request(
        self,
        method: str,
        path: str,
        json_body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        if self.auto_start and not self.controller.healthy():
            self.controller.start()
            self.controller.wait_healthy()
        return self._client.request(method, path, json=json_body, params=params)


def format_json(data: Any) -> str:
    return json.dumps(data, indent=2, ensure_ascii=True)
