"""Daemon lifecycle CLI commands."""

from __future__ import annotations

from typing import Any

import httpx
import typer

from android_device_hub.cli.daemon_client import DaemonClient, DaemonController, format_json
from android_device_hub.cli.utils import format_selection

app = typer.Typer(help="Daemon lifecycle commands")


@app.command("start")
def daemon_start() -> None:
    """Start the daemon process."""
    controller = DaemonController()
    status = controller.status()
    if status["pid_running"]:
        typer.echo(f"Daemon already running (pid {status['pid']})")
        return
    pid = controller.start()
    if pid == -1:
        typer.echo("Daemon already running (pid unknown)")
        return
    typer.echo(f"Daemon started (pid {pid})")


@app.command("stop")
def daemon_stop() -> None:
    """Stop the daemon process."""
    controller = DaemonController()
    if controller.stop():
        typer.echo("Daemon stopped")
    else:
        typer.echo("Daemon not running")


@app.command("status")
def daemon_status(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Show daemon status."""
    controller = DaemonController()
    status = controller.status()

    health: dict[str, Any] | None = None
    client = DaemonClient(auto_start=False)
    try:
        health = client.request("GET", "/health").json()
    except httpx.HTTPError:
        health = None
    finally:
        client.close()

    status["health"] = health
    if json_output:
        typer.echo(format_json(status))
        return

    running = "running" if status["pid_running"] or health else "not running"
    typer.echo(f"Daemon {running} (pid {status['pid']}, socket {status['socket']})")
    if health:
        typer.echo(
            f"Devices: {health['online_devices']}/{health['devices']} online, "
            f"polling {health['polling']}, logcat {health['logcat']}"
        )
        typer.echo(f"Selection: {format_selection(health.get('selection'))}")
