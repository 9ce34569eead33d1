"""Device management CLI commands."""

from __future__ import annotations

import typer

from android_device_hub.cli.daemon_client import DaemonClient
from android_device_hub.cli.utils import format_selection, handle_response, response_data

app = typer.Typer(help="Device management commands")
polling_app = typer.Typer(help="Device list polling")
app.add_typer(polling_app, name="polling")


def _echo_devices(devices: list[dict[str, str]]) -> None:
    if not devices:
        typer.echo("No devices")
        return
    for device in devices:
        name = device.get("display_name") or "-"
        version = device.get("os_version") or "-"
        typer.echo(
            f"{device['id']}  {device['status']:<12} {device['kind']:<9} "
            f"name={name} android={version}"
        )


@app.command("list")
def device_list(
    refresh: bool = typer.Option(False, "--refresh", help="Bypass the cached device list"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List connected devices and the current selection."""
    client = DaemonClient()
    if refresh:
        resp = client.request("POST", "/devices/refresh", json_body={"force": True})
    else:
        resp = client.request("GET", "/devices")
    client.close()

    data = response_data(resp, json_output=json_output)
    if data is None:
        return
    _echo_devices(data.get("devices", []))
    typer.echo(f"Selection: {format_selection(data.get('selection'))}")


@app.command("select")
def device_select(
    device_id: str = typer.Argument(..., help="Device id from 'device list'"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Select a device; an emulator selects the AVD it runs."""
    client = DaemonClient()
    resp = client.request("POST", "/devices/select", json_body={"device_id": device_id})
    client.close()

    data = response_data(resp, json_output=json_output)
    if data is None:
        return
    typer.echo(f"Selected: {format_selection(data.get('selection'))}")


@polling_app.command("pause")
def polling_pause(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Pause background device polling."""
    client = DaemonClient()
    resp = client.request("POST", "/polling/pause")
    client.close()
    handle_response(resp, json_output=json_output)


@polling_app.command("resume")
def polling_resume(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Resume background device polling."""
    client = DaemonClient()
    resp = client.request("POST", "/polling/resume")
    client.close()
    handle_response(resp, json_output=json_output)
