"""AVD management CLI commands."""

from __future__ import annotations

import typer

from android_device_hub.cli.daemon_client import DaemonClient
from android_device_hub.cli.utils import (
    AVD_CREATE_TIMEOUT,
    format_selection,
    handle_output_response,
    handle_response,
    response_data,
)

app = typer.Typer(help="Android Virtual Device commands")


@app.command("list")
def avd_list(
    no_cache: bool = typer.Option(False, "--no-cache", help="Reload from avdmanager"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """List AVD definitions."""
    client = DaemonClient()
    resp = client.request("GET", "/avds", params={"no_cache": no_cache})
    client.close()

    data = response_data(resp, json_output=json_output)
    if data is None:
        return
    avds = data.get("avds", [])
    if not avds:
        typer.echo("No AVDs")
        return
    for avd in avds:
        marker = "*" if avd["name"] == data.get("selected") else " "
        details = " ".join(
            f"{key}={avd[key]}" for key in ("target", "tag_abi", "device") if avd.get(key)
        )
        typer.echo(f"{marker} {avd['name']}  {details}".rstrip())


@app.command("select")
def avd_select(
    name: str = typer.Argument(..., help="AVD name from 'avd list'"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Select an AVD; an unknown name clears the selection."""
    client = DaemonClient()
    resp = client.request("POST", "/avds/select", json_body={"name": name})
    client.close()

    data = response_data(resp, json_output=json_output)
    if data is None:
        return
    typer.echo(f"Selected: {format_selection(data.get('selection'))}")


@app.command("create")
def avd_create(
    name: str = typer.Argument(..., help="New AVD name"),
    package: str = typer.Option(
        ...,
        "--package",
        "-k",
        help="System image, e.g. 'system-images;android-34;google_apis;x86_64'",
    ),
    device: str | None = typer.Option(None, "--device", "-d", help="Hardware profile id"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Create an AVD with avdmanager."""
    client = DaemonClient(timeout=AVD_CREATE_TIMEOUT)
    resp = client.request(
        "POST",
        "/avds/create",
        json_body={"name": name, "package": package, "device": device},
    )
    client.close()
    handle_output_response(resp, json_output=json_output)


@app.command("rename")
def avd_rename(
    name: str = typer.Argument(..., help="Current AVD name"),
    new_name: str = typer.Argument(..., help="New AVD name"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Rename an AVD."""
    client = DaemonClient()
    resp = client.request("POST", "/avds/rename", json_body={"name": name, "new_name": new_name})
    client.close()
    handle_response(resp, json_output=json_output)


@app.command("delete")
def avd_delete(
    name: str = typer.Argument(..., help="AVD name"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Delete an AVD."""
    if not yes:
        typer.confirm(f"Delete AVD {name}?", abort=True)
    client = DaemonClient()
    resp = client.request("POST", "/avds/delete", json_body={"name": name})
    client.close()
    handle_response(resp, json_output=json_output)


@app.command("launch")
def avd_launch(
    name: str = typer.Argument(..., help="AVD name"),
    options: str = typer.Option("", "--options", "-o", help="Extra emulator arguments"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Boot an AVD in a detached emulator."""
    client = DaemonClient()
    resp = client.request("POST", "/avds/launch", json_body={"name": name, "options": options})
    client.close()

    data = response_data(resp, json_output=json_output)
    if data is None:
        return
    typer.echo(f"Emulator started for {data['name']} (pid {data['pid']})")
