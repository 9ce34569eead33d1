"""Shared CLI helpers and constants."""

from __future__ import annotations

from typing import Any, cast

import typer

from android_device_hub.cli.daemon_client import format_json

AVD_CREATE_TIMEOUT = 180.0
LOG_FOLLOW_INTERVAL = 0.5


def _parse_response_json(resp: Any) -> dict[str, Any]:
    try:
        return cast(dict[str, Any], resp.json())
    except Exception as exc:  # pragma: no cover - non-JSON body
        typer.echo("Failed to parse response")
        raise typer.Exit(code=1) from exc


def _maybe_render_error(data: dict[str, Any]) -> None:
    if not (isinstance(data, dict) and data.get("error")):
        return
    error = data["error"]
    message = f"{error.get('code')}: {error.get('message')}"
    remediation = error.get("remediation")
    typer.echo(message)
    if remediation:
        typer.echo(f"Hint: {remediation}")
    raise typer.Exit(code=1)


def _maybe_render_done(data: dict[str, Any]) -> bool:
    if not (isinstance(data, dict) and data.get("status") == "done"):
        return False
    message = "✓ Done"
    if "state" in data:
        message += f" (logcat {data['state']})"
    elif "polling" in data:
        message += f" (polling {data['polling']})"
    typer.echo(message)
    return True


def _maybe_render_output(data: dict[str, Any]) -> bool:
    if not (isinstance(data, dict) and "output" in data):
        return False
    output = data.get("output")
    if output:
        typer.echo(output)
        return True
    return False


def response_data(resp: Any, json_output: bool = False) -> dict[str, Any] | None:
    """Parse a response, rendering errors (exit 1) and --json output.

    Returns the payload for custom rendering, or None when already printed.
    """
    data = _parse_response_json(resp)
    if json_output:
        typer.echo(format_json(data))
        return None
    _maybe_render_error(data)
    return data


def handle_response(resp: Any, json_output: bool = False) -> None:
    data = response_data(resp, json_output=json_output)
    if data is None:
        return
    if _maybe_render_done(data):
        return
    typer.echo(format_json(data))


def handle_output_response(resp: Any, json_output: bool = False) -> None:
    data = response_data(resp, json_output=json_output)
    if data is None:
        return
    if _maybe_render_output(data):
        return
    if _maybe_render_done(data):
        return
    typer.echo(format_json(data))


def format_selection(selection: dict[str, Any] | None) -> str:
    if not selection:
        return "No selection"
    avd = selection.get("avd")
    device_id = selection.get("device_id")
    if avd is None:
        return f"Device {device_id} (physical)"
    state = f"running on {device_id}" if selection.get("is_running") else "not running"
    return f"AVD {avd['name']} ({state})"
