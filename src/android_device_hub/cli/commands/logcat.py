"""Logcat streaming CLI commands."""

from __future__ import annotations

import time
from typing import Any

import typer

from android_device_hub.cli.daemon_client import DaemonClient
from android_device_hub.cli.utils import LOG_FOLLOW_INTERVAL, handle_response, response_data
from android_device_hub.logcat.models import LogRecord
from android_device_hub.logcat.parser import format_log_line

app = typer.Typer(help="Live logcat stream commands")


def _post(path: str, json_output: bool, body: dict[str, Any] | None = None) -> None:
    client = DaemonClient()
    resp = client.request("POST", path, json_body=body)
    client.close()
    handle_response(resp, json_output=json_output)


@app.command("start")
def logcat_start(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Start streaming the selected device's log for the configured module."""
    _post("/logcat/start", json_output)


@app.command("stop")
def logcat_stop(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Stop streaming. Buffered records are kept."""
    _post("/logcat/stop", json_output)


@app.command("pause")
def logcat_pause(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Pause delivery; lines read while paused are dropped."""
    _post("/logcat/pause", json_output)


@app.command("resume")
def logcat_resume(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Resume delivery."""
    _post("/logcat/resume", json_output)


@app.command("clear")
def logcat_clear(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Empty the record buffer."""
    _post("/logcat/clear", json_output)


@app.command("level")
def logcat_level(
    level: str = typer.Argument(..., help="verbose|debug|info|warn|error|fatal (or V/D/I/W/E/F)"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Set the minimum log level (restarts a running stream)."""
    _post("/logcat/level", json_output, {"level": level})


@app.command("tag")
def logcat_tag(
    tag: str | None = typer.Argument(None, help="Tag substring; omit to clear"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Filter by tag substring (restarts a running stream)."""
    _post("/logcat/tag", json_output, {"tag": tag})


@app.command("status")
def logcat_status(json_output: bool = typer.Option(False, "--json", help="Output JSON")) -> None:
    """Show stream state and filter."""
    client = DaemonClient()
    resp = client.request("GET", "/logcat/status")
    client.close()

    data = response_data(resp, json_output=json_output)
    if data is None:
        return
    spec = data.get("filter", {})
    typer.echo(f"State: {data['state']} (device {data.get('device_id') or '-'})")
    typer.echo(
        f"Filter: package={spec.get('package_name') or '-'} pid={spec.get('pid') or '-'} "
        f"level={spec.get('min_level') or '-'} tag={spec.get('tag_substring') or '-'}"
    )
    typer.echo(f"Buffered: {data['buffered']}")


def _echo_records(records: list[dict[str, Any]]) -> None:
    for item in records:
        typer.echo(format_log_line(LogRecord.from_dict(item)))


@app.command("show")
def logcat_show(
    limit: int | None = typer.Option(None, "--limit", "-n", help="Only the last N records"),
    follow: bool = typer.Option(False, "--follow", "-f", help="Keep printing new records"),
    json_output: bool = typer.Option(False, "--json", help="Output JSON"),
) -> None:
    """Print records delivered by the live stream."""
    client = DaemonClient()
    try:
        params: dict[str, Any] = {"after": 0}
        if limit is not None:
            params["limit"] = limit
        resp = client.request("GET", "/logcat/records", params=params)
        data = response_data(resp, json_output=json_output)
        if data is None:
            return
        _echo_records(data["records"])

        cursor = data["cursor"]
        while follow:
            time.sleep(LOG_FOLLOW_INTERVAL)
            resp = client.request("GET", "/logcat/records", params={"after": cursor})
            data = response_data(resp)
            if data is None:
                return
            _echo_records(data["records"])
            cursor = data["cursor"]
    except KeyboardInterrupt:
        pass
    finally:
        client.close()

