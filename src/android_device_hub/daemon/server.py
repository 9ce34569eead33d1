"""FastAPI server running over Unix Domain Socket."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from android_device_hub import __version__
from android_device_hub.daemon.core import DaemonCore
from android_device_hub.daemon.models import (
    AvdCreateRequest,
    AvdLaunchRequest,
    AvdNameRequest,
    AvdRenameRequest,
    DeviceSelectRequest,
    LogLevelRequest,
    LogTagRequest,
    RefreshRequest,
)
from android_device_hub.errors import (
    BridgeUnavailableError,
    HubError,
    NotFoundError,
    avd_not_found_error,
)

logger = structlog.get_logger()

ResponsePayload = dict[str, Any]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage daemon lifecycle."""
    logger.info("daemon_starting")
    app.state.core = DaemonCore()
    await app.state.core.start()
    yield
    logger.info("daemon_stopping")
    await app.state.core.stop()


app = FastAPI(
    title="Android Device Hub Daemon",
    version=__version__,
    lifespan=lifespan,
)


def _status_code_for(error: HubError) -> int:
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, BridgeUnavailableError):
        return 503
    return 400


def _error_response(error: HubError, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"status": "error", "error": error.to_dict()},
    )


@app.exception_handler(HubError)
async def hub_error_handler(request: Request, exc: HubError) -> JSONResponse:
    logger.warning("request_failed", path=request.url.path, code=exc.code)
    return _error_response(exc, status_code=_status_code_for(exc))


def _core() -> DaemonCore:
    core: DaemonCore = app.state.core
    return core


@app.get("/health")
async def health() -> ResponsePayload:
    """Health check endpoint with registry and stream status."""
    core = _core()
    snapshot = core.registry.snapshot()
    return {
        "status": "ok",
        "running": core.is_running,
        "devices": len(snapshot.devices),
        "online_devices": len(core.registry.online_devices()),
        "selection": snapshot.selection.to_dict() if snapshot.selection else None,
        "polling": core.registry.polling_state,
        "logcat": core.logcat.state.value,
    }


@app.get("/devices")
async def list_devices() -> ResponsePayload:
    """List devices and the current selection."""
    core = _core()
    snapshot = await core.registry.refresh()
    return snapshot.to_dict()


@app.post("/devices/refresh")
async def refresh_devices(req: RefreshRequest) -> ResponsePayload:
    """Reload the device list from the bridge."""
    core = _core()
    snapshot = await core.registry.refresh(force=req.force)
    return {"status": "done", **snapshot.to_dict()}


@app.post("/devices/select")
async def select_device(req: DeviceSelectRequest) -> ResponsePayload:
    """Select a device by id."""
    core = _core()
    await core.registry.refresh()
    selection = await core.registry.select_device(req.device_id)
    return {"status": "done", "selection": selection.to_dict()}


@app.get("/avds")
async def list_avds(no_cache: bool = False) -> ResponsePayload:
    """List AVD definitions."""
    core = _core()
    avds = await core.avd_catalog.list_avds(no_cache=no_cache)
    selection = core.registry.selection
    return {
        "avds": [avd.to_dict() for avd in avds],
        "selected": selection.avd_name if selection else None,
    }


@app.post("/avds/select")
async def select_avd(req: AvdNameRequest) -> ResponsePayload:
    """Select an AVD by name; an unknown name clears the selection."""
    core = _core()
    selection = await core.registry.select_avd(req.name)
    return {"status": "done", "selection": selection.to_dict() if selection else None}


@app.post("/avds/create")
async def create_avd(req: AvdCreateRequest) -> ResponsePayload:
    """Create an AVD from a system image."""
    core = _core()
    output = await core.avd_catalog.create(req.name, req.package, device=req.device)
    return {"status": "done", "name": req.name, "output": output}


@app.post("/avds/rename")
async def rename_avd(req: AvdRenameRequest) -> ResponsePayload:
    """Rename an AVD, carrying the selection over when it was selected."""
    core = _core()
    if await core.avd_catalog.get(req.name) is None:
        raise avd_not_found_error(req.name)
    output = await core.avd_catalog.rename(req.name, req.new_name)
    selection = core.registry.selection
    if selection and selection.avd_name == req.name:
        await core.registry.select_avd(req.new_name)
    return {"status": "done", "name": req.new_name, "output": output}


@app.post("/avds/delete")
async def delete_avd(req: AvdNameRequest) -> ResponsePayload:
    """Delete an AVD, clearing the selection when it was selected."""
    core = _core()
    if await core.avd_catalog.get(req.name) is None:
        raise avd_not_found_error(req.name)
    output = await core.avd_catalog.delete(req.name)
    selection = core.registry.selection
    if selection and selection.avd_name == req.name:
        await core.registry.select_avd(req.name)
    return {"status": "done", "name": req.name, "output": output}


@app.post("/avds/launch")
async def launch_avd(req: AvdLaunchRequest) -> ResponsePayload:
    """Boot an AVD in a detached emulator."""
    core = _core()
    if await core.avd_catalog.get(req.name) is None:
        raise avd_not_found_error(req.name)
    pid = await core.avd_catalog.launch(req.name, options=req.options)
    return {"status": "done", "name": req.name, "pid": pid}


@app.post("/polling/pause")
async def pause_polling() -> ResponsePayload:
    core = _core()
    await core.registry.pause_polling()
    return {"status": "done", "polling": core.registry.polling_state}


@app.post("/polling/resume")
async def resume_polling() -> ResponsePayload:
    core = _core()
    core.registry.resume_polling()
    return {"status": "done", "polling": core.registry.polling_state}


@app.get("/logcat/status")
async def logcat_status() -> ResponsePayload:
    core = _core()
    return core.logcat.status()


@app.get("/logcat/records")
async def logcat_records(after: int = 0, limit: int | None = None) -> ResponsePayload:
    """Records delivered to subscribers after cursor `after`."""
    core = _core()
    records, cursor = core.delivered.since(after)
    if limit is not None and limit >= 0:
        records = records[-limit:] if limit else []
    return {
        "records": [record.to_dict() for record in records],
        "cursor": cursor,
        "state": core.logcat.state.value,
    }


@app.post("/logcat/start")
async def logcat_start() -> ResponsePayload:
    """Start streaming for the selected device and module."""
    core = _core()
    await core.registry.refresh()
    await core.logcat.start()
    return {"status": "done", **core.logcat.status()}


@app.post("/logcat/stop")
async def logcat_stop() -> ResponsePayload:
    core = _core()
    await core.logcat.stop()
    return {"status": "done", **core.logcat.status()}


@app.post("/logcat/pause")
async def logcat_pause() -> ResponsePayload:
    core = _core()
    core.logcat.pause()
    return {"status": "done", **core.logcat.status()}


@app.post("/logcat/resume")
async def logcat_resume() -> ResponsePayload:
    core = _core()
    core.logcat.resume()
    return {"status": "done", **core.logcat.status()}


@app.post("/logcat/clear")
async def logcat_clear() -> ResponsePayload:
    core = _core()
    core.logcat.clear()
    return {"status": "done", **core.logcat.status()}


@app.post("/logcat/level")
async def logcat_level(req: LogLevelRequest) -> ResponsePayload:
    """Change the minimum log level."""
    core = _core()
    await core.logcat.set_log_level(req.level)
    return {"status": "done", **core.logcat.status()}


@app.post("/logcat/tag")
async def logcat_tag(req: LogTagRequest) -> ResponsePayload:
    """Change the tag substring filter."""
    core = _core()
    await core.logcat.set_tag_filter(req.tag)
    return {"status": "done", **core.logcat.status()}
