"""Parsers for bridge and avdmanager text output."""

from __future__ import annotations

import re

from android_device_hub.device.models import AvdDefinition, Device, DeviceKind, DeviceStatus
from android_device_hub.validation import (
    APPLICATION_ID_SEARCH,
    is_emulator_id,
    looks_like_application_id,
)

DEVICES_HEADER = "List of devices attached"

_AVD_SEPARATOR = re.compile(r"^-{3,}$")
# "Based on: Android 14.0 (UpsideDownCake) Tag/ABI: google_apis/x86_64" shares one line
_BASED_ON_TAG_ABI = re.compile(r"^Based on:\s*(?P<based_on>.*?)\s+Tag/ABI:\s*(?P<tag_abi>.*)$")
_AVD_KEYS = {
    "name": "name",
    "device": "device",
    "path": "path",
    "target": "target",
    "based on": "based_on",
    "tag/abi": "tag_abi",
    "skin": "skin",
    "sdcard": "sd_card",
}


def parse_devices_list(output: str) -> list[Device]:
    """Parse `adb devices` output into devices, in input order.

    Header, blank and adb-server chatter lines ("* daemon ...") are skipped.
    Kind is decided by the id prefix only.
    """
    devices: list[Device] = []
    for line in output.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed == DEVICES_HEADER or trimmed.startswith("*"):
            continue
        parts = trimmed.split()
        if len(parts) < 2:
            continue
        device_id, raw_status = parts[0], parts[1]
        kind = DeviceKind.EMULATOR if is_emulator_id(device_id) else DeviceKind.PHYSICAL
        devices.append(
            Device(id=device_id, status=DeviceStatus.from_bridge(raw_status), kind=kind)
        )
    return devices


def parse_avd_name(output: str) -> str | None:
    """Extract the AVD name from `adb emu avd name` output.

    The console answers with the name followed by an "OK" line.
    """
    for line in output.splitlines():
        name = line.strip()
        if name and name != "OK":
            return name
    return None


def parse_avd_list(output: str) -> list[AvdDefinition]:
    """Parse `avdmanager list avd` output into AVD definitions."""
    avds: list[AvdDefinition] = []
    current: dict[str, str] = {}

    def _flush() -> None:
        if current.get("name"):
            avds.append(AvdDefinition(**current))
        current.clear()

    for line in output.splitlines():
        trimmed = line.strip()
        if not trimmed:
            continue
        if _AVD_SEPARATOR.match(trimmed):
            _flush()
            continue
        combined = _BASED_ON_TAG_ABI.match(trimmed)
        if combined:
            current["based_on"] = combined.group("based_on").strip()
            current["tag_abi"] = combined.group("tag_abi").strip()
            continue
        key, sep, value = trimmed.partition(":")
        field_name = _AVD_KEYS.get(key.strip().lower())
        if not sep or field_name is None:
            continue
        if field_name == "name" and current.get("name"):
            _flush()
        current[field_name] = value.strip()
    _flush()
    return avds


def parse_avd_names(output: str) -> list[AvdDefinition]:
    """Parse `emulator -list-avds` output (one name per line)."""
    avds: list[AvdDefinition] = []
    for line in output.splitlines():
        name = line.strip()
        # The emulator prints INFO/WARNING diagnostics on some hosts
        if not name or " " in name or name.startswith(("INFO", "WARNING", "ERROR")):
            continue
        avds.append(AvdDefinition(name=name))
    return avds


def parse_process_table(output: str) -> dict[str, str]:
    """Parse `ps -A -o PID,NAME` output into a pid -> application id map.

    Only names that look like dotted application ids are kept; names given
    as paths are reduced to their package-like segment.
    """
    table: dict[str, str] = {}
    for line in output.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("PID"):
            continue
        parts = trimmed.split()
        if len(parts) < 2:
            continue
        pid, name = parts[0], parts[1]
        if not pid.isdigit() or "." not in name:
            continue
        if "/" in name:
            match = APPLICATION_ID_SEARCH.search(name)
            if not match:
                continue
            name = match.group(1)
        if looks_like_application_id(name):
            table[pid] = name
    return table


def parse_pid(output: str) -> str | None:
    """Return the first pid in `pidof` style output."""
    parts = output.strip().split()
    if parts and parts[0].isdigit():
        return parts[0]
    return None


def find_pid_in_ps(output: str, package: str) -> str | None:
    """Find the pid of `package` in full `ps -A` output.

    Columns are USER PID PPID ... NAME; the name must match exactly so a
    ':service' sub-process is not taken for the main one.
    """
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2 or parts[-1] != package:
            continue
        for candidate in parts[1:2] + parts[:1]:
            if candidate.isdigit():
                return candidate
    return None


_DUMPSYS_PROC = re.compile(r"ProcessRecord\{[0-9a-f]+\s+(\d+):([^/\s}]+)")


def find_pid_in_dumpsys(output: str, package: str) -> str | None:
    """Find the pid of `package` in `dumpsys activity processes` output."""
    for match in _DUMPSYS_PROC.finditer(output):
        if match.group(2) == package:
            return match.group(1)
    return None
