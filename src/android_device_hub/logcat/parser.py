"""Logcat line parsing and Android Studio style formatting."""

from __future__ import annotations

import re
from datetime import datetime

from android_device_hub.logcat.models import LogLevel, LogRecord

# 01-15 12:34:56.789  1234  5678 I ActivityManager: Start proc ...
_THREADTIME_RE = re.compile(
    r"^(\d{2}-\d{2}\s+\d{2}:\d{2}:\d{2}\.\d{3})\s+(\d+)\s+(\d+)\s+([VDIWEFS])\s+([^:]+):\s?(.*)$"
)
# W/MyTag: low battery
_SHORT_RE = re.compile(r"^([VDIWEFS])/([^:]+):\s?(.*)$")

FALLBACK_TAG = "System"

_TAG_WIDTH = 23
_PACKAGE_WIDTH = 30


def parse_log_line(line: str) -> LogRecord | None:
    """Parse one logcat line.

    Never raises: lines in neither known layout become an INFO record
    tagged "System" carrying the whole line. Blank lines yield None.
    """
    trimmed = line.strip()
    if not trimmed:
        return None

    match = _THREADTIME_RE.match(trimmed)
    if match:
        timestamp, pid, tid, level, tag, message = match.groups()
        return LogRecord(
            level=LogLevel(level),
            tag=tag.strip(),
            message=message,
            raw=trimmed,
            timestamp=timestamp,
            pid=pid,
            tid=tid,
        )

    match = _SHORT_RE.match(trimmed)
    if match:
        level, tag, message = match.groups()
        return LogRecord(level=LogLevel(level), tag=tag.strip(), message=message, raw=trimmed)

    return LogRecord(level=LogLevel.INFO, tag=FALLBACK_TAG, message=trimmed, raw=trimmed)


def _full_timestamp(timestamp: str, year: int) -> str:
    # logcat omits the year
    try:
        parsed = datetime.strptime(f"{year}-{timestamp}", "%Y-%m-%d %H:%M:%S.%f")
    except ValueError:
        return timestamp
    return parsed.strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]


def format_log_line(record: LogRecord, year: int | None = None) -> str:
    """Render a record in the Android Studio column layout.

    Records without a timestamp (short form or fallback) are rendered raw.
    """
    if record.timestamp is None:
        return record.raw

    year = year or datetime.now().year
    pid_tid = f"{record.pid}-{record.tid}"
    tag = record.tag
    if len(tag) > _TAG_WIDTH:
        tag = tag[: _TAG_WIDTH - 3] + "..."
    package = record.package_name or ""
    return (
        f"{_full_timestamp(record.timestamp, year)} {pid_tid:>11} "
        f"{tag:<{_TAG_WIDTH}} {package:<{_PACKAGE_WIDTH}} {record.level.value}  {record.message}"
    )
