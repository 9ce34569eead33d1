"""Log records, filter specs and stream lifecycle types."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from android_device_hub.errors import invalid_log_level_error


class LogLevel(str, Enum):
    """Logcat priority letters, ordered V < D < I < W < E < F < S."""

    VERBOSE = "V"
    DEBUG = "D"
    INFO = "I"
    WARN = "W"
    ERROR = "E"
    FATAL = "F"
    SILENT = "S"

    @property
    def rank(self) -> int:
        return _LEVEL_ORDER.index(self)

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, LogLevel):
            return NotImplemented
        return self.rank >= other.rank


_LEVEL_ORDER = list(LogLevel)

LOG_PRIORITY_ALIASES = {
    "v": LogLevel.VERBOSE,
    "verbose": LogLevel.VERBOSE,
    "d": LogLevel.DEBUG,
    "debug": LogLevel.DEBUG,
    "i": LogLevel.INFO,
    "info": LogLevel.INFO,
    "w": LogLevel.WARN,
    "warn": LogLevel.WARN,
    "warning": LogLevel.WARN,
    "e": LogLevel.ERROR,
    "error": LogLevel.ERROR,
    "f": LogLevel.FATAL,
    "fatal": LogLevel.FATAL,
    "wtf": LogLevel.FATAL,
    "s": LogLevel.SILENT,
    "silent": LogLevel.SILENT,
}


def normalize_log_level(value: str | LogLevel) -> LogLevel:
    """Normalize a level letter or alias ("warn", "E", ...) into a LogLevel.

    Raises:
        InvalidArgumentError: If the value is not a known level
    """
    if isinstance(value, LogLevel):
        return value
    level = LOG_PRIORITY_ALIASES.get(value.strip().lower())
    if level is None:
        raise invalid_log_level_error(value)
    return level


@dataclass(frozen=True)
class LogRecord:
    """One parsed logcat line. `raw` is always the trimmed source line."""

    level: LogLevel
    tag: str
    message: str
    raw: str
    timestamp: str | None = None
    pid: str | None = None
    tid: str | None = None
    package_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["level"] = self.level.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LogRecord:
        return cls(
            level=LogLevel(data["level"]),
            tag=data["tag"],
            message=data["message"],
            raw=data["raw"],
            timestamp=data.get("timestamp"),
            pid=data.get("pid"),
            tid=data.get("tid"),
            package_name=data.get("package_name"),
        )


@dataclass(frozen=True)
class LogFilterSpec:
    """Criteria a record must meet to reach subscribers. None means "any"."""

    package_name: str | None = None
    min_level: LogLevel | None = None
    tag_substring: str | None = None
    pid: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["min_level"] = self.min_level.value if self.min_level else None
        return data


class StreamState(Enum):
    IDLE = "idle"
    STARTING = "starting"
    STREAMING = "streaming"
    PAUSED = "paused"
    STOPPED = "stopped"


class StreamEvent(Enum):
    """Lifecycle notifications for UI sinks."""

    STARTED = "started"
    PAUSED = "paused"
    RESUMED = "resumed"
    STOPPED = "stopped"
    CLEARED = "cleared"
    EXITED = "exited"
