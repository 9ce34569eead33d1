"""Configuration - environment-driven settings for the hub."""

from __future__ import annotations

import os
import shutil
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

ENV_PREFIX = "ANDROID_DEVICE_HUB_"
DEFAULT_STATE_DIR = Path.home() / ".android-device-hub"
DEFAULT_PID_LOOKUP_METHODS = ("pidof", "ps", "dumpsys")

# Relative locations inside an Android SDK, tried in order
_SDK_LAYOUT = {
    "adb": ["platform-tools/adb"],
    "emulator": ["emulator/emulator", "tools/emulator"],
    "avdmanager": ["cmdline-tools/latest/bin/avdmanager", "tools/bin/avdmanager"],
}


def resolve_binary(
    name: str,
    explicit: str | None = None,
    env: Mapping[str, str] | None = None,
) -> str:
    """Resolve a bridge binary path.

    Order: explicit value, ANDROID_HOME / ANDROID_SDK_ROOT layout, PATH lookup.
    Falls back to the bare name so a missing binary fails at launch time
    with a clear error.
    """
    if explicit:
        return explicit
    env = os.environ if env is None else env
    for var in ("ANDROID_HOME", "ANDROID_SDK_ROOT"):
        sdk = env.get(var)
        if not sdk:
            continue
        for relative in _SDK_LAYOUT.get(name, []):
            candidate = Path(sdk) / relative
            if candidate.exists():
                return str(candidate)
    return shutil.which(name) or name


class HubConfig(BaseModel):
    """Settings shared by the registry, the log stream and the daemon."""

    adb_path: str = "adb"
    emulator_path: str = "emulator"
    avdmanager_path: str = "avdmanager"
    auto_select_device: bool = False
    device_poll_interval: float = Field(default=30.0, ge=0)
    device_list_ttl: float = Field(default=300.0, ge=0)
    identity_cache_ttl: float = Field(default=30.0, ge=0)
    logcat_buffer_size: int = Field(default=10_000, gt=0)
    bridge_timeout: float = Field(default=10.0, gt=0)
    pid_lookup_methods: tuple[str, ...] = DEFAULT_PID_LOOKUP_METHODS
    module: str = "app"
    project_dir: Path = Field(default_factory=Path.cwd)
    application_id: str | None = None
    emulator_options: str = ""
    state_dir: Path = DEFAULT_STATE_DIR

    @field_validator("pid_lookup_methods", mode="before")
    @classmethod
    def split_methods(cls, value: object) -> object:
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        return value

    @property
    def db_path(self) -> Path:
        return self.state_dir / "state.db"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> HubConfig:
        """Build config from ANDROID_DEVICE_HUB_* variables."""
        env = os.environ if env is None else env
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw

        values["adb_path"] = resolve_binary("adb", env.get(f"{ENV_PREFIX}ADB_PATH"), env)
        values["emulator_path"] = resolve_binary(
            "emulator", env.get(f"{ENV_PREFIX}EMULATOR_PATH"), env
        )
        values["avdmanager_path"] = resolve_binary(
            "avdmanager", env.get(f"{ENV_PREFIX}AVDMANAGER_PATH"), env
        )
        return cls.model_validate(values)
