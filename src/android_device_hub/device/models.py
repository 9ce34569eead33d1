"""Device and AVD records shared by the registry and the log stream."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class DeviceStatus(Enum):
    """Connection state reported by `adb devices`."""

    ONLINE = "device"
    OFFLINE = "offline"
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"

    @classmethod
    def from_bridge(cls, raw: str) -> DeviceStatus:
        for status in cls:
            if status.value == raw:
                return status
        return cls.UNKNOWN


class DeviceKind(Enum):
    EMULATOR = "emulator"
    PHYSICAL = "physical"


@dataclass(frozen=True)
class Device:
    """A device reported by the bridge. Identity is `id`."""

    id: str
    status: DeviceStatus
    kind: DeviceKind
    display_name: str | None = None
    os_version: str | None = None
    avd_name: str | None = None

    @property
    def is_online(self) -> bool:
        return self.status is DeviceStatus.ONLINE

    @property
    def is_emulator(self) -> bool:
        return self.kind is DeviceKind.EMULATOR

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "kind": self.kind.value,
            "display_name": self.display_name,
            "os_version": self.os_version,
            "avd_name": self.avd_name,
        }


@dataclass(frozen=True)
class AvdDefinition:
    """An AVD as listed by avdmanager. Identity is `name`."""

    name: str
    path: str | None = None
    target: str | None = None
    tag_abi: str | None = None
    based_on: str | None = None
    skin: str | None = None
    sd_card: str | None = None
    device: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UnifiedSelection:
    """The selected AVD and the running device it maps to, if any.

    `avd` is None only for a physical device selected directly.
    """

    avd: AvdDefinition | None
    device_id: str | None = None
    is_running: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "is_running", self.device_id is not None)

    @property
    def avd_name(self) -> str | None:
        return self.avd.name if self.avd else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "avd": self.avd.to_dict() if self.avd else None,
            "device_id": self.device_id,
            "is_running": self.is_running,
        }


@dataclass(frozen=True)
class RegistrySnapshot:
    """What registry observers receive on every change."""

    selection: UnifiedSelection | None
    devices: tuple[Device, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "selection": self.selection.to_dict() if self.selection else None,
            "devices": [device.to_dict() for device in self.devices],
        }
