"""Error model - Actionable errors with remediation hints."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass
class HubError(Exception):
    """
    Base error with context and remediation guidance.

    All errors should be actionable - tell the caller what went wrong
    and what they can do about it.
    """

    code: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    remediation: str = ""

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        return {
            "code": self.code,
            "message": self.message,
            "context": self.context,
            "remediation": self.remediation,
        }


class NotFoundError(HubError):
    """Referenced device or AVD does not exist."""


class NotOnlineError(HubError):
    """Device exists but is not usable."""


class NoDeviceError(HubError):
    """No online device is selected."""


class NoTargetError(HubError):
    """No application id could be resolved for the selected module."""


class BridgeUnavailableError(HubError):
    """A bridge binary is missing, failed to launch, failed or timed out."""


class InvalidArgumentError(HubError):
    """User input could not be interpreted."""


# Specific error constructors for common cases


def device_not_found_error(device_id: str, available: list[str]) -> NotFoundError:
    """Create error for a device id missing from the current list."""
    return NotFoundError(
        code="ERR_DEVICE_NOT_FOUND",
        message=f"Device not found: {device_id}",
        context={"device_id": device_id, "available": available},
        remediation="Check connected devices with 'device list' and retry",
    )


def avd_not_found_error(name: str) -> NotFoundError:
    """Create error for an AVD missing from the catalog."""
    return NotFoundError(
        code="ERR_AVD_NOT_FOUND",
        message=f"AVD not found: {name}",
        context={"name": name},
        remediation="List available AVDs with 'avd list'",
    )


def device_not_online_error(device_id: str, status: str) -> NotOnlineError:
    """Create error for a device that is present but unusable."""
    return NotOnlineError(
        code="ERR_DEVICE_NOT_ONLINE",
        message=f"Device {device_id} is not online (status: {status})",
        context={"device_id": device_id, "status": status},
        remediation="Reconnect the device or accept the USB debugging prompt",
    )


def no_device_error() -> NoDeviceError:
    """Create error for streaming without a usable device."""
    return NoDeviceError(
        code="ERR_NO_DEVICE",
        message="No online device selected",
        context={},
        remediation="Select a device with 'device select' or an AVD with 'avd select'",
    )


def no_target_error(module: str) -> NoTargetError:
    """Create error for a module without a resolvable application id."""
    return NoTargetError(
        code="ERR_NO_TARGET",
        message=f"No applicationId found for module {module}",
        context={"module": module},
        remediation="Set applicationId in the module build script or ANDROID_DEVICE_HUB_APPLICATION_ID",
    )


def bridge_not_found_error(binary: str) -> BridgeUnavailableError:
    """Create error for a missing bridge binary."""
    return BridgeUnavailableError(
        code="ERR_BRIDGE_NOT_FOUND",
        message=f"{binary} command not found",
        context={"binary": binary},
        remediation="Install Android platform-tools or set ANDROID_HOME / ANDROID_DEVICE_HUB_ADB_PATH.",
    )


def bridge_command_error(command: str, reason: str) -> BridgeUnavailableError:
    """Create error for a bridge command that exited with failure."""
    return BridgeUnavailableError(
        code="ERR_BRIDGE_COMMAND",
        message=f"Bridge command failed: {command}",
        context={"command": command, "reason": reason},
        remediation="Check the adb server with 'adb devices' and retry.",
    )


def bridge_timeout_error(command: str, timeout: float) -> BridgeUnavailableError:
    """Create error for a bridge command that did not answer in time."""
    return BridgeUnavailableError(
        code="ERR_BRIDGE_TIMEOUT",
        message=f"Bridge command timed out: {command}",
        context={"command": command, "timeout_s": timeout},
        remediation="Restart the adb server with 'adb kill-server' and retry.",
    )


def invalid_log_level_error(level: str) -> InvalidArgumentError:
    """Create error for an unknown log level alias."""
    return InvalidArgumentError(
        code="ERR_INVALID_LOG_LEVEL",
        message=f"Invalid log level: {level}",
        context={"level": level},
        remediation="Use one of: verbose, debug, info, warn, error, fatal (or V/D/I/W/E/F)",
    )


def invalid_avd_name_error(name: str) -> InvalidArgumentError:
    """Create error for an AVD name the avdmanager would reject."""
    return InvalidArgumentError(
        code="ERR_INVALID_AVD_NAME",
        message=f"Invalid AVD name: {name}",
        context={"name": name},
        remediation="AVD names may contain letters, digits, '.', '_' and '-' only.",
    )


def invalid_package_error(package: str) -> InvalidArgumentError:
    """Create error for invalid package name."""
    return InvalidArgumentError(
        code="ERR_INVALID_PACKAGE",
        message=f"Invalid package name: {package}",
        context={"package": package},
        remediation="Package names must be like 'com.example.app'.",
    )
