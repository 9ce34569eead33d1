"""Validation helpers for user input and bridge output."""

from __future__ import annotations

import re

from android_device_hub.errors import invalid_avd_name_error, invalid_package_error

EMULATOR_PREFIX = "emulator-"

# Package name: starts with letter, segments separated by dots, each segment alphanumeric/underscore
PACKAGE_PATTERN = re.compile(r"^[a-zA-Z][a-zA-Z0-9_]*(\.[a-zA-Z][a-zA-Z0-9_]*)+$")

# Process names reported by `ps` that look like an installed application
APPLICATION_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)+$")
APPLICATION_ID_SEARCH = re.compile(r"([a-z][a-z0-9_]*(?:\.[a-z][a-z0-9_]*)+)")

AVD_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")


def is_emulator_id(device_id: str) -> bool:
    """Return True if a bridge-assigned id names an emulator slot."""
    return device_id.startswith(EMULATOR_PREFIX)


def looks_like_application_id(name: str) -> bool:
    """Return True if a process name looks like a dotted application id."""
    return len(name) > 3 and APPLICATION_ID_PATTERN.match(name) is not None


def validate_package(package: str) -> None:
    """Validate Android package name format.

    Args:
        package: Package name to validate

    Raises:
        InvalidArgumentError: If package name is invalid
    """
    if not PACKAGE_PATTERN.match(package):
        raise invalid_package_error(package)


def validate_avd_name(name: str) -> None:
    """Validate an AVD name before handing it to avdmanager.

    Raises:
        InvalidArgumentError: If the name contains characters avdmanager rejects
    """
    if not name or not AVD_NAME_PATTERN.match(name):
        raise invalid_avd_name_error(name)
