"""Pydantic request models for daemon endpoints."""

from __future__ import annotations

from pydantic import BaseModel, field_validator


class RefreshRequest(BaseModel):
    force: bool = True


class DeviceSelectRequest(BaseModel):
    device_id: str


class AvdNameRequest(BaseModel):
    name: str


class AvdCreateRequest(BaseModel):
    name: str
    package: str  # system image, e.g. "system-images;android-34;google_apis;x86_64"
    device: str | None = None


class AvdRenameRequest(BaseModel):
    name: str
    new_name: str


class AvdLaunchRequest(BaseModel):
    name: str
    options: str = ""


class LogLevelRequest(BaseModel):
    level: str


class LogTagRequest(BaseModel):
    tag: str | None = None

    @field_validator("tag")
    @classmethod
    def empty_tag_clears(cls, value: str | None) -> str | None:
        return value or None
