"""Application id lookup for a build module."""

from __future__ import annotations

import asyncio
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Protocol

import structlog
from lxml import etree

logger = structlog.get_logger()

BUILD_SCRIPTS = ("build.gradle.kts", "build.gradle")

# applicationId "com.example.app" / applicationId = "com.example.app"
_APPLICATION_ID_RE = re.compile(r"""\bapplicationId\s*(?:=\s*)?\(?\s*["']([^"']+)["']""")


class ApplicationIdProvider(Protocol):
    """Answers "which application id does this module build?"."""

    async def application_id(self, module: str) -> str | None: ...


class StaticApplicationIdProvider:
    """Fixed module -> application id mapping.

    A `default` id answers for any module missing from the mapping.
    """

    def __init__(
        self, mapping: Mapping[str, str] | None = None, default: str | None = None
    ) -> None:
        self._mapping = dict(mapping or {})
        self._default = default

    async def application_id(self, module: str) -> str | None:
        return self._mapping.get(module, self._default)


def read_gradle_application_id(script: str) -> str | None:
    """Return the first `applicationId` assigned in a Gradle build script."""
    for line in script.splitlines():
        stripped = line.strip()
        if stripped.startswith("//"):
            continue
        match = _APPLICATION_ID_RE.search(stripped)
        if match:
            return match.group(1)
    return None


def read_manifest_package(content: bytes) -> str | None:
    """Return the `package` attribute of an AndroidManifest.xml root."""
    try:
        root = etree.fromstring(content)
    except etree.XMLSyntaxError as exc:
        logger.warning("manifest_parse_failed", error=str(exc))
        return None
    return root.get("package") or None


class GradleApplicationIdProvider:
    """Reads the application id from the module's Gradle build script.

    Falls back to the `package` attribute of the module's main manifest,
    which older projects still declare.
    """

    def __init__(self, project_dir: Path) -> None:
        self.project_dir = project_dir

    async def application_id(self, module: str) -> str | None:
        return await asyncio.to_thread(self._resolve, module)

    def _resolve(self, module: str) -> str | None:
        module_dir = self.project_dir / module.lstrip(":").replace(":", "/")
        for name in BUILD_SCRIPTS:
            script = module_dir / name
            if not script.is_file():
                continue
            application_id = read_gradle_application_id(
                script.read_text(encoding="utf-8", errors="replace")
            )
            if application_id:
                logger.debug("application_id_resolved", module=module, source=str(script))
                return application_id

        manifest = module_dir / "src" / "main" / "AndroidManifest.xml"
        if manifest.is_file():
            package = read_manifest_package(manifest.read_bytes())
            if package:
                logger.debug("application_id_resolved", module=module, source=str(manifest))
                return package

        logger.info("application_id_missing", module=module, project_dir=str(self.project_dir))
        return None
