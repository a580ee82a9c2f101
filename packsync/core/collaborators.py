"""External collaborators consumed by a sync run.

The game runtime installer, the mod-metadata service and the optional
runtime-variant installer are pluggable. This module defines their
interfaces and the adapters shipped with packsync.
"""

from __future__ import annotations

import json
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from packsync.core.errors import ConfigurationError, NetworkError
from packsync.core.http import HTTPClient
from packsync.core.progress import CancellationToken, ProgressReporter
from packsync.core.types import PackManifest, ResolvedFile

logger = structlog.get_logger()


class ToolchainInstaller(Protocol):
    """Installs the game runtime and mod loader into a profile."""

    def install(
        self,
        game_version: str,
        loader_version: str,
        *,
        profile_path: Path,
        java_path: Path | None,
        token: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> str:
        """Install the runtime and return its launch identifier."""
        ...


class ModMetadataLookup(Protocol):
    """Resolves externally hosted mod files to download locations."""

    def resolve(
        self,
        project_id: int,
        file_id: int,
        token: CancellationToken | None = None,
    ) -> ResolvedFile:
        ...


@dataclass
class ExtensionResult:
    """Launch identifiers produced by the optional-extension installer."""

    vr_launch_version: str
    non_vr_launch_version: str


class ExtensionInstaller(Protocol):
    """Installs an optional runtime variant (such as a VR launch mode)."""

    def install(
        self,
        manifest: PackManifest,
        base_launch_version: str,
        *,
        profile_path: Path,
        token: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> ExtensionResult:
        ...


def forge_launch_version(game_version: str, loader_version: str) -> str:
    """Launch identifier of a Forge installation."""
    return f"{game_version}-forge-{loader_version}"


class PassthroughToolchainInstaller:
    """Toolchain adapter for profiles whose runtime is managed elsewhere.

    Nothing is installed; the launch identifier follows the naming used by
    the mod loader's own installer.
    """

    def install(
        self,
        game_version: str,
        loader_version: str,
        *,
        profile_path: Path,
        java_path: Path | None,
        token: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> str:
        if token is not None:
            token.raise_if_cancelled()
        launch_version = forge_launch_version(game_version, loader_version)
        logger.info("toolchain_passthrough", launch_version=launch_version)
        return launch_version


def _run_command(args: list[str], timeout: float | None, what: str) -> list[str]:
    """Run an installer command and return its non-empty output lines."""
    try:
        result = subprocess.run(
            args,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ConfigurationError(f"{what} command could not run: {e}") from e
    if result.returncode != 0:
        raise ConfigurationError(
            f"{what} command failed with exit code {result.returncode}: "
            f"{result.stderr.strip()}"
        )
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


class CommandToolchainInstaller:
    """Runs an external installer command.

    The command is given as an argument list; ``{game_version}``,
    ``{loader_version}``, ``{profile}`` and ``{java}`` placeholders are
    substituted. The last non-empty line of its standard output is taken as
    the launch identifier.

    Args:
        command: Command template
        timeout: Seconds to wait for the installer
    """

    def __init__(self, command: list[str], timeout: float | None = None) -> None:
        if not command:
            raise ConfigurationError("Toolchain command is empty")
        self.command = command
        self.timeout = timeout

    def install(
        self,
        game_version: str,
        loader_version: str,
        *,
        profile_path: Path,
        java_path: Path | None,
        token: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> str:
        if token is not None:
            token.raise_if_cancelled()

        values = {
            "game_version": game_version,
            "loader_version": loader_version,
            "profile": str(profile_path),
            "java": str(java_path) if java_path else "java",
        }
        args = [part.format(**values) for part in self.command]

        if progress is not None:
            progress.report(None, "Installing game runtime and mod loader...")
        logger.info("toolchain_command", args=args)

        lines = _run_command(args, self.timeout, "Toolchain")
        if not lines:
            raise ConfigurationError("Toolchain command did not report a launch version")
        return lines[-1]


class CommandExtensionInstaller:
    """Runs an external command that installs the optional runtime variant.

    ``{launch_version}``, ``{game_version}``, ``{loader_version}`` and
    ``{profile}`` placeholders are substituted. The command must print the
    variant's launch identifier followed by the plain launch identifier as
    its last two non-empty output lines.

    Args:
        command: Command template
        timeout: Seconds to wait for the installer
    """

    def __init__(self, command: list[str], timeout: float | None = None) -> None:
        if not command:
            raise ConfigurationError("Extension command is empty")
        self.command = command
        self.timeout = timeout

    def install(
        self,
        manifest: PackManifest,
        base_launch_version: str,
        *,
        profile_path: Path,
        token: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> ExtensionResult:
        if token is not None:
            token.raise_if_cancelled()

        values = {
            "launch_version": base_launch_version,
            "game_version": manifest.intended_minecraft_version or "",
            "loader_version": manifest.required_forge_version or "",
            "profile": str(profile_path),
        }
        args = [part.format(**values) for part in self.command]

        if progress is not None:
            progress.report(None, "Installing optional runtime variant...")
        logger.info("extension_command", args=args)

        lines = _run_command(args, self.timeout, "Extension")
        if len(lines) < 2:
            raise ConfigurationError(
                "Extension command must report the variant and plain launch versions"
            )
        return ExtensionResult(vr_launch_version=lines[-2], non_vr_launch_version=lines[-1])


class CurseForgeLookup:
    """Resolves files through the CurseForge API.

    Args:
        http: HTTP client
        api_key: CurseForge API key
        base_url: API base URL
    """

    CLASS_FOLDERS: dict[int, str] = {
        6: "mods",
        12: "resourcepacks",
        6552: "shaderpacks",
    }

    def __init__(
        self,
        http: HTTPClient,
        api_key: str,
        base_url: str = "https://api.curseforge.com",
    ) -> None:
        self.http = http
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def _get(self, path: str, token: CancellationToken | None) -> dict:
        url = f"{self.base_url}{path}"
        text = self.http.get_text(
            url, token, headers={"x-api-key": self.api_key, "Accept": "application/json"}
        )
        try:
            payload = json.loads(text)
            return payload["data"]
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise NetworkError(f"Unexpected response from {url}: {e}", url=url) from e

    @staticmethod
    def cdn_url(file_id: int, file_name: str) -> str:
        """Fallback download URL for files without an API download link."""
        file_id_str = str(file_id)
        first_part = file_id_str[:4]
        second_part = file_id_str[4:].lstrip("0") or "0"
        return f"https://edge.forgecdn.net/files/{first_part}/{second_part}/{file_name}"

    def resolve(
        self,
        project_id: int,
        file_id: int,
        token: CancellationToken | None = None,
    ) -> ResolvedFile:
        file_data = self._get(f"/v1/mods/{project_id}/files/{file_id}", token)
        mod_data = self._get(f"/v1/mods/{project_id}", token)

        file_name = file_data.get("fileName") or f"{project_id}-{file_id}.jar"
        download_url = file_data.get("downloadUrl") or self.cdn_url(file_id, file_name)
        subfolder = self.CLASS_FOLDERS.get(mod_data.get("classId", 6), "mods")

        return ResolvedFile(
            download_url=download_url,
            file_name=file_name,
            subfolder=subfolder,
        )
