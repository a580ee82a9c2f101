"""Application of a single version patch to a profile tree.

A patch has three parts, applied in this order:

1. Mods: delete old files for a mod and/or download its new jar.
2. Config replacements: ordered regex substitutions in existing config files.
3. Extra files: fresh downloads to arbitrary paths inside the profile.

Only the mods, config and extra-file paths under the profile root are
touched. The instance state file is never written here.
"""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlparse

import structlog

from packsync.core.errors import ConfigurationError, ExtraFileDownloadError, NetworkError
from packsync.core.http import HTTPClient
from packsync.core.paths import resolve_within
from packsync.core.planner import PlannedPatch
from packsync.core.progress import CancellationToken, ProgressReporter
from packsync.core.types import ConfigReplacement, ModChange

logger = structlog.get_logger()

MODS_FOLDER = "mods"
CONFIG_FOLDER = "config"


def url_filename(url: str) -> str | None:
    """File name component of a URL path, if it has one."""
    name = posixpath.basename(unquote(urlparse(url).path))
    return name or None


def apply_replacements(content: str, replacements: list[ConfigReplacement]) -> str:
    """Apply pattern to literal substitutions in order.

    Each replacement operates on the output of the previous one. The
    replacement text is inserted as-is; backslashes and group references
    are not expanded.

    Raises:
        ConfigurationError: If a pattern is not a valid regex
    """
    for replacement in replacements:
        try:
            pattern = re.compile(replacement.replace)
        except re.error as e:
            raise ConfigurationError(
                f"Invalid config replacement pattern {replacement.replace!r}: {e}"
            ) from e
        text = replacement.with_
        content = pattern.sub(lambda _match: text, content)
    return content


@dataclass
class PatchResult:
    """Counts of the operations performed for one patch."""

    version: str
    mods_removed: int = 0
    mods_installed: int = 0
    mods_suppressed: int = 0
    configs_updated: int = 0
    configs_missing: int = 0
    extra_files: int = 0


class PatchApplier:
    """Applies planned version patches to a profile.

    Args:
        profile_path: Root of the game profile
        http: HTTP client used for downloads
        token: Optional cancellation token
        progress: Optional progress reporter
    """

    def __init__(
        self,
        profile_path: Path,
        http: HTTPClient,
        token: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> None:
        self.profile_path = profile_path
        self.http = http
        self.token = token
        self.progress = progress

    @property
    def mods_dir(self) -> Path:
        return self.profile_path / MODS_FOLDER

    @property
    def config_dir(self) -> Path:
        return self.profile_path / CONFIG_FOLDER

    def _check_cancelled(self) -> None:
        if self.token is not None:
            self.token.raise_if_cancelled()

    def _report(self, fraction: float | None, label: str) -> None:
        if self.progress is not None:
            self.progress.report(fraction, label)

    def apply(self, planned: PlannedPatch) -> PatchResult:
        """Apply one planned patch.

        Raises:
            NetworkError: If a mod download fails
            ExtraFileDownloadError: If an extra file cannot be downloaded
            ConfigurationError: If the patch contains unusable paths or patterns
            SyncCancelled: If cancellation was requested
        """
        result = PatchResult(version=planned.version, mods_suppressed=len(planned.suppressed_mods))
        version_task = f"Processing version {planned.version}..."
        self._report(None, version_task)

        self._apply_mods(planned, version_task, result)
        self._apply_config_replacements(planned, version_task, result)
        self._apply_extra_files(planned, version_task, result)

        logger.info(
            "patch_applied",
            version=planned.version,
            mods_removed=result.mods_removed,
            mods_installed=result.mods_installed,
            mods_suppressed=result.mods_suppressed,
            configs_updated=result.configs_updated,
            extra_files=result.extra_files,
        )
        return result

    def _snapshot_mod_files(self) -> list[Path]:
        if not self.mods_dir.is_dir():
            return []
        return sorted(path for path in self.mods_dir.rglob("*") if path.is_file())

    def _remove_mod_files(
        self, mod_id: str, change: ModChange, snapshot: list[Path]
    ) -> int:
        pattern_text = change.removal_pattern(mod_id)
        try:
            pattern = re.compile(pattern_text)
        except re.error as e:
            raise ConfigurationError(
                f"Invalid removal pattern for mod {mod_id}: {pattern_text!r}: {e}"
            ) from e

        removed = 0
        for path in snapshot:
            relative = path.relative_to(self.mods_dir).as_posix()
            if pattern.search(relative) and path.exists():
                self._check_cancelled()
                path.unlink()
                removed += 1
                logger.debug("mod_file_removed", mod=mod_id, file=relative)
        return removed

    def _install_mod(self, mod_id: str, change: ModChange) -> Path:
        assert change.file_uri is not None
        file_name = url_filename(change.file_uri) or f"{mod_id}.jar"
        try:
            destination = resolve_within(self.mods_dir, file_name)
        except ValueError as e:
            raise ConfigurationError(f"Unusable file name for mod {mod_id}: {e}") from e

        self._check_cancelled()
        self.http.download_file(change.file_uri, destination, self.token, self.progress)
        logger.debug("mod_installed", mod=mod_id, file=file_name)
        return destination

    def _apply_mods(
        self, planned: PlannedPatch, version_task: str, result: PatchResult
    ) -> None:
        mods = planned.effective_mods()
        if not mods:
            return

        # Snapshot once so files installed by this patch are never removed by it
        snapshot = self._snapshot_mod_files()
        total = len(mods)

        for index, (mod_id, change) in enumerate(mods.items(), start=1):
            self._check_cancelled()
            mod_task = f"{version_task}\nProcessing mod {mod_id} ({index} / {total})..."
            self._report((index - 1) / total, mod_task)

            if change.has_removal_intent:
                self._report(None, f"{mod_task}\nDeleting old versions...")
                result.mods_removed += self._remove_mod_files(mod_id, change, snapshot)

            if change.has_install_intent:
                file_name = url_filename(change.file_uri or "") or f"{mod_id}.jar"
                self._report(None, f"{mod_task}\nDownloading mod archive: {file_name}")
                self._install_mod(mod_id, change)
                result.mods_installed += 1

    def _apply_config_replacements(
        self, planned: PlannedPatch, version_task: str, result: PatchResult
    ) -> None:
        replacements = planned.patch.config_replacements
        if not replacements:
            return

        configs_task = f"{version_task}\nApplying config replacements..."
        self._report(None, configs_task)
        total = len(replacements)

        for index, (relative, items) in enumerate(replacements.items(), start=1):
            self._check_cancelled()
            try:
                path = resolve_within(self.config_dir, relative)
            except ValueError as e:
                raise ConfigurationError(f"Unusable config path {relative!r}: {e}") from e

            if not path.is_file():
                # The mod owning this config may not be installed
                logger.debug("config_missing", version=planned.version, config=relative)
                result.configs_missing += 1
                continue

            self._report(
                (index - 1) / total,
                f"{configs_task}\nConfig file {index} of {total}: {relative}",
            )

            with open(path, encoding="utf-8-sig", newline="") as f:
                content = f.read()
            content = apply_replacements(content, items)
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(content)

            result.configs_updated += 1

    def _apply_extra_files(
        self, planned: PlannedPatch, version_task: str, result: PatchResult
    ) -> None:
        extra_files = planned.patch.extra_files
        if not extra_files:
            return

        extra_task = f"{version_task}\nDownloading extra files..."
        self._report(None, extra_task)
        total = len(extra_files)

        for index, (relative, url) in enumerate(extra_files.items(), start=1):
            self._check_cancelled()
            try:
                path = resolve_within(self.profile_path, relative)
            except ValueError as e:
                raise ConfigurationError(f"Unusable extra file path {relative!r}: {e}") from e

            self._report(
                (index - 1) / total,
                f"{extra_task}\nDownloading extra file {index} of {total}: {relative}",
            )

            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                path.unlink(missing_ok=True)
                self.http.download_file(url, path, self.token, self.progress)
            except (NetworkError, OSError) as e:
                logger.error("extra_file_failed", file=relative, url=url, error=str(e))
                raise ExtraFileDownloadError(relative, url) from e

            result.extra_files += 1
