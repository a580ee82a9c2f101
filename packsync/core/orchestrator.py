"""Top-level driver of a sync run.

Phases run in a fixed order::

    idle -> fetch_manifest -> load_state -> (rebuild_base | skip_rebuild)
         -> apply_patches -> install_optional_extension -> persist_state
         -> cleanup -> done

Any error or cancellation before ``persist_state`` lands in ``aborted`` and
leaves the state file exactly as it was when the run started; the next run
resumes from the last version that was fully persisted. The scratch
directory is always removed afterwards, and a failure to remove it is only
logged.
"""

from __future__ import annotations

import json
import re
import shutil
from dataclasses import dataclass, field
from pathlib import Path

import structlog
from pydantic import ValidationError

from packsync.core.archive import ArchiveExtractor, ExtractOptions
from packsync.core.collaborators import (
    ExtensionInstaller,
    ModMetadataLookup,
    PassthroughToolchainInstaller,
    ToolchainInstaller,
)
from packsync.core.config import AppConfig
from packsync.core.errors import ConfigurationError, ManifestParseError
from packsync.core.http import HTTPClient
from packsync.core.instance_state import STATE_FILENAME, InstanceStateStore
from packsync.core.integrity import compute_file_md5, fetch_remote_checksum
from packsync.core.manifest import ManifestFetcher
from packsync.core.paths import normalize_relative, resolve_within
from packsync.core.patcher import PatchApplier, PatchResult
from packsync.core.planner import SyncPlan, build_sync_plan
from packsync.core.progress import CancellationToken, ProgressReporter, SyncPhase
from packsync.core.run_lock import LOCK_FILENAME, RunLock
from packsync.core.types import ExternalFileManifest, InstanceState, PackManifest

logger = structlog.get_logger()

SCRATCH_FOLDER = "temp"

# Directories replaced wholesale by a base rebuild
BASE_PACK_FOLDERS: tuple[str, ...] = ("config", "mods", "resources", "scripts")

# Files kept when the profile is cleaned for a fresh runtime install,
# matched against paths relative to the profile root
PRESERVED_FILE_PATTERNS: tuple[str, ...] = (
    r"options\.txt$",
    r"servers\.dat$",
    r"(^|/)assets/",
    rf"^{re.escape(STATE_FILENAME)}$",
    rf"^{re.escape(LOCK_FILENAME)}$",
)


def _patch_result_list() -> list[PatchResult]:
    """Factory for typed empty list of PatchResult."""
    return []


@dataclass
class SyncResult:
    """Outcome of a completed sync run."""

    plan: SyncPlan
    state: InstanceState
    persisted: bool = False
    patch_results: list[PatchResult] = field(default_factory=_patch_result_list)


class SyncOrchestrator:
    """Brings a profile up to the version published by a pack.

    Args:
        config: Application configuration (pack URL, profile path, runtime)
        http: HTTP client for every transfer
        toolchain: Installer for the game runtime and mod loader
        mod_lookup: Resolver for files listed in a client manifest
        extension_installer: Installer for the optional runtime variant
        progress: Progress reporter
        token: Cancellation token
    """

    def __init__(
        self,
        config: AppConfig,
        http: HTTPClient,
        *,
        toolchain: ToolchainInstaller | None = None,
        mod_lookup: ModMetadataLookup | None = None,
        extension_installer: ExtensionInstaller | None = None,
        progress: ProgressReporter | None = None,
        token: CancellationToken | None = None,
    ) -> None:
        self.config = config
        self.http = http
        self.toolchain = toolchain or PassthroughToolchainInstaller()
        self.mod_lookup = mod_lookup
        self.extension_installer = extension_installer
        self.progress = progress or ProgressReporter()
        self.token = token or CancellationToken()

        self.profile_path = config.profile_path
        self.store = InstanceStateStore(self.profile_path)
        self.fetcher = ManifestFetcher(http)
        self.phase = SyncPhase.idle

    @property
    def scratch_dir(self) -> Path:
        return self.profile_path / SCRATCH_FOLDER

    def _enter(self, phase: SyncPhase) -> None:
        self.phase = phase
        self.progress.enter_phase(phase)
        logger.debug("sync_phase", phase=phase.value)

    def run(self, force: bool = False, use_canary: bool | None = None) -> SyncResult:
        """Run a full sync.

        Args:
            force: Rebuild the base archive and runtime regardless of state
            use_canary: Track the canary version; defaults to the config value

        Returns:
            Result with the plan that was executed and the resulting state

        Raises:
            PackSyncError: Any failure; the state file is left untouched
        """
        if use_canary is None:
            use_canary = self.config.use_canary

        with RunLock(self.profile_path):
            try:
                result = self._run(force, use_canary)
            except BaseException as e:
                logger.error(
                    "sync_aborted",
                    phase=self.phase.value,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self._enter(SyncPhase.aborted)
                self._cleanup()
                raise

            self._enter(SyncPhase.cleanup)
            self._cleanup()
            self._enter(SyncPhase.done)
            return result

    def _run(self, force: bool, use_canary: bool) -> SyncResult:
        self._enter(SyncPhase.fetch_manifest)
        manifest = self.fetcher.fetch_for_pack(self.config.pack_url, self.token, self.progress)

        self._enter(SyncPhase.load_state)
        self.progress.report(None, "Creating instance folder structure...")
        self.profile_path.mkdir(parents=True, exist_ok=True)
        previous = None if force else self.store.load()

        remote_checksum = None
        if manifest.verify_server_pack_md5 and previous is not None:
            remote_checksum = fetch_remote_checksum(self.http, manifest.server_pack, self.token)

        plan = build_sync_plan(previous, manifest, force, use_canary, remote_checksum)
        state = self._initial_state(previous, manifest, plan)

        if plan.rebuild_base:
            self._enter(SyncPhase.rebuild_base)
            self._rebuild_base(manifest, plan, state)
        else:
            self._enter(SyncPhase.skip_rebuild)

        self._enter(SyncPhase.apply_patches)
        applier = PatchApplier(self.profile_path, self.http, self.token, self.progress)
        patch_results = []
        for planned in plan.patches:
            self.token.raise_if_cancelled()
            patch_results.append(applier.apply(planned))

        self._enter(SyncPhase.install_optional_extension)
        self._install_extension(manifest, plan, state)

        self._enter(SyncPhase.persist_state)
        self.token.raise_if_cancelled()
        on_disk = self.store.load()
        persisted = state != on_disk
        if persisted:
            self.store.save(state)

        logger.info(
            "sync_complete",
            version=state.version,
            rebuilt=plan.rebuild_base,
            patches=plan.versions,
            persisted=persisted,
        )
        return SyncResult(
            plan=plan,
            state=state,
            persisted=persisted,
            patch_results=patch_results,
        )

    def _initial_state(
        self,
        previous: InstanceState | None,
        manifest: PackManifest,
        plan: SyncPlan,
    ) -> InstanceState:
        """In-progress state for this run; only persisted on success."""
        extras = dict(previous.model_extra or {}) if previous is not None else {}
        return InstanceState(
            **extras,
            file_version=InstanceState.CURRENT_FILE_VERSION,
            version=plan.target_version,
            built_from_server_pack=manifest.server_pack,
            built_from_server_pack_md5=(
                previous.built_from_server_pack_md5 if previous is not None else None
            ),
            built_from_client_pack=manifest.client_pack,
            current_minecraft_version=manifest.intended_minecraft_version,
            current_forge_version=manifest.required_forge_version,
            current_launch_version=(
                previous.current_launch_version if previous is not None else None
            ),
            vr_launch_version=previous.vr_launch_version if previous is not None else None,
            non_vr_launch_version=(
                previous.non_vr_launch_version if previous is not None else None
            ),
        )

    def _is_preserved(self, relative: str) -> bool:
        if relative == SCRATCH_FOLDER or relative.startswith(SCRATCH_FOLDER + "/"):
            return True
        return any(re.search(pattern, relative) for pattern in PRESERVED_FILE_PATTERNS)

    def _clean_profile(self) -> None:
        """Remove every profile file except the preserved user files."""
        self.progress.report(None, "Cleaning up old files...")

        removed = 0
        for path in sorted(self.profile_path.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(self.profile_path).as_posix()
            if self._is_preserved(relative):
                continue
            self.token.raise_if_cancelled()
            path.unlink()
            removed += 1

        for directory in sorted(self.profile_path.iterdir()):
            if directory.is_dir() and not any(p.is_file() for p in directory.rglob("*")):
                shutil.rmtree(directory)

        logger.info("profile_cleaned", removed=removed)

    def _setup_toolchain(self, manifest: PackManifest, state: InstanceState) -> None:
        if not manifest.intended_minecraft_version or not manifest.required_forge_version:
            raise ConfigurationError(
                "Pack does not declare intendedMinecraftVersion and requiredForgeVersion"
            )

        self._clean_profile()
        state.current_launch_version = self.toolchain.install(
            manifest.intended_minecraft_version,
            manifest.required_forge_version,
            profile_path=self.profile_path,
            java_path=self.config.java_path,
            token=self.token,
            progress=self.progress,
        )
        self.token.raise_if_cancelled()
        logger.info("toolchain_installed", launch_version=state.current_launch_version)

    def _download(self, url: str, destination: Path, label: str) -> Path:
        self.token.raise_if_cancelled()
        self.progress.report(0.0, label)
        return self.http.download_file(url, destination, self.token, self.progress)

    def _rebuild_base(
        self, manifest: PackManifest, plan: SyncPlan, state: InstanceState
    ) -> None:
        logger.info("base_rebuild", reasons=[reason.value for reason in plan.rebuild_reasons])

        if plan.setup_toolchain:
            self._setup_toolchain(manifest, state)

        for folder in BASE_PACK_FOLDERS:
            directory = self.profile_path / folder
            if directory.is_dir():
                shutil.rmtree(directory)

        self.scratch_dir.mkdir(parents=True, exist_ok=True)

        server_zip = self._download(
            manifest.server_pack,
            self.scratch_dir / "server.zip",
            "Downloading base pack contents...",
        )
        state.built_from_server_pack_md5 = compute_file_md5(server_zip)
        self.token.raise_if_cancelled()
        self._extract_base_pack(manifest, server_zip)

        if manifest.client_pack:
            client_zip = self._download(
                manifest.client_pack,
                self.scratch_dir / "client.zip",
                "Downloading client overrides...",
            )
            self.token.raise_if_cancelled()
            self._extract_client_pack(manifest, client_zip)

    def _extract_base_pack(self, manifest: PackManifest, archive_path: Path) -> None:
        self.progress.report(0.0, "Extracting base pack contents...")

        def options(subfolder: str, overwrite: bool) -> ExtractOptions:
            return ExtractOptions(
                subfolder=subfolder,
                overwrite_existing=overwrite,
                token=self.token,
                progress=self.progress,
            )

        with ArchiveExtractor(archive_path) as archive:
            self.progress.report_label("Extracting base pack contents (configs)...")
            archive.extract(self.profile_path, options("config", True))
            self.progress.report_label("Extracting base pack contents (mods)...")
            archive.extract(self.profile_path, options("mods", True))
            self.progress.report_label("Extracting base pack contents (resources)...")
            archive.try_extract(self.profile_path, options("resources", False))
            self.progress.report_label("Extracting base pack contents (scripts)...")
            archive.try_extract(self.profile_path, options("scripts", False))
            self.progress.report_label("Extracting base pack contents...")

            for file_name in manifest.additional_base_pack_files or []:
                archive.try_extract(
                    self.profile_path,
                    ExtractOptions(
                        filename_pattern=re.escape(normalize_relative(file_name)),
                        overwrite_existing=False,
                        token=self.token,
                        progress=self.progress,
                    ),
                )

    def _extract_client_pack(self, manifest: PackManifest, archive_path: Path) -> None:
        self.progress.report(0.0, "Extracting client overrides...")

        with ArchiveExtractor(archive_path) as archive:
            for folder in manifest.override_folders():
                self.progress.report_label(f"Extracting client overrides ({folder})...")
                archive.try_extract(
                    self.profile_path,
                    ExtractOptions(
                        subfolder=f"overrides/{folder}",
                        overwrite_existing=True,
                        token=self.token,
                        progress=self.progress,
                    ),
                )

            has_manifest = archive.try_extract(
                self.scratch_dir,
                ExtractOptions(filename_pattern=re.escape("manifest.json"), overwrite_existing=True),
            )

        if has_manifest:
            self._resolve_external_files(self.scratch_dir / "manifest.json")

    def _resolve_external_files(self, manifest_path: Path) -> None:
        """Download client-only files listed in a client manifest."""
        try:
            external = ExternalFileManifest.model_validate(
                json.loads(manifest_path.read_text(encoding="utf-8-sig"))
            )
        except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
            raise ManifestParseError(
                f"Invalid client manifest: {e}", url=str(manifest_path)
            ) from e

        if not external.files:
            return
        if self.mod_lookup is None:
            raise ConfigurationError(
                f"Client manifest lists {len(external.files)} files "
                "but no mod metadata lookup is configured"
            )

        self.progress.report(0.0, "Downloading client-only mods...")
        total = len(external.files)
        downloaded = 0

        for index, ref in enumerate(external.files):
            self.token.raise_if_cancelled()
            self.progress.report(index / total)

            resolved = self.mod_lookup.resolve(ref.project_id, ref.file_id, self.token)
            try:
                destination = resolve_within(
                    self.profile_path, f"{resolved.subfolder}/{resolved.file_name}"
                )
            except ValueError as e:
                raise ConfigurationError(
                    f"Unusable location for file {ref.project_id}/{ref.file_id}: {e}"
                ) from e

            if destination.exists():
                continue

            self._download(
                resolved.download_url,
                destination,
                f"Downloading client-only mods...\n{resolved.file_name}",
            )
            downloaded += 1

        logger.info("external_files_resolved", total=total, downloaded=downloaded)

    def _install_extension(
        self, manifest: PackManifest, plan: SyncPlan, state: InstanceState
    ) -> None:
        if not manifest.supports_vr:
            return
        if self.extension_installer is None:
            logger.warning("extension_installer_missing", supports_vr=True)
            return

        has_variants = bool(state.vr_launch_version and state.non_vr_launch_version)
        if plan.is_noop and has_variants:
            return
        if not state.current_launch_version:
            raise ConfigurationError("No launch version recorded for the extension installer")

        self.token.raise_if_cancelled()
        result = self.extension_installer.install(
            manifest,
            state.current_launch_version,
            profile_path=self.profile_path,
            token=self.token,
            progress=self.progress,
        )
        state.vr_launch_version = result.vr_launch_version
        state.non_vr_launch_version = result.non_vr_launch_version
        logger.info(
            "extension_installed",
            vr_launch_version=result.vr_launch_version,
            non_vr_launch_version=result.non_vr_launch_version,
        )

    def _cleanup(self) -> None:
        if not self.scratch_dir.exists():
            return
        try:
            shutil.rmtree(self.scratch_dir)
        except OSError as e:
            logger.warning("cleanup_failed", path=str(self.scratch_dir), error=str(e))
