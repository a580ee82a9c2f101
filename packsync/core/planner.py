"""Version planning for incremental pack upgrades.

Given the recorded instance state and a freshly fetched manifest, decide
whether the base archive must be rebuilt and which version patches must be
applied, in which order.

Patches are applied oldest-first: only keys with ``current < key <= target``
are selected, sorted by semantic version. Within that range a mod install is
suppressed when a later in-range patch installs the same mod again, since the
later download supersedes it. Deletion-only entries are never suppressed.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

import structlog

from packsync.core.integrity import checksums_match
from packsync.core.types import InstanceState, ModChange, PackManifest, PackVersionPatch
from packsync.core.versioning import NOT_INSTALLED, parse_version

logger = structlog.get_logger()


class RebuildReason(enum.Enum):
    """Why the base archive has to be fetched and extracted again."""

    forced = "forced"
    no_prior_state = "no_prior_state"
    base_archive_changed = "base_archive_changed"
    client_archive_changed = "client_archive_changed"
    game_version_changed = "game_version_changed"
    checksum_changed = "checksum_changed"
    toolchain_outdated = "toolchain_outdated"


def _str_set() -> set[str]:
    """Factory for typed empty set of str."""
    return set()


@dataclass
class PlannedPatch:
    """One version patch selected for application."""

    version: str
    patch: PackVersionPatch
    suppressed_mods: set[str] = field(default_factory=_str_set)

    def effective_mods(self) -> dict[str, ModChange]:
        """Mod entries that should actually be executed, in declared order."""
        if not self.patch.mods:
            return {}
        return {
            mod_id: change
            for mod_id, change in self.patch.mods.items()
            if mod_id not in self.suppressed_mods
        }


def _rebuild_reason_list() -> list[RebuildReason]:
    """Factory for typed empty list of RebuildReason."""
    return []


def _planned_patch_list() -> list[PlannedPatch]:
    """Factory for typed empty list of PlannedPatch."""
    return []


@dataclass
class SyncPlan:
    """Result of planning one sync run."""

    current_version: str = NOT_INSTALLED
    target_version: str = NOT_INSTALLED
    rebuild_reasons: list[RebuildReason] = field(default_factory=_rebuild_reason_list)
    patches: list[PlannedPatch] = field(default_factory=_planned_patch_list)
    setup_toolchain: bool = False

    @property
    def rebuild_base(self) -> bool:
        return bool(self.rebuild_reasons)

    @property
    def versions(self) -> list[str]:
        return [planned.version for planned in self.patches]

    @property
    def is_noop(self) -> bool:
        return not self.rebuild_base and not self.patches


def plan_patches(
    current_version: str,
    target_version: str,
    versions: dict[str, PackVersionPatch],
) -> list[PlannedPatch]:
    """Select and order the patches between two versions.

    Args:
        current_version: Version already applied ("0.0.0" when nothing is)
        target_version: Version to bring the instance up to
        versions: Manifest mapping of version key to patch

    Returns:
        Patches with ``current < key <= target`` in ascending order, each
        carrying the set of mod ids whose install is superseded later

    Raises:
        InvalidVersionError: If any key, the current or the target version is
            not a semantic version
    """
    parsed_keys = [(key, parse_version(key)) for key in versions]
    current = parse_version(current_version)
    target = parse_version(target_version)

    in_range = sorted(
        ((key, parsed) for key, parsed in parsed_keys if current < parsed <= target),
        key=lambda pair: pair[1],
    )

    planned: list[PlannedPatch] = []
    for index, (key, _) in enumerate(in_range):
        patch = versions[key]
        later = [versions[later_key] for later_key, _ in in_range[index + 1:]]

        suppressed: set[str] = set()
        for mod_id, change in (patch.mods or {}).items():
            if not change.has_install_intent:
                continue
            if any(future.installs_mod(mod_id) for future in later):
                suppressed.add(mod_id)

        if suppressed:
            logger.debug("mods_superseded", version=key, mods=sorted(suppressed))
        planned.append(PlannedPatch(version=key, patch=patch, suppressed_mods=suppressed))

    return planned


def needs_toolchain_setup(
    state: InstanceState | None,
    manifest: PackManifest,
    force: bool = False,
) -> bool:
    """Whether the game runtime and mod loader must be (re)installed."""
    if force or state is None:
        return True
    if state.current_forge_version != manifest.required_forge_version:
        return True
    return not state.current_launch_version


def decide_rebuild(
    state: InstanceState | None,
    manifest: PackManifest,
    force: bool = False,
    remote_checksum: str | None = None,
) -> list[RebuildReason]:
    """Collect every reason the base archive must be rebuilt.

    Args:
        state: Recorded state, or None if there is none
        manifest: Current remote manifest
        force: Caller requested a full rebuild
        remote_checksum: Published base archive checksum; only consulted
            when the manifest opts into verification

    Returns:
        Reasons in a fixed order; empty when no rebuild is needed
    """
    reasons: list[RebuildReason] = []

    if force:
        reasons.append(RebuildReason.forced)

    if state is None or parse_version(state.version) == parse_version(NOT_INSTALLED):
        reasons.append(RebuildReason.no_prior_state)
    else:
        if state.built_from_server_pack != manifest.server_pack:
            reasons.append(RebuildReason.base_archive_changed)
        if state.records_client_pack and state.built_from_client_pack != manifest.client_pack:
            reasons.append(RebuildReason.client_archive_changed)
        if state.current_minecraft_version != manifest.intended_minecraft_version:
            reasons.append(RebuildReason.game_version_changed)
        if manifest.verify_server_pack_md5 and not checksums_match(
            state.built_from_server_pack_md5, remote_checksum
        ):
            reasons.append(RebuildReason.checksum_changed)

    if needs_toolchain_setup(state, manifest, force) and not reasons:
        reasons.append(RebuildReason.toolchain_outdated)

    return reasons


def build_sync_plan(
    state: InstanceState | None,
    manifest: PackManifest,
    force: bool = False,
    use_canary: bool = False,
    remote_checksum: str | None = None,
) -> SyncPlan:
    """Plan a complete sync run.

    A rebuild resets the effective current version to "0.0.0" so that every
    patch up to the target is applied on top of the fresh base archive.

    Raises:
        InvalidVersionError: If a version key or the target is malformed
    """
    manifest.ordered_versions()

    reasons = decide_rebuild(state, manifest, force, remote_checksum)
    target = manifest.target_version(use_canary)
    recorded = state.version if state is not None else NOT_INSTALLED
    current = NOT_INSTALLED if reasons else recorded

    plan = SyncPlan(
        current_version=current,
        target_version=target,
        rebuild_reasons=reasons,
        patches=plan_patches(current, target, manifest.versions),
        setup_toolchain=needs_toolchain_setup(state, manifest, force),
    )

    logger.info(
        "sync_planned",
        recorded_version=recorded,
        target_version=target,
        rebuild=[reason.value for reason in reasons],
        patches=plan.versions,
        setup_toolchain=plan.setup_toolchain,
    )
    return plan
