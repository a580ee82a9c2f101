"""Core type definitions for packsync.

All models read and write the camelCase JSON used by published packs and
accept snake_case names when constructed from Python. Unknown fields are
kept so they survive a load/save round trip.
"""

from __future__ import annotations

import re
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from semver import Version

from packsync.core.versioning import NOT_INSTALLED, sorted_versions

DEFAULT_CLIENT_OVERRIDE_FOLDERS: tuple[str, ...] = (
    "animation",
    "configs",
    "defaultconfigs",
    "mods",
    "paintings",
    "resources",
    "scripts",
)


class PackModel(BaseModel):
    """Base model for camelCase JSON documents."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class ModChange(PackModel):
    """A mod add, remove or replace operation.

    Removal and install intent are independent: a replace sets both.
    """

    file_uri: str | None = Field(None, description="Download URL of the new jar")
    remove_old: bool = Field(False, description="Delete existing files for this mod")
    remove_pattern: str | None = Field(
        None, description="Regex selecting files to delete before installing"
    )

    @property
    def has_install_intent(self) -> bool:
        return bool(self.file_uri)

    @property
    def has_removal_intent(self) -> bool:
        return self.remove_old or bool(self.remove_pattern)

    def removal_pattern(self, mod_id: str) -> str:
        """Regex used to select files to delete for this mod."""
        if self.remove_pattern:
            return self.remove_pattern
        return f"{re.escape(mod_id)}.*"


class ConfigReplacement(PackModel):
    """A single pattern to literal text substitution."""

    replace: str = Field(..., description="Regex to search for")
    with_: str = Field(..., alias="with", description="Literal replacement text")


class PackVersionPatch(PackModel):
    """Incremental changes introduced by one pack version."""

    mods: dict[str, ModChange] | None = None
    config_replacements: dict[str, list[ConfigReplacement]] | None = None
    extra_files: dict[str, str] | None = None

    def installs_mod(self, mod_id: str) -> bool:
        """True if this patch downloads a new file for the given mod."""
        if not self.mods:
            return False
        change = self.mods.get(mod_id)
        return change is not None and change.has_install_intent


class PackManifest(PackModel):
    """Remote pack definition."""

    current_version: str = Field(..., description="Stable target version")
    canary_version: str | None = Field(None, description="Canary target version")
    intended_minecraft_version: str | None = None
    required_forge_version: str | None = None
    server_pack: str = Field(..., description="Base archive URL")
    verify_server_pack_md5: bool = False
    client_pack: str | None = Field(None, description="Client override archive URL")
    client_override_folders: list[str] | None = None
    versions: dict[str, PackVersionPatch] = Field(default_factory=dict)
    additional_base_pack_files: list[str] | None = None
    supports_vr: bool = False

    def target_version(self, use_canary: bool = False) -> str:
        """Version an instance should be brought up to."""
        if use_canary and self.canary_version:
            return self.canary_version
        return self.current_version

    def override_folders(self) -> list[str]:
        if self.client_override_folders is None:
            return list(DEFAULT_CLIENT_OVERRIDE_FOLDERS)
        return list(self.client_override_folders)

    def ordered_versions(self) -> list[tuple[str, Version]]:
        """Version keys parsed and sorted ascending.

        Raises:
            InvalidVersionError: If any key is not a semantic version
        """
        return sorted_versions(list(self.versions))


class InstanceState(PackModel):
    """Locally persisted record of what has been applied to an instance."""

    CURRENT_FILE_VERSION: ClassVar[int] = 3
    MINIMUM_FILE_VERSION: ClassVar[int] = 2

    file_version: int = Field(default=3, description="Schema version of the state file")
    version: str = Field(default=NOT_INSTALLED, description="Applied pack version")
    built_from_server_pack: str | None = None
    built_from_server_pack_md5: str | None = None
    built_from_client_pack: str | None = None
    current_minecraft_version: str | None = None
    current_forge_version: str | None = None
    current_launch_version: str | None = None
    vr_launch_version: str | None = None
    non_vr_launch_version: str | None = None

    @property
    def records_client_pack(self) -> bool:
        """True if the client archive location was recorded at all."""
        return "built_from_client_pack" in self.model_fields_set


class ExternalFileRef(BaseModel):
    """Reference to a file hosted by the mod-metadata service."""

    project_id: int = Field(..., alias="projectID")
    file_id: int = Field(..., alias="fileID")
    required: bool = True

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ExternalFileManifest(BaseModel):
    """File list shipped inside a client override archive."""

    files: list[ExternalFileRef] = Field(default_factory=list)

    model_config = ConfigDict(extra="allow")


class ResolvedFile(BaseModel):
    """Download location of an externally hosted file."""

    download_url: str
    file_name: str
    subfolder: str = "mods"
