"""Core functionality for packsync.

This module provides the synchronization engine:
- Configuration management
- Type definitions for manifests and instance state
- Version planning
- Archive extraction and patch application
- The sync orchestrator
"""

from packsync.core.errors import (
    ArchiveSecurityError,
    ConfigurationError,
    ExtraFileDownloadError,
    ManifestParseError,
    NetworkError,
    PackSyncError,
    StateSchemaError,
    SyncCancelled,
)
from packsync.core.types import (
    ConfigReplacement,
    InstanceState,
    ModChange,
    PackManifest,
    PackVersionPatch,
)
from packsync.core.versioning import NOT_INSTALLED, parse_version

__all__ = [
    # Errors
    "PackSyncError",
    "NetworkError",
    "ConfigurationError",
    "ManifestParseError",
    "ArchiveSecurityError",
    "ExtraFileDownloadError",
    "StateSchemaError",
    "SyncCancelled",
    # Types
    "ConfigReplacement",
    "InstanceState",
    "ModChange",
    "PackManifest",
    "PackVersionPatch",
    # Versioning
    "NOT_INSTALLED",
    "parse_version",
]
