"""Error taxonomy for pack synchronization.

Every error raised before the state file is persisted aborts the run and
leaves the recorded instance state untouched.
"""

from __future__ import annotations


class PackSyncError(Exception):
    """Base class for all synchronization failures."""


class NetworkError(PackSyncError):
    """Raised when a transfer fails or times out.

    Attributes:
        url: URL that was being fetched
        status_code: HTTP status code, if a response was received
    """

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
    ):
        self.url = url
        self.status_code = status_code
        super().__init__(message)


class ConfigurationError(PackSyncError):
    """Raised when the pack definition cannot be used as published."""


class ManifestParseError(ConfigurationError):
    """Raised when the remote manifest payload is malformed.

    Attributes:
        url: Location the manifest was read from
    """

    def __init__(self, message: str, *, url: str | None = None):
        self.url = url
        super().__init__(message)


class InvalidVersionError(ConfigurationError):
    """Raised when a version key does not parse as a semantic version."""

    def __init__(self, version: str):
        self.version = version
        super().__init__(f"Invalid version number in mod pack definition: {version}")


class ArchiveSecurityError(PackSyncError):
    """Raised when an archive entry is corrupt or escapes the destination.

    Attributes:
        entry: Archive-internal entry name
    """

    def __init__(self, message: str, *, entry: str | None = None):
        self.entry = entry
        super().__init__(message)


class ExtraFileDownloadError(PackSyncError):
    """Raised when an extra file declared by a patch cannot be downloaded."""

    def __init__(self, filename: str, url: str):
        self.filename = filename
        self.url = url
        super().__init__(f'Could not download extra file "{filename}" from {url}')


class StateSchemaError(PackSyncError):
    """Raised when a state file uses an unsupported schema version.

    The state store recovers from this locally by treating the instance as
    having no prior state.
    """

    def __init__(self, file_version: int, minimum: int):
        self.file_version = file_version
        self.minimum = minimum
        super().__init__(
            f"State file version {file_version} is below minimum {minimum}"
        )


class SyncCancelled(PackSyncError):
    """Raised at a suspension point once cancellation was requested."""


class InstanceLockedError(PackSyncError):
    """Raised when another sync run already holds the instance lock."""

    def __init__(self, lock_path: str):
        self.lock_path = lock_path
        super().__init__(f"Instance is locked by another sync run: {lock_path}")


class MissingArchiveSectionError(ConfigurationError):
    """Raised when a required archive section has no entries."""

    def __init__(self, archive: str, section: str):
        self.archive = archive
        self.section = section
        super().__init__(f"Archive {archive} has no entries for {section}")
