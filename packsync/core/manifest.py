"""Remote pack manifest retrieval."""

from __future__ import annotations

import json

import structlog
from pydantic import ValidationError

from packsync.core.errors import ManifestParseError
from packsync.core.http import HTTPClient
from packsync.core.progress import CancellationToken, ProgressReporter
from packsync.core.types import PackManifest

logger = structlog.get_logger()

MANIFEST_PATH = "modpack/pack-info.json"


def manifest_url(pack_url: str) -> str:
    """Well-known location of the manifest under a pack's base URL."""
    return f"{pack_url.rstrip('/')}/{MANIFEST_PATH}"


def parse_manifest(data: bytes | str, url: str | None = None) -> PackManifest:
    """Parse and validate a manifest payload.

    Version keys are checked as well, so an unusable manifest fails here
    rather than halfway through a run.

    Args:
        data: Raw JSON payload
        url: Source location, used in error messages

    Returns:
        Parsed manifest

    Raises:
        ManifestParseError: If the payload is not a valid manifest
        InvalidVersionError: If a version key is not a semantic version
    """
    try:
        if isinstance(data, bytes):
            data = data.decode("utf-8-sig")
        raw = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ManifestParseError(f"Manifest is not valid JSON: {e}", url=url) from e

    if not isinstance(raw, dict):
        raise ManifestParseError("Manifest must be a JSON object", url=url)

    try:
        manifest = PackManifest.model_validate(raw)
    except ValidationError as e:
        raise ManifestParseError(f"Invalid manifest: {e}", url=url) from e

    manifest.ordered_versions()
    return manifest


class ManifestFetcher:
    """Fetches the remote pack manifest.

    Args:
        http: HTTP client used for the transfer
    """

    def __init__(self, http: HTTPClient) -> None:
        self.http = http

    def fetch(
        self,
        url: str,
        token: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> PackManifest:
        """Fetch and parse the manifest at url.

        Raises:
            NetworkError: On transport failure
            ManifestParseError: On a malformed payload
            SyncCancelled: If cancellation was requested
        """
        if progress is not None:
            progress.report(None, "Loading mod pack info...")

        data = self.http.get_bytes(url, token)
        manifest = parse_manifest(data, url=url)

        if progress is not None:
            progress.report(1.0)

        logger.info(
            "manifest_fetched",
            url=url,
            current_version=manifest.current_version,
            canary_version=manifest.canary_version,
            versions=len(manifest.versions),
        )
        return manifest

    def fetch_for_pack(
        self,
        pack_url: str,
        token: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> PackManifest:
        """Fetch the manifest published under a pack base URL."""
        return self.fetch(manifest_url(pack_url), token, progress)
