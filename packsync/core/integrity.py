"""Content checksums used for base archive change detection.

Published packs may ship a ``<archive>.md5`` text file next to the base
archive. When the manifest opts into verification, the remote checksum is
compared with the one recorded after the last rebuild.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

import structlog

from packsync.core.http import HTTPClient
from packsync.core.progress import CancellationToken

logger = structlog.get_logger()

CHUNK_SIZE = 1024 * 1024


def compute_file_md5(path: Path) -> str:
    """Compute the MD5 of a file as lowercase hex.

    Args:
        path: File to hash

    Returns:
        32-character hex digest
    """
    digest = hashlib.md5()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()


def normalize_checksum(value: str | None) -> str | None:
    """Normalize a published checksum.

    ``.md5`` files are often in ``md5sum`` format (``<hash>  <name>``); only
    the hash is kept. Empty values normalize to None.
    """
    if not value:
        return None
    parts = value.strip().split()
    if not parts:
        return None
    return parts[0].lower()


def checksum_url(archive_url: str) -> str:
    """Location of the published checksum for an archive."""
    return f"{archive_url}.md5"


def fetch_remote_checksum(
    http: HTTPClient,
    archive_url: str,
    token: CancellationToken | None = None,
) -> str | None:
    """Fetch the published MD5 of an archive.

    Returns:
        Normalized checksum, or None if the published file is empty
    """
    text = http.get_text(checksum_url(archive_url), token)
    checksum = normalize_checksum(text)
    logger.debug("remote_checksum_fetched", url=archive_url, checksum=checksum)
    return checksum


def checksums_match(recorded: str | None, remote: str | None) -> bool:
    """Compare a recorded checksum with a published one.

    An empty published checksum carries no information and always matches.
    """
    remote = normalize_checksum(remote)
    if remote is None:
        return True
    return normalize_checksum(recorded) == remote
