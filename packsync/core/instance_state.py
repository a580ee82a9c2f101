"""Persistent instance state.

Records which pack version has been applied to a profile and what it was
built from. The state file is replaced atomically (temp file, fsync,
os.replace) and only once a sync run has completed, so an interrupted run
always leaves the previous state readable.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from packsync.core.errors import StateSchemaError
from packsync.core.types import InstanceState
from packsync.core.versioning import is_valid_version

logger = structlog.get_logger()

STATE_FILENAME = "packMeta.json"


def _check_schema(raw: dict[str, Any]) -> None:
    file_version = raw.get("fileVersion", raw.get("file_version", 0))
    if not isinstance(file_version, int) or file_version < InstanceState.MINIMUM_FILE_VERSION:
        raise StateSchemaError(
            file_version if isinstance(file_version, int) else 0,
            InstanceState.MINIMUM_FILE_VERSION,
        )


def load_state(path: Path) -> InstanceState | None:
    """Load an instance state file.

    Args:
        path: State file location

    Returns:
        Loaded state, or None if the file is absent, unreadable, or uses a
        schema older than the minimum supported version
    """
    if not path.exists():
        return None

    try:
        raw = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("state_unreadable", path=str(path), error=str(e))
        return None

    if not isinstance(raw, dict):
        logger.warning("state_unreadable", path=str(path), error="not a JSON object")
        return None

    try:
        _check_schema(raw)
    except StateSchemaError as e:
        logger.info(
            "state_schema_outdated",
            path=str(path),
            file_version=e.file_version,
            minimum=e.minimum,
        )
        return None

    try:
        state = InstanceState.model_validate(raw)
    except ValidationError as e:
        logger.warning("state_invalid", path=str(path), error=str(e))
        return None

    if not is_valid_version(state.version):
        logger.warning("state_invalid", path=str(path), error=f"bad version {state.version!r}")
        return None

    return state


def save_state(path: Path, state: InstanceState) -> None:
    """Persist an instance state file atomically.

    Writes the full document to a temporary sibling, flushes it to disk and
    then replaces the target, so a crash mid-write leaves the old file
    intact.

    Args:
        path: State file location
        state: State to write
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")

    data = state.model_dump(mode="json", by_alias=True)

    try:
        with open(tmp_path, "w", encoding="utf-8", newline="\n") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    finally:
        tmp_path.unlink(missing_ok=True)

    logger.debug("state_saved", path=str(path), version=state.version)


class InstanceStateStore:
    """Reads and writes the state file of one profile.

    Args:
        profile_path: Root of the game profile
    """

    def __init__(self, profile_path: Path) -> None:
        self.profile_path = profile_path

    @property
    def state_file_path(self) -> Path:
        """Path to the state file."""
        return self.profile_path / STATE_FILENAME

    def load(self) -> InstanceState | None:
        return load_state(self.state_file_path)

    def save(self, state: InstanceState) -> None:
        save_state(self.state_file_path, state)
