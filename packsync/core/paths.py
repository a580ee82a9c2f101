"""Path helpers shared by the extractor and the patch applier."""

from __future__ import annotations

from pathlib import Path, PurePosixPath


def normalize_relative(name: str) -> str:
    """Normalize an archive or manifest path to forward slashes.

    Leading "./" segments and empty segments are dropped.
    """
    parts = [part for part in name.replace("\\", "/").split("/") if part not in ("", ".")]
    return "/".join(parts)


def resolve_within(root: Path, relative: str) -> Path:
    """Join a relative path onto a root, refusing to escape it.

    Args:
        root: Directory the result must stay inside
        relative: Relative path using either separator

    Returns:
        Absolute path inside root

    Raises:
        ValueError: If the path is absolute, names a drive, contains a
            parent reference or resolves outside root
    """
    raw = relative.replace("\\", "/")
    if raw.startswith("/"):
        raise ValueError(f"Absolute path not allowed: {relative}")

    normalized = normalize_relative(raw)
    if not normalized:
        raise ValueError(f"Empty path: {relative!r}")

    posix = PurePosixPath(normalized)
    if ":" in posix.parts[0]:
        raise ValueError(f"Drive-qualified path not allowed: {relative}")
    if ".." in posix.parts:
        raise ValueError(f"Parent reference not allowed: {relative}")

    root_resolved = root.resolve()
    target = root_resolved.joinpath(*posix.parts)
    if not target.resolve().is_relative_to(root_resolved):
        raise ValueError(f"Path escapes destination: {relative}")
    return target
