"""Semantic version helpers for pack version keys."""

from __future__ import annotations

from semver import Version

from packsync.core.errors import InvalidVersionError

NOT_INSTALLED = "0.0.0"
"""Version recorded for an instance that has nothing applied."""


def parse_version(value: str) -> Version:
    """Parse a pack version string.

    Minor and patch components may be omitted ("1.2" parses as 1.2.0).

    Args:
        value: Version string from a manifest or state file

    Returns:
        Parsed semantic version

    Raises:
        InvalidVersionError: If the value is not a semantic version
    """
    try:
        return Version.parse(value.strip(), optional_minor_and_patch=True)
    except (ValueError, TypeError, AttributeError) as e:
        raise InvalidVersionError(str(value)) from e


def is_valid_version(value: str) -> bool:
    """Check whether a string parses as a semantic version."""
    try:
        parse_version(value)
    except InvalidVersionError:
        return False
    return True


def sorted_versions(keys: list[str]) -> list[tuple[str, Version]]:
    """Parse and sort version keys ascending.

    Every key is validated before any ordering is attempted so a single
    malformed key fails the whole set.

    Args:
        keys: Version strings

    Returns:
        (key, parsed) pairs in ascending semantic-version order

    Raises:
        InvalidVersionError: If any key is malformed
    """
    parsed = [(key, parse_version(key)) for key in keys]
    return sorted(parsed, key=lambda pair: pair[1])
