"""Tests for packsync.core.paths module."""

from pathlib import Path

import pytest

from packsync.core.paths import normalize_relative, resolve_within


class TestNormalizeRelative:
    """Test normalize_relative function."""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("mods/a.jar", "mods/a.jar"),
            ("mods\\a.jar", "mods/a.jar"),
            ("./mods//a.jar", "mods/a.jar"),
            ("mods/", "mods"),
            ("", ""),
        ],
    )
    def test_normalize(self, raw, expected):
        assert normalize_relative(raw) == expected


class TestResolveWithin:
    """Test resolve_within function."""

    def test_inside(self, tmp_path: Path):
        assert resolve_within(tmp_path, "config/a.cfg") == tmp_path.resolve() / "config" / "a.cfg"

    def test_windows_separators(self, tmp_path: Path):
        assert resolve_within(tmp_path, "config\\a.cfg") == tmp_path.resolve() / "config" / "a.cfg"

    @pytest.mark.parametrize(
        "relative",
        ["../a", "config/../../a", "/etc/passwd", "\\\\server\\share", "C:/x", "", "./"],
    )
    def test_rejected(self, tmp_path: Path, relative: str):
        with pytest.raises(ValueError):
            resolve_within(tmp_path, relative)

    def test_symlink_escape(self, tmp_path: Path):
        root = tmp_path / "root"
        root.mkdir()
        outside = tmp_path / "outside"
        outside.mkdir()
        (root / "link").symlink_to(outside, target_is_directory=True)

        with pytest.raises(ValueError):
            resolve_within(root, "link/file.txt")
