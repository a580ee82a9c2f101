"""Tests for packsync.core.instance_state module."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from packsync.core.instance_state import (
    STATE_FILENAME,
    InstanceStateStore,
    load_state,
    save_state,
)
from packsync.core.types import InstanceState


def _write(path: Path, data: object) -> None:
    path.write_text(json.dumps(data), encoding="utf-8")


class TestLoadState:
    """Test load_state function."""

    def test_missing_file(self, tmp_path: Path):
        assert load_state(tmp_path / STATE_FILENAME) is None

    def test_valid_file(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        _write(path, {
            "fileVersion": 3,
            "version": "1.4.0",
            "builtFromServerPack": "https://example.com/server.zip",
            "currentForgeVersion": "47.2.0",
        })

        state = load_state(path)

        assert state is not None
        assert state.version == "1.4.0"
        assert state.built_from_server_pack == "https://example.com/server.zip"
        assert state.current_forge_version == "47.2.0"

    def test_minimum_schema_accepted(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        _write(path, {"fileVersion": 2, "version": "1.0.0"})
        assert load_state(path) is not None

    def test_old_schema_treated_as_absent(self, tmp_path: Path):
        """fileVersion 1 is below the minimum even with full version fields."""
        path = tmp_path / STATE_FILENAME
        _write(path, {
            "fileVersion": 1,
            "version": "1.4.0",
            "builtFromServerPack": "https://example.com/server.zip",
        })
        assert load_state(path) is None

    def test_missing_schema_version(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        _write(path, {"version": "1.4.0"})
        assert load_state(path) is None

    def test_corrupt_json(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        path.write_text("{not json", encoding="utf-8")
        assert load_state(path) is None

    def test_not_an_object(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        _write(path, ["fileVersion", 3])
        assert load_state(path) is None

    def test_invalid_field_type(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        _write(path, {"fileVersion": 3, "version": {"major": 1}})
        assert load_state(path) is None

    def test_invalid_version_string(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        _write(path, {"fileVersion": 3, "version": "latest"})
        assert load_state(path) is None

    def test_byte_order_mark_accepted(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        path.write_bytes(b"\xef\xbb\xbf" + json.dumps({"fileVersion": 3}).encode())
        state = load_state(path)
        assert state is not None
        assert state.version == "0.0.0"


class TestSaveState:
    """Test save_state function."""

    def test_writes_camel_case(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        save_state(path, InstanceState(version="1.2.0", current_launch_version="x"))

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["fileVersion"] == 3
        assert data["version"] == "1.2.0"
        assert data["currentLaunchVersion"] == "x"

    def test_no_temp_file_left(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        save_state(path, InstanceState())
        assert [p.name for p in tmp_path.iterdir()] == [STATE_FILENAME]

    def test_roundtrip_preserves_unknown_fields(self, tmp_path: Path):
        path = tmp_path / STATE_FILENAME
        _write(path, {"fileVersion": 3, "version": "1.0.0", "favouriteServer": "play.example.com"})

        state = load_state(path)
        assert state is not None
        save_state(path, state)

        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["favouriteServer"] == "play.example.com"
        assert load_state(path) == state

    def test_failed_replace_keeps_previous_file(self, tmp_path: Path):
        """A crash before the rename leaves the old state readable."""
        path = tmp_path / STATE_FILENAME
        save_state(path, InstanceState(version="1.0.0"))
        before = path.read_bytes()

        with patch("packsync.core.instance_state.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                save_state(path, InstanceState(version="2.0.0"))

        assert path.read_bytes() == before
        assert not (tmp_path / (STATE_FILENAME + ".tmp")).exists()

    def test_creates_parent(self, tmp_path: Path):
        path = tmp_path / "new" / STATE_FILENAME
        save_state(path, InstanceState())
        assert path.exists()


class TestInstanceStateStore:
    """Test InstanceStateStore class."""

    def test_state_file_path(self, tmp_path: Path):
        store = InstanceStateStore(tmp_path)
        assert store.state_file_path == tmp_path / "packMeta.json"

    def test_save_and_load(self, tmp_path: Path):
        store = InstanceStateStore(tmp_path)
        assert store.load() is None

        state = InstanceState(version="1.3.0", vr_launch_version="vr", non_vr_launch_version="flat")
        store.save(state)

        loaded = store.load()
        assert loaded is not None
        assert loaded.version == "1.3.0"
        assert loaded.vr_launch_version == "vr"
        assert loaded.non_vr_launch_version == "flat"
