"""Pytest configuration and shared fixtures for packsync tests."""

from __future__ import annotations

import json
import tempfile
import zipfile
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import httpx
import pytest

from packsync.core.config import AppConfig, HTTPConfig
from packsync.core.http import HTTPClient

PACK_URL = "https://packs.example.com/testpack"
MANIFEST_URL = f"{PACK_URL}/modpack/pack-info.json"
SERVER_PACK_URL = f"{PACK_URL}/files/server.zip"
CLIENT_PACK_URL = f"{PACK_URL}/files/client.zip"


class FakeServer:
    """In-memory HTTP server backed by httpx.MockTransport.

    Routes map a full URL to the response body, an ``httpx.Response``, or a
    callable returning either. Unknown URLs answer 404.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Any] = {}
        self.requests: list[str] = []

    def _handle(self, request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        self.requests.append(url)

        body = self.routes.get(url)
        if callable(body):
            body = body(request)
        if body is None:
            return httpx.Response(404, content=b"not found")
        if isinstance(body, httpx.Response):
            return body
        if isinstance(body, str):
            body = body.encode("utf-8")
        if isinstance(body, dict):
            body = json.dumps(body).encode("utf-8")
        return httpx.Response(200, content=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self._handle)

    def count(self, url: str) -> int:
        return self.requests.count(url)


def build_zip(path: Path, entries: dict[str, bytes | str]) -> bytes:
    """Write a zip archive with the given entries and return its bytes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in entries.items():
            zf.writestr(name, content)
    return path.read_bytes()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def fake_server() -> FakeServer:
    """Fresh in-memory HTTP server."""
    return FakeServer()


@pytest.fixture
def http_config() -> HTTPConfig:
    """HTTP configuration without retries."""
    return HTTPConfig(max_retries=0, chunk_size=16)


@pytest.fixture
def http_client(
    fake_server: FakeServer, http_config: HTTPConfig
) -> Generator[HTTPClient, None, None]:
    """HTTP client wired to the fake server."""
    client = HTTPClient(http_config, transport=fake_server.transport, base_backoff=0)
    yield client
    client.close()


@pytest.fixture
def profile_path(temp_dir: Path) -> Path:
    """Profile directory inside the temporary directory."""
    return temp_dir / "profile"


@pytest.fixture
def app_config(profile_path: Path, http_config: HTTPConfig, temp_dir: Path) -> AppConfig:
    """Application configuration pointing at the fake pack."""
    return AppConfig(
        config_dir=temp_dir / "config",
        pack_url=PACK_URL,
        profile_path=profile_path,
        http=http_config,
    )


@pytest.fixture
def zip_factory(temp_dir: Path) -> Callable[[str, dict[str, bytes | str]], bytes]:
    """Build named zip archives under the temporary directory."""

    def factory(name: str, entries: dict[str, bytes | str]) -> bytes:
        return build_zip(temp_dir / "archives" / name, entries)

    return factory


@pytest.fixture
def sample_manifest_data() -> dict[str, Any]:
    """Manifest payload with two version patches."""
    return {
        "currentVersion": "1.1.0",
        "intendedMinecraftVersion": "1.20.1",
        "requiredForgeVersion": "47.2.0",
        "serverPack": SERVER_PACK_URL,
        "versions": {
            "1.0.0": {
                "mods": {"jei": {"fileUri": f"{PACK_URL}/mods/jei-1.0.jar"}},
            },
            "1.1.0": {
                "mods": {
                    "jei": {"fileUri": f"{PACK_URL}/mods/jei-2.0.jar", "removeOld": True},
                },
                "configReplacements": {
                    "common.cfg": [{"replace": "speed=\\d+", "with": "speed=5"}],
                },
                "extraFiles": {"kubejs/startup.js": f"{PACK_URL}/extra/startup.js"},
            },
        },
    }


# Pytest configuration
def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest settings."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list) -> None:
    """Add the unit marker to tests that are not integration tests."""
    for item in items:
        if not any(marker.name == "integration" for marker in item.iter_markers()):
            item.add_marker(pytest.mark.unit)
