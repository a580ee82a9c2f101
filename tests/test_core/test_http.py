"""Tests for packsync.core.http module."""

import time
from pathlib import Path
from unittest.mock import patch

import httpx
import pytest

from packsync.core.config import HTTPConfig
from packsync.core.errors import NetworkError, SyncCancelled
from packsync.core.http import HTTPClient
from packsync.core.progress import CancellationToken, ProgressReporter

URL = "https://files.example.com/archive.zip"


class TestHTTPClient:
    """Test HTTPClient requests and retries."""

    def test_get_bytes(self, fake_server, http_client):
        fake_server.routes[URL] = b"payload"
        assert http_client.get_bytes(URL) == b"payload"

    def test_get_text_strips_bom(self, fake_server, http_client):
        fake_server.routes[URL] = b"\xef\xbb\xbfhello"
        assert http_client.get_text(URL) == "hello"

    def test_sends_user_agent_and_headers(self, fake_server, http_client):
        seen: dict[str, str] = {}

        def handler(request: httpx.Request) -> bytes:
            seen.update(request.headers)
            return b"ok"

        fake_server.routes[URL] = handler
        http_client.get_bytes(URL, headers={"x-api-key": "secret"})

        assert seen["user-agent"] == "packsync/0.1.0"
        assert seen["x-api-key"] == "secret"

    def test_http_error_wrapped(self, http_client):
        with pytest.raises(NetworkError) as exc_info:
            http_client.get_bytes(URL)
        assert exc_info.value.url == URL
        assert exc_info.value.status_code == 404
        assert isinstance(exc_info.value.__cause__, httpx.HTTPStatusError)

    def test_transport_error_wrapped(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = HTTPClient(
            HTTPConfig(max_retries=0), transport=httpx.MockTransport(handler), base_backoff=0
        )
        with pytest.raises(NetworkError) as exc_info:
            client.get_bytes(URL)
        assert exc_info.value.status_code is None

    def test_retries_then_succeeds(self, fake_server):
        attempts = {"count": 0}

        def flaky(request: httpx.Request) -> httpx.Response:
            attempts["count"] += 1
            if attempts["count"] < 3:
                return httpx.Response(503)
            return httpx.Response(200, content=b"finally")

        fake_server.routes[URL] = flaky
        client = HTTPClient(HTTPConfig(max_retries=3), transport=fake_server.transport, base_backoff=0.5)

        with patch("packsync.core.http.time.sleep") as mock_sleep:
            assert client.get_bytes(URL) == b"finally"

        assert attempts["count"] == 3
        assert [call.args[0] for call in mock_sleep.call_args_list] == [0.5, 1.0]

    def test_retries_exhausted(self, fake_server):
        client = HTTPClient(HTTPConfig(max_retries=2), transport=fake_server.transport, base_backoff=0)
        with pytest.raises(NetworkError):
            client.get_bytes(URL)
        assert fake_server.count(URL) == 3

    def test_cancel_interrupts_backoff(self, fake_server):
        token = CancellationToken()

        def failing(request: httpx.Request) -> httpx.Response:
            token.cancel()
            return httpx.Response(503)

        fake_server.routes[URL] = failing
        client = HTTPClient(
            HTTPConfig(max_retries=3), transport=fake_server.transport, base_backoff=60
        )

        started = time.monotonic()
        with pytest.raises(SyncCancelled):
            client.get_bytes(URL, token)

        assert time.monotonic() - started < 10
        assert fake_server.count(URL) == 1

    def test_backoff_waits_on_token(self, fake_server):
        fake_server.routes[URL] = lambda request: httpx.Response(503)
        token = CancellationToken()
        client = HTTPClient(
            HTTPConfig(max_retries=2), transport=fake_server.transport, base_backoff=0.25
        )

        with patch.object(token, "wait", return_value=False) as mock_wait:
            with pytest.raises(NetworkError):
                client.get_bytes(URL, token)

        assert [call.args[0] for call in mock_wait.call_args_list] == [0.25, 0.5]

    def test_cancelled_before_request(self, fake_server, http_client):
        fake_server.routes[URL] = b"payload"
        token = CancellationToken()
        token.cancel()

        with pytest.raises(SyncCancelled):
            http_client.get_bytes(URL, token)
        assert fake_server.requests == []

    def test_context_manager_closes(self, fake_server):
        with HTTPClient(HTTPConfig(), transport=fake_server.transport) as client:
            _ = client.client
        assert client._client is None


class TestDownloadFile:
    """Test streaming downloads."""

    def test_download(self, tmp_path: Path, fake_server, http_client):
        fake_server.routes[URL] = b"x" * 100
        destination = tmp_path / "nested" / "archive.zip"

        assert http_client.download_file(URL, destination) == destination
        assert destination.read_bytes() == b"x" * 100
        assert not (tmp_path / "nested" / "archive.zip.part").exists()

    def test_progress_reported(self, tmp_path: Path, fake_server, http_client):
        fake_server.routes[URL] = b"x" * 64
        fractions: list[float | None] = []
        reporter = ProgressReporter(lambda fraction, label: fractions.append(fraction))

        http_client.download_file(URL, tmp_path / "a.zip", progress=reporter)

        assert fractions == [0.25, 0.5, 0.75, 1.0]

    def test_failure_leaves_existing_file(self, tmp_path: Path, http_client):
        destination = tmp_path / "archive.zip"
        destination.write_bytes(b"previous")

        with pytest.raises(NetworkError):
            http_client.download_file(URL, destination)

        assert destination.read_bytes() == b"previous"
        assert not (tmp_path / "archive.zip.part").exists()

    def test_cancelled_mid_transfer(self, tmp_path: Path, fake_server, http_client):
        fake_server.routes[URL] = b"x" * 64
        token = CancellationToken()

        def sink(fraction: float | None, label: str | None) -> None:
            token.cancel()

        destination = tmp_path / "archive.zip"
        with pytest.raises(SyncCancelled):
            http_client.download_file(URL, destination, token, ProgressReporter(sink))

        assert not destination.exists()
        assert not (tmp_path / "archive.zip.part").exists()
