"""HTTP client with retries, streaming downloads and cancellation."""

from __future__ import annotations

import os
import time
from pathlib import Path
from typing import Any

import httpx
import structlog

from packsync.core.config import HTTPConfig
from packsync.core.errors import NetworkError
from packsync.core.progress import CancellationToken, ProgressReporter

logger = structlog.get_logger()


class HTTPClient:
    """Synchronous HTTP client used for manifests, archives and mod files.

    Every request checks the cancellation token before it starts, and
    streamed downloads check it again between chunks. Transport failures are
    retried with exponential backoff and surfaced as ``NetworkError``.
    """

    def __init__(
        self,
        config: HTTPConfig | None = None,
        transport: httpx.BaseTransport | None = None,
        base_backoff: float = 0.5,
    ):
        """Initialize HTTP client.

        Args:
            config: Optional HTTP configuration
            transport: Optional httpx transport (used by tests)
            base_backoff: Base delay in seconds between retries
        """
        self.config = config or HTTPConfig()
        self.base_backoff = base_backoff
        self._transport = transport
        self._client: httpx.Client | None = None

    @property
    def client(self) -> httpx.Client:
        """Get or create the underlying httpx client."""
        if self._client is None:
            self._client = httpx.Client(
                timeout=self.config.timeout,
                verify=self.config.verify_ssl,
                follow_redirects=True,
                headers={"User-Agent": self.config.user_agent},
                transport=self._transport,
            )
        return self._client

    def _with_retry(
        self,
        url: str,
        operation: Any,
        token: CancellationToken | None,
    ) -> Any:
        last_error: httpx.HTTPError | None = None

        for attempt in range(self.config.max_retries + 1):
            if token is not None:
                token.raise_if_cancelled()
            try:
                return operation()
            except httpx.HTTPError as e:
                last_error = e
                if attempt < self.config.max_retries:
                    wait_time = self.base_backoff * (2 ** attempt)
                    logger.debug(
                        "http_retry",
                        url=url,
                        attempt=attempt + 1,
                        wait=wait_time,
                        error=str(e),
                    )
                    if token is None:
                        time.sleep(wait_time)
                    elif token.wait(wait_time):
                        token.raise_if_cancelled()

        logger.error("http_fetch_failed", url=url, error=str(last_error))
        status_code = None
        if isinstance(last_error, httpx.HTTPStatusError):
            status_code = last_error.response.status_code
        raise NetworkError(
            f"Failed to fetch {url}: {last_error}", url=url, status_code=status_code
        ) from last_error

    def get_bytes(
        self,
        url: str,
        token: CancellationToken | None = None,
        headers: dict[str, str] | None = None,
    ) -> bytes:
        """Fetch a small resource into memory.

        Raises:
            NetworkError: If every attempt fails
            SyncCancelled: If cancellation was requested
        """
        def operation() -> bytes:
            response = self.client.get(url, headers=headers)
            response.raise_for_status()
            return response.content

        data: bytes = self._with_retry(url, operation, token)
        logger.debug("http_fetched", url=url, size=len(data))
        return data

    def get_text(
        self,
        url: str,
        token: CancellationToken | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        """Fetch a resource and decode it as UTF-8 text."""
        return self.get_bytes(url, token, headers).decode("utf-8-sig")

    def download_file(
        self,
        url: str,
        destination: Path,
        token: CancellationToken | None = None,
        progress: ProgressReporter | None = None,
    ) -> Path:
        """Stream a resource to disk.

        Content is written to a ``.part`` file next to the destination and
        moved into place once complete, so an interrupted transfer never
        leaves a truncated file under the final name.

        Args:
            url: Resource URL
            destination: Target file path
            token: Optional cancellation token
            progress: Optional reporter receiving the byte fraction

        Returns:
            The destination path

        Raises:
            NetworkError: If every attempt fails
            SyncCancelled: If cancellation was requested mid-transfer
        """
        destination.parent.mkdir(parents=True, exist_ok=True)
        part_path = destination.with_name(destination.name + ".part")

        def operation() -> int:
            written = 0
            with self.client.stream("GET", url) as response:
                response.raise_for_status()
                total = int(response.headers.get("content-length") or 0)
                with open(part_path, "wb") as f:
                    for chunk in response.iter_bytes(self.config.chunk_size):
                        if token is not None:
                            token.raise_if_cancelled()
                        f.write(chunk)
                        written += len(chunk)
                        if progress is not None and total:
                            progress.report(written / total)
            return written

        try:
            size = self._with_retry(url, operation, token)
            os.replace(part_path, destination)
        finally:
            part_path.unlink(missing_ok=True)

        logger.debug("http_downloaded", url=url, path=str(destination), size=size)
        return destination

    def close(self) -> None:
        """Close the underlying client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> HTTPClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()
