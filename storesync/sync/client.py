"""Client for the storefront's public document and update endpoints."""

import logging
import time
from typing import Any

import httpx

from ..errors import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    SerializationError,
    StoreError,
)
from ..remote import RemoteDocument, WriteResult
from ..transport import request_with_retry

logger = logging.getLogger(__name__)


def _parse_etag(value: str | None) -> str:
    if not value:
        return ""
    value = value.strip()
    if value.startswith("W/"):
        value = value[2:]
    return value.strip('"')


class SettingsClient:
    """HTTP client used by the sync manager.

    Reads go to the public, unauthenticated document location; writes
    go through the privileged update handler, which holds the content
    host credentials.
    """

    def __init__(
        self,
        site_url: str,
        update_path: str = "/api/update-settings",
        document_path: str = "/settings.json",
        timeout: float = 15.0,
        max_retries: int = 3,
        backoff: float = 1.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the settings client.

        Args:
            site_url: Base URL of the storefront (e.g., "https://shop.example").
            update_path: Path of the update handler.
            document_path: Path of the public document.
            timeout: Request timeout in seconds.
            max_retries: Maximum retry attempts for reads.
            backoff: Initial retry backoff in seconds.
            transport: Optional httpx transport.
        """
        self.site_url = site_url.rstrip("/")
        self.update_path = update_path
        self.document_path = document_path
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.site_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch_document(self) -> RemoteDocument:
        """Fetch the current public document.

        The query string carries a timestamp so intermediate caches never
        serve a stale copy.
        """
        client = await self._get_client()
        response = await request_with_retry(
            client,
            "GET",
            self.document_path,
            params={"t": int(time.time() * 1000)},
            max_retries=self.max_retries,
            backoff=self.backoff,
        )

        if response.status_code == 404:
            raise NotFoundError(self.document_path)
        if not response.is_success:
            raise StoreError(
                f"Failed to fetch settings: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            document = response.json()
        except ValueError as e:
            raise SerializationError(f"Settings document is not valid JSON: {e}") from e
        if not isinstance(document, dict):
            raise SerializationError("Settings document is not a JSON object")

        return RemoteDocument(
            content=document,
            version=_parse_etag(response.headers.get("etag")),
            path=self.document_path,
        )

    async def push_document(
        self,
        document: dict[str, Any],
        expected_version: str | None = None,
    ) -> WriteResult:
        """Submit a document to the update handler.

        Args:
            document: The full new document.
            expected_version: Version the document was based on; sent as
                ``If-Match`` so a concurrent write is reported as a conflict.

        Returns:
            WriteResult reported by the handler.
        """
        client = await self._get_client()
        headers = {}
        if expected_version:
            headers["If-Match"] = f'"{expected_version}"'

        response = await request_with_retry(
            client,
            "POST",
            self.update_path,
            json=document,
            headers=headers,
            max_retries=self.max_retries,
            backoff=self.backoff,
            retry_server_errors=False,
            retry_timeouts=False,
        )

        try:
            data = response.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}

        if response.is_success:
            return WriteResult(
                version=data.get("version") or "",
                commit=data.get("commit"),
            )

        message = data.get("message") or data.get("error") or response.text
        logger.error(f"Settings update rejected: HTTP {response.status_code} {message}")

        if response.status_code == 409:
            raise ConflictError(message, expected_version=expected_version)
        if data.get("error") == "Server configuration error":
            raise ConfigurationError(message=message)
        raise StoreError(message, status_code=response.status_code)
