"""Async client for a git-backed contents API (GitHub contents shape)."""

import logging
from typing import Any
from urllib.parse import quote

import httpx

from ..config import ContentsConfig
from ..errors import ConflictError, StoreError
from ..transport import request_with_retry

logger = logging.getLogger(__name__)

CONTENTS_MEDIA_TYPE = "application/vnd.github.v3+json"


class ContentsClient:
    """Thin HTTP layer over ``/repos/{owner}/{repo}/contents/{path}``.

    Returns decoded JSON bodies and maps HTTP statuses onto the error
    taxonomy; payload encoding is left to the adapter.
    """

    def __init__(
        self,
        config: ContentsConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the contents client.

        Args:
            config: Content host location and credentials.
            transport: Optional httpx transport (tests inject a mock host).
        """
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_base.rstrip("/"),
                timeout=self.config.timeout_seconds,
                transport=self._transport,
                headers={
                    "Authorization": f"Bearer {self.config.token}",
                    "Accept": CONTENTS_MEDIA_TYPE,
                    "User-Agent": self.config.user_agent,
                },
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    def contents_url(self, path: str) -> str:
        owner = quote(self.config.owner, safe="")
        repo = quote(self.config.repo, safe="")
        return f"/repos/{owner}/{repo}/contents/{quote(path.lstrip('/'), safe='/')}"

    async def get_file(self, path: str) -> dict[str, Any] | None:
        """Fetch file metadata and content.

        Returns:
            The response body, or None when the file does not exist.

        Raises:
            StoreError: Any status other than 2xx or 404.
            NetworkError: Transport failure after retries.
        """
        client = await self._get_client()
        response = await request_with_retry(
            client,
            "GET",
            self.contents_url(path),
            params={"ref": self.config.branch},
            max_retries=self.config.max_retries,
            backoff=self.config.retry_backoff_seconds,
        )

        if response.status_code == 404:
            return None

        if not response.is_success:
            logger.error(f"Contents API error on GET {path}: {response.text}")
            raise StoreError(
                f"Contents API error: {response.status_code}",
                status_code=response.status_code,
            )

        return response.json()

    async def put_file(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """Create or update a file.

        Only connection failures are retried; once the request may have
        reached the host a replay could commit twice.

        Raises:
            ConflictError: The host rejected the version guard.
            StoreError: Any other non-2xx status.
            NetworkError: Transport failure.
        """
        client = await self._get_client()
        response = await request_with_retry(
            client,
            "PUT",
            self.contents_url(path),
            json=body,
            max_retries=self.config.max_retries,
            backoff=self.config.retry_backoff_seconds,
            retry_server_errors=False,
            retry_timeouts=False,
        )

        if response.is_success:
            return response.json()

        detail = _error_message(response)
        logger.error(f"Contents API update error on {path}: {response.status_code} {detail}")

        if response.status_code == 409 or (
            response.status_code == 422 and "sha" in detail.lower()
        ):
            raise ConflictError(
                f"Version conflict writing {path}: {detail}",
                expected_version=body.get("sha"),
            )

        raise StoreError(
            f"Failed to update settings: {response.status_code}",
            status_code=response.status_code,
        )


def _error_message(response: httpx.Response) -> str:
    """Best-effort extraction of the host's error message."""
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and isinstance(data.get("message"), str):
        return data["message"]
    return response.text
