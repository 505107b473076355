"""HTTP request helper with bounded retry and exponential backoff."""

import asyncio
import logging
from typing import Any

import httpx

from .errors import NetworkError

logger = logging.getLogger(__name__)


async def request_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_retries: int = 3,
    backoff: float = 1.0,
    retry_server_errors: bool = True,
    retry_timeouts: bool = True,
    **kwargs: Any,
) -> httpx.Response:
    """Make an HTTP request, retrying transient failures.

    Connection failures are always retried since nothing reached the
    server. Timeouts and 5xx responses are retried only when the flags
    allow it; a write that may have landed must not be replayed blindly.

    Args:
        client: Client to issue the request with.
        method: HTTP method.
        url: Absolute or client-relative URL.
        max_retries: Maximum attempts.
        backoff: Initial sleep between attempts, doubled each time.
        retry_server_errors: Retry on 5xx responses.
        retry_timeouts: Retry on request timeouts.
        **kwargs: Passed through to ``client.request``.

    Returns:
        The last response received. Non-2xx responses that are not
        retried are returned to the caller for status mapping.

    Raises:
        NetworkError: No usable response after ``max_retries`` attempts.
    """
    attempts = max(1, max_retries)
    last_error = "no attempts made"
    response: httpx.Response | None = None

    for attempt in range(attempts):
        try:
            response = await client.request(method, url, **kwargs)

            if response.status_code < 500 or not retry_server_errors:
                return response

            last_error = f"HTTP {response.status_code}"
            logger.warning(
                f"Server error {response.status_code} on {method} {url}, "
                f"attempt {attempt + 1}/{attempts}"
            )

        except httpx.ConnectError as e:
            last_error = f"Connection failed: {e}"
            logger.warning(
                f"Connection failed on {method} {url}, attempt {attempt + 1}/{attempts}"
            )
        except httpx.TimeoutException as e:
            if not retry_timeouts:
                raise NetworkError(f"Request timed out: {method} {url}") from e
            last_error = f"Request timeout: {e}"
            logger.warning(
                f"Request timeout on {method} {url}, attempt {attempt + 1}/{attempts}"
            )
        except httpx.HTTPError as e:
            raise NetworkError(f"Request error on {method} {url}: {e}") from e

        # Exponential backoff
        if attempt < attempts - 1:
            await asyncio.sleep(backoff)
            backoff *= 2

    if response is not None and response.status_code >= 500:
        # Retries exhausted on server errors; let the caller map the status
        return response

    raise NetworkError(f"Max retries ({attempts}) exceeded: {last_error}")
