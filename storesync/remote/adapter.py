"""Optimistic-concurrency read-modify-write of one document.

Every successful write is a commit on the content host, so the history
of the settings document is kept by the host for free.
"""

import asyncio
import base64
import binascii
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any

import httpx

from ..config import ContentsConfig
from ..errors import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    SerializationError,
    StoreError,
)
from .contents import ContentsClient

logger = logging.getLogger(__name__)


class UpdateStage(Enum):
    """Stage of an update; DONE and FATAL are terminal."""

    PROBING = "probing"
    WRITING = "writing"
    DONE = "done"
    FATAL = "fatal"


@dataclass
class RemoteDocument:
    """A document as read from the store."""

    content: dict[str, Any]
    version: str
    path: str = ""


@dataclass
class WriteResult:
    """Outcome of a confirmed write."""

    version: str  # New content version, required for the next overwrite
    commit: str | None = None  # History entry created by the write
    path: str = ""
    created: bool = False


class PathLockRegistry:
    """A stable asyncio lock per document path."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def lock_for(self, path: str) -> asyncio.Lock:
        lock = self._locks.get(path)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[path] = lock
        return lock


def encode_content(content: dict[str, Any]) -> str:
    """Serialize a document to base64-encoded pretty JSON."""
    try:
        text = json.dumps(content, indent=2, ensure_ascii=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(f"Document is not serializable: {e}") from e
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def decode_content(data: dict[str, Any]) -> dict[str, Any]:
    """Decode the base64 payload of a contents API response."""
    encoding = data.get("encoding", "base64")
    if encoding != "base64":
        raise SerializationError(f"Unsupported content encoding: {encoding}")

    try:
        raw = base64.b64decode(data.get("content") or "")
        document = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SerializationError(f"Stored document could not be decoded: {e}") from e

    if not isinstance(document, dict):
        raise SerializationError("Stored document is not a JSON object")
    return document


def default_commit_message() -> str:
    return f"Update settings via admin panel - {datetime.now(timezone.utc).isoformat()}"


class RemoteStoreAdapter:
    """Reads and writes the settings document on a version-controlled host.

    Writes are guarded by the content version: an update first probes the
    current version, then writes against it. The host rejects the write
    if someone else committed in between.
    """

    def __init__(
        self,
        config: ContentsConfig,
        client: ContentsClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the adapter.

        Args:
            config: Content host location and credentials.
            client: Optional pre-built contents client.
            transport: Optional httpx transport for the default client.
        """
        self.config = config
        self._client = client or ContentsClient(config, transport=transport)
        self._locks = PathLockRegistry()

    def _check_config(self) -> None:
        missing = self.config.missing()
        if missing:
            logger.error(f"Missing content host configuration: {', '.join(missing)}")
            raise ConfigurationError(missing)

    def _resolve(self, path: str | None) -> str:
        return path or self.config.path

    async def close(self) -> None:
        await self._client.close()

    async def read(self, path: str | None = None) -> RemoteDocument:
        """Fetch the document and its version.

        Raises:
            ConfigurationError: Required configuration missing.
            NotFoundError: No document at ``path``.
            SerializationError: Stored content could not be decoded.
            StoreError: Any other failure.
        """
        self._check_config()
        path = self._resolve(path)

        data = await self._client.get_file(path)
        if data is None:
            raise NotFoundError(path)

        return RemoteDocument(
            content=decode_content(data),
            version=data.get("sha", ""),
            path=path,
        )

    async def write(
        self,
        content: dict[str, Any],
        expected_version: str | None = None,
        path: str | None = None,
        message: str | None = None,
    ) -> WriteResult:
        """Write the document, guarded by ``expected_version``.

        Omit ``expected_version`` only when creating the document.

        Raises:
            ConfigurationError: Required configuration missing.
            ConflictError: The host's version differs from the expected one.
            SerializationError: ``content`` could not be encoded.
            StoreError: Any other failure.
        """
        self._check_config()
        path = self._resolve(path)

        body: dict[str, Any] = {
            "message": message or default_commit_message(),
            "content": encode_content(content),
            "branch": self.config.branch,
        }
        if expected_version:
            body["sha"] = expected_version

        result = await self._client.put_file(path, body)

        version = (result.get("content") or {}).get("sha")
        if not version:
            raise StoreError("Contents API response did not include a content version")

        commit = (result.get("commit") or {}).get("sha")
        logger.info(f"Wrote {path} at version {version} (commit {commit})")
        return WriteResult(
            version=version,
            commit=commit,
            path=path,
            created=not expected_version,
        )

    async def update(
        self,
        content: dict[str, Any],
        expected_version: str | None = None,
        path: str | None = None,
        message: str | None = None,
    ) -> WriteResult:
        """Probe the current version, then write against it.

        Args:
            content: New document.
            expected_version: Version the caller last saw. When given, a
                mismatch with the probed version is a conflict and nothing
                is written. When omitted, the probed version is used and
                the last writer wins.
            path: Document path, defaults to the configured one.
            message: Commit message.

        Returns:
            WriteResult with the new version and commit.
        """
        self._check_config()
        path = self._resolve(path)

        async with self._locks.lock_for(path):
            stage = UpdateStage.PROBING
            logger.debug(f"Update {path}: {stage.value}")
            try:
                try:
                    current = await self.read(path)
                    current_version: str | None = current.version
                except NotFoundError:
                    current_version = None
                except SerializationError:
                    # An undecodable document can still be overwritten
                    data = await self._client.get_file(path)
                    current_version = data.get("sha") if data else None

                if expected_version is not None and expected_version != current_version:
                    raise ConflictError(
                        f"Document {path} changed since version {expected_version}",
                        expected_version=expected_version,
                        current_version=current_version,
                    )

                stage = UpdateStage.WRITING
                logger.debug(
                    f"Update {path}: {stage.value} "
                    f"({'update' if current_version else 'create'})"
                )
                result = await self.write(
                    content,
                    expected_version=current_version,
                    path=path,
                    message=message,
                )
            except StoreError as e:
                logger.error(
                    f"Update {path}: {UpdateStage.FATAL.value} during {stage.value}: {e}"
                )
                raise

            logger.debug(f"Update {path}: {UpdateStage.DONE.value}")
            return result
