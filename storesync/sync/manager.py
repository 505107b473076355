"""Client-side synchronization of the settings document.

Keeps three copies coherent: the in-memory document consumers read, the
local cache that survives restarts, and the remote store. Reads fall back
to the cache so the storefront keeps working offline; writes are applied
locally first and confirmed remotely afterwards.
"""

import asyncio
import copy
import json
import logging
import sqlite3
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable

import httpx

from ..cache import LocalCache
from ..config import SyncConfig
from ..defaults import default_document, merge_with_defaults
from ..errors import ConfigurationError, SerializationError, StoreError
from .client import SettingsClient
from .single_flight import SingleFlight

logger = logging.getLogger(__name__)


class SyncState(Enum):
    """Lifecycle state of the synchronized document."""

    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    DEGRADED = "degraded"  # Serving cached or default document
    SAVING = "saving"
    ERROR = "error"  # Last save failed; local value kept


@dataclass
class SyncStatus:
    """Snapshot of the manager's state for consumers."""

    state: SyncState = SyncState.IDLE
    last_synced_version: str | None = None
    last_error: str | None = None
    error_kind: str | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "last_synced_version": self.last_synced_version,
            "last_error": self.last_error,
            "error_kind": self.error_kind,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class SaveResult:
    """Outcome of a save() call."""

    ok: bool
    version: str | None = None
    commit: str | None = None
    error: str | None = None
    error_kind: str | None = None
    superseded: bool = False  # A newer save replaced this one
    local_only: bool = False  # Acknowledged in local mode, never sent


StatusListener = Callable[[SyncStatus], None]


class SyncManager:
    """Owns the settings document for one client.

    Construct one per process and pass it to consumers; there is no
    module-level document.
    """

    def __init__(
        self,
        cache: LocalCache,
        client: SettingsClient | None = None,
        *,
        local_mode: bool = False,
        local_save_delay: float = 0.5,
        default: dict[str, Any] | None = None,
        fill_defaults: bool = False,
        document_key: str = "settings",
    ):
        """Initialize the sync manager.

        Args:
            cache: Persisted slot holding the last known document.
            client: Transport to the storefront; None leaves the manager
                offline (loads degrade to the cache, saves fail).
            local_mode: Acknowledge saves locally without contacting the
                store. Decided at startup, never inferred.
            local_save_delay: Simulated latency of a local-mode save.
            default: Built-in document used when nothing is cached.
            fill_defaults: Fill keys missing from loaded documents from
                the default document.
            document_key: Key for write serialization (the document path).
        """
        self._cache = cache
        self._client = client
        self._local_mode = local_mode
        self._local_save_delay = local_save_delay
        self._default = copy.deepcopy(default) if default is not None else default_document()
        self._fill_defaults = fill_defaults
        self.document_key = document_key

        self._document: dict[str, Any] = copy.deepcopy(self._default)
        self._base_version: str | None = None
        self._status = SyncStatus()
        self._listeners: list[StatusListener] = []
        self._flight = SingleFlight()
        self._owns_cache = False
        # Bumped by every accepted save; loads that straddle one are stale
        self._generation = 0

    @classmethod
    def from_config(
        cls,
        config: SyncConfig,
        cache: LocalCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "SyncManager":
        """Build a manager and its collaborators from configuration.

        A cache created here is owned by the manager and closed by close();
        a cache passed in stays the caller's to close.
        """
        owns_cache = cache is None
        if cache is None:
            cache = LocalCache(config.cache_path, config.cache_key)
            cache.connect()

        client = None
        if config.site_url:
            client = SettingsClient(
                site_url=config.site_url,
                update_path=config.update_path,
                document_path=config.document_path,
                timeout=config.timeout_seconds,
                max_retries=config.max_retries,
                transport=transport,
            )

        manager = cls(
            cache,
            client,
            local_mode=config.local_mode,
            local_save_delay=config.local_save_delay_seconds,
            fill_defaults=config.fill_defaults,
            document_key=config.document_path,
        )
        manager._owns_cache = owns_cache
        return manager

    # ==================== Consumer API ====================

    @property
    def document(self) -> dict[str, Any]:
        """Current document (a copy; edit it and pass it to save())."""
        return copy.deepcopy(self._document)

    @property
    def status(self) -> SyncStatus:
        return replace(self._status)

    @property
    def local_mode(self) -> bool:
        return self._local_mode

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a callback for state changes.

        Returns:
            Function that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def load(self) -> dict[str, Any]:
        """Load the document, preferring the remote copy.

        Never raises for sync failures and never returns an empty
        document: on failure the cached document (or the built-in
        default) is served and the state becomes DEGRADED.

        A save accepted while the fetch was outstanding (or a write still
        pending when the load began) wins: the fetched snapshot is
        discarded and the local document, base version and state are left
        as that save set them.
        """
        generation = self._generation
        writing = self._flight.in_flight(self.document_key)
        if not writing:
            self._set_state(SyncState.LOADING)

        error: Exception
        if self._client is None:
            error = ConfigurationError(message="No settings endpoint configured")
        else:
            try:
                remote = await self._client.fetch_document()
            except StoreError as e:
                error = e
            except Exception as e:
                logger.exception("Unexpected error loading settings")
                error = e
            else:
                if writing or generation != self._generation:
                    logger.info(
                        f"Discarding fetched settings (version={remote.version or 'unknown'}); "
                        "a newer local save exists"
                    )
                    return self.document

                document = remote.content
                if self._fill_defaults:
                    document = merge_with_defaults(document, self._default)
                self._apply(document)
                self._base_version = remote.version or None
                self._set_state(SyncState.READY)
                logger.info(f"Loaded settings (version={remote.version or 'unknown'})")
                return self.document

        if writing or generation != self._generation:
            logger.warning(f"Settings load failed during a save, keeping local copy: {error}")
            return self.document

        logger.warning(f"Settings load failed, serving local copy: {error}")
        self._document = self._cached_or_default()
        self._set_state(SyncState.DEGRADED, error=error)
        return self.document

    def save(self, document: dict[str, Any]) -> "asyncio.Future[SaveResult]":
        """Apply ``document`` locally and write it to the store.

        The in-memory document and the cache are updated before this
        returns; the returned task resolves once the remote write settles.
        A failed write is never rolled back: the local value stays and the
        state becomes ERROR until a later save or load succeeds.
        Must be called from a running event loop.
        """
        try:
            snapshot = json.loads(json.dumps(document))
            fingerprint = json.dumps(snapshot, sort_keys=True)
        except (TypeError, ValueError) as e:
            error = SerializationError(f"Document is not serializable: {e}")
            self._set_state(SyncState.ERROR, error=error)
            return self._resolved(
                SaveResult(ok=False, error=error.message, error_kind=error.kind)
            )

        self._generation += 1
        self._apply(snapshot)
        self._set_state(SyncState.SAVING)

        return self._flight.submit(
            self.document_key,
            fingerprint,
            lambda: self._write(snapshot),
            superseded_result=lambda: SaveResult(ok=False, superseded=True),
        )

    def update_section(self, section: str, patch: dict[str, Any]) -> "asyncio.Future[SaveResult]":
        """Merge ``patch`` into one top-level section and save."""
        document = self.document
        current = document.get(section)
        if isinstance(current, dict):
            document[section] = {**current, **patch}
        else:
            document[section] = copy.deepcopy(patch)
        return self.save(document)

    def reset(self) -> "asyncio.Future[SaveResult]":
        """Save the built-in default document."""
        return self.save(copy.deepcopy(self._default))

    async def close(self) -> None:
        """Cancel pending writes and release the client and owned cache."""
        await self._flight.cancel_all()
        if self._client:
            await self._client.close()
        if self._owns_cache:
            self._cache.close()

    # ==================== Internals ====================

    async def _write(self, document: dict[str, Any]) -> SaveResult:
        if self._local_mode:
            await asyncio.sleep(self._local_save_delay)
            logger.info("Local mode: save acknowledged without contacting the store")
            self._set_state(SyncState.READY)
            return SaveResult(ok=True, local_only=True)

        try:
            if self._client is None:
                raise ConfigurationError(message="No settings endpoint configured")
            result = await self._client.push_document(
                document, expected_version=self._base_version
            )
        except StoreError as e:
            self._set_state(SyncState.ERROR, error=e)
            return SaveResult(ok=False, error=e.message, error_kind=e.kind)
        except Exception as e:
            logger.exception("Unexpected error saving settings")
            self._set_state(SyncState.ERROR, error=e)
            return SaveResult(ok=False, error=str(e), error_kind="unexpected")

        self._base_version = result.version or None
        self._status.last_synced_version = result.version or result.commit
        self._set_state(SyncState.READY)
        logger.info(f"Saved settings (version={result.version}, commit={result.commit})")
        return SaveResult(ok=True, version=result.version or None, commit=result.commit)

    def _apply(self, document: dict[str, Any]) -> None:
        """Make ``document`` current in memory and in the cache."""
        self._document = copy.deepcopy(document)
        try:
            self._cache.set(self._document)
        except (SerializationError, sqlite3.Error) as e:
            logger.warning(f"Failed to update local cache: {e}")

    def _cached_or_default(self) -> dict[str, Any]:
        try:
            cached = self._cache.get()
        except (SerializationError, sqlite3.Error) as e:
            logger.warning(f"Ignoring unreadable cache: {e}")
            cached = None

        if cached is None:
            return copy.deepcopy(self._default)
        if self._fill_defaults:
            return merge_with_defaults(cached, self._default)
        return cached

    def _set_state(self, state: SyncState, error: Exception | None = None) -> None:
        self._status.state = state
        self._status.updated_at = datetime.now()
        if error is not None:
            self._status.last_error = str(error)
            self._status.error_kind = getattr(error, "kind", "unexpected")
        elif state == SyncState.READY:
            self._status.last_error = None
            self._status.error_kind = None

        logger.debug(f"Sync state -> {state.value}")
        snapshot = self.status
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Status listener error: {e}")

    @staticmethod
    def _resolved(result: SaveResult) -> "asyncio.Future[SaveResult]":
        future = asyncio.get_running_loop().create_future()
        future.set_result(result)
        return future
