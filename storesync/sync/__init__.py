"""Client-side synchronization of the settings document.

Reconciles the in-memory document, the local cache, and the remote store,
and exposes the save lifecycle to consumers.
"""

from .client import SettingsClient
from .manager import SaveResult, SyncManager, SyncState, SyncStatus
from .single_flight import SingleFlight

__all__ = [
    "SaveResult",
    "SettingsClient",
    "SingleFlight",
    "SyncManager",
    "SyncState",
    "SyncStatus",
]
