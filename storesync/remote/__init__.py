"""Remote document store on a git-backed contents API.

Provides version-guarded read-modify-write of a single file, where every
write becomes a commit in the host's history.
"""

from .adapter import RemoteDocument, RemoteStoreAdapter, UpdateStage, WriteResult
from .contents import ContentsClient

__all__ = [
    "ContentsClient",
    "RemoteDocument",
    "RemoteStoreAdapter",
    "UpdateStage",
    "WriteResult",
]
