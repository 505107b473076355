"""HTTP surface for the settings document.

Wraps the remote store adapter in a small FastAPI app: a privileged
update endpoint and the public, cache-busted document.
"""

from .app import create_app

__all__ = ["create_app"]
