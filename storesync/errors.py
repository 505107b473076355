"""Error taxonomy for document synchronization.

Every failure raised by the remote adapter or the settings client is a
StoreError subclass, tagged with a ``kind`` so callers can branch on a
conflict versus a transport failure without string matching.
"""


class StoreError(Exception):
    """Generic failure talking to the document store."""

    kind = "store"

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "message": self.message,
            "status_code": self.status_code,
        }


class ConfigurationError(StoreError):
    """Required adapter configuration is missing. Never retried."""

    kind = "configuration"

    def __init__(self, missing: list[str] | None = None, message: str | None = None):
        self.missing = list(missing or [])
        if message is None:
            message = "Missing configuration: " + ", ".join(self.missing)
        super().__init__(message, status_code=500)


class NotFoundError(StoreError):
    """Document absent at the expected path."""

    kind = "not_found"

    def __init__(self, path: str):
        super().__init__(f"Document not found: {path}", status_code=404)
        self.path = path


class ConflictError(StoreError):
    """Expected version does not match the store's current version."""

    kind = "conflict"

    def __init__(
        self,
        message: str,
        expected_version: str | None = None,
        current_version: str | None = None,
    ):
        super().__init__(message, status_code=409)
        self.expected_version = expected_version
        self.current_version = current_version


class NetworkError(StoreError):
    """Transport failure or retries exhausted."""

    kind = "network"


class SerializationError(StoreError):
    """Content could not be encoded or decoded."""

    kind = "serialization"
