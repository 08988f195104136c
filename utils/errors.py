"""
Error taxonomy for the sync engine.

Soft page failures never surface as exceptions (the fetcher turns them into
PageFailure values). The classes below are the ones allowed to travel.
"""

from typing import Any, Optional


class SyncError(Exception):
    """Base class for every error raised by the sync engine."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(SyncError):
    """Required settings are missing or invalid."""


class MalformedPayloadError(SyncError):
    """Upstream payload does not match the expected shape."""


class SourceUnavailableError(SyncError):
    """A paginated source could not be read."""

    def __init__(self, endpoint: str, reason: str) -> None:
        super().__init__(
            f"Source unavailable: {endpoint} ({reason})",
            details={"endpoint": endpoint, "reason": reason},
        )
        self.endpoint = endpoint
        self.reason = reason


class MapCatalogError(SyncError):
    """Map catalog refresh failed; record writes must not proceed."""
