"""Error types recorded on the sync context or returned from commands."""

from __future__ import annotations

from typing import Optional


class SyncError(RuntimeError):
    """Base class; ``kind`` is a stable identifier for consumers."""

    kind = "sync_error"
    default_message = "Sync error"

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidURLError(SyncError):
    kind = "invalid_url"
    default_message = "Invalid URL"


class NetworkError(SyncError):
    kind = "network_error"
    default_message = "Network error"

    def __init__(self, message: Optional[str] = None, *, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class DecodingError(SyncError):
    kind = "decoding_error"
    default_message = "Failed to decode response"


class ConnectionLostError(SyncError):
    kind = "connection_lost"
    default_message = "Connection lost"


class CommandError(SyncError):
    """A command call that did not return HTTP 200."""

    kind = "command_error"

    def __init__(self, endpoint: str, cause: SyncError, *, action: Optional[str] = None) -> None:
        label = action or f"send {endpoint}"
        super().__init__(f"Failed to {label}: {cause.message}")
        self.endpoint = endpoint
        self.cause = cause


__all__ = [
    "CommandError",
    "ConnectionLostError",
    "DecodingError",
    "InvalidURLError",
    "NetworkError",
    "SyncError",
]
