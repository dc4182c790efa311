"""Exception taxonomy shared by the storage, client and session layers."""

from __future__ import annotations


class AuthSessionError(Exception):
    """Base class for every error raised by authsession."""


class NetworkError(AuthSessionError):
    """Transport failure or timeout talking to the remote API."""


class AuthRejected(AuthSessionError):
    """The server rejected the access credential (HTTP 401).

    Raised only where a 401 cannot be recovered by a renewal, e.g. when a
    replayed request is rejected again.
    """

    def __init__(self, message: str, status_code: int = 401) -> None:
        super().__init__(message)
        self.status_code = status_code


class RefreshRejected(AuthSessionError):
    """The refresh credential itself was rejected; the session has ended."""


class StorageError(AuthSessionError):
    """The durable credential store is unavailable or corrupt."""
