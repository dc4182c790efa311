"""Client-side session manager: sign-in, request signing and token renewal."""

from authsession.api import ApiResult, AuthClient, AuthSession, ErrorKind, run_async
from authsession.errors import (
    AuthRejected,
    AuthSessionError,
    NetworkError,
    RefreshRejected,
    StorageError,
)
from authsession.models import Profile, TokenPair
from authsession.state import SessionSnapshot, SessionState

__version__ = "0.1.0"

__all__ = [
    "ApiResult",
    "AuthClient",
    "AuthRejected",
    "AuthSession",
    "AuthSessionError",
    "ErrorKind",
    "NetworkError",
    "Profile",
    "RefreshRejected",
    "SessionSnapshot",
    "SessionState",
    "StorageError",
    "TokenPair",
    "run_async",
]
