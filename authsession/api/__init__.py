"""API layer -- authenticated client, renewal and the session facade."""

from authsession.api.auth import AuthSession
from authsession.api.client import AuthClient
from authsession.api.refresh import RefreshCoordinator
from authsession.api.results import ApiResult, ErrorKind, run_async

__all__ = [
    "ApiResult",
    "AuthClient",
    "AuthSession",
    "ErrorKind",
    "RefreshCoordinator",
    "run_async",
]
