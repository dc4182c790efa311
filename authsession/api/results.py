"""Turn request outcomes into values instead of exceptions.

Callers of protected endpoints use :func:`run_async` so that transport
failures, rejected credentials and a terminated session arrive as an
:class:`ApiResult` they can inspect, never as an uncaught exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable

import httpx
from loguru import logger

from ..errors import AuthRejected, NetworkError, RefreshRejected, StorageError


class ErrorKind(str, Enum):
    NETWORK = "network"
    AUTH_REJECTED = "auth_rejected"
    SESSION_EXPIRED = "session_expired"
    HTTP = "http"
    STORAGE = "storage"


@dataclass
class ApiResult:
    """Outcome of one API call.

    ``data`` holds the decoded body on success; on failure ``error``
    holds a human-readable message and ``kind`` classifies it.
    """

    data: Any = None
    error: str | None = None
    kind: ErrorKind | None = None
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _error_message(resp: httpx.Response) -> str:
    """Pick the server's message out of an error body, if it sent one."""
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            if isinstance(body.get(key), str):
                return body[key]
    return f"HTTP {resp.status_code}"


def _decode(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


async def run_async(call: Awaitable[Any]) -> ApiResult:
    """Await *call* and wrap its outcome in an :class:`ApiResult`.

    *call* may resolve to an :class:`httpx.Response` (its status and body
    are inspected) or to an already-decoded value.
    """
    try:
        outcome = await call
    except RefreshRejected as exc:
        return ApiResult(error=str(exc) or "Session expired", kind=ErrorKind.SESSION_EXPIRED)
    except AuthRejected as exc:
        return ApiResult(error=str(exc), kind=ErrorKind.AUTH_REJECTED, status_code=exc.status_code)
    except NetworkError as exc:
        logger.warning(f"Network error: {exc}")
        return ApiResult(error=str(exc), kind=ErrorKind.NETWORK)
    except StorageError as exc:
        logger.error(f"Storage error: {exc}")
        return ApiResult(error=str(exc), kind=ErrorKind.STORAGE)
    except httpx.HTTPStatusError as exc:
        return ApiResult(
            error=_error_message(exc.response),
            kind=ErrorKind.HTTP,
            status_code=exc.response.status_code,
        )

    if not isinstance(outcome, httpx.Response):
        return ApiResult(data=outcome)
    if outcome.status_code == 401:
        return ApiResult(
            error=_error_message(outcome),
            kind=ErrorKind.AUTH_REJECTED,
            status_code=401,
        )
    if outcome.is_error:
        return ApiResult(
            error=_error_message(outcome),
            kind=ErrorKind.HTTP,
            status_code=outcome.status_code,
        )
    return ApiResult(data=_decode(outcome), status_code=outcome.status_code)
