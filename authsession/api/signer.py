"""Outbound request decoration.

A request decorator is a plain function ``httpx.Request -> httpx.Request``.
Decorators are combined with :func:`compose` and applied in the order
given, so the sequence of header mutations is explicit at the call site
instead of hidden in client event hooks.
"""

from __future__ import annotations

from typing import Callable, Mapping

import httpx

from ..state import SessionState

RequestDecorator = Callable[[httpx.Request], httpx.Request]

_BEARER_PREFIX = "Bearer "


def bearer(token: str) -> str:
    """Return the ``Authorization`` header value for *token*."""
    return f"{_BEARER_PREFIX}{token}"


def bearer_token(request: httpx.Request) -> str | None:
    """Return the bearer token *request* carries, or ``None``."""
    value = request.headers.get("Authorization")
    if value and value.startswith(_BEARER_PREFIX):
        return value[len(_BEARER_PREFIX):]
    return None


def compose(*decorators: RequestDecorator) -> RequestDecorator:
    """Chain *decorators* left to right into a single decorator."""

    def apply(request: httpx.Request) -> httpx.Request:
        for decorate in decorators:
            request = decorate(request)
        return request

    return apply


def with_headers(headers: Mapping[str, str]) -> RequestDecorator:
    """Set each of *headers* unless the request already carries it."""

    def decorate(request: httpx.Request) -> httpx.Request:
        for name, value in headers.items():
            request.headers.setdefault(name, value)
        return request

    return decorate


def attach_credential(state: SessionState) -> RequestDecorator:
    """Attach ``Authorization: Bearer <access token>`` from *state*.

    The token is read from the snapshot current at dispatch time.  An
    explicit ``Authorization`` header set by the caller wins.  Without an
    access token the request goes out unauthenticated and the server is
    left to reject it.
    """

    def decorate(request: httpx.Request) -> httpx.Request:
        if "Authorization" in request.headers:
            return request
        token = state.read().access_token
        if token:
            request.headers["Authorization"] = bearer(token)
        return request

    return decorate


class RequestSigner:
    """Decorate every protected request before it is sent.

    The credential is attached first, then any *extra* decorators run in
    the order given.
    """

    def __init__(
        self,
        state: SessionState,
        extra: tuple[RequestDecorator, ...] = (),
    ) -> None:
        self._decorate = compose(attach_credential(state), *extra)

    def __call__(self, request: httpx.Request) -> httpx.Request:
        return self._decorate(request)
