"""Async HTTP client that signs protected requests and renews expired tokens."""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from ..errors import AuthRejected, NetworkError
from ..state import SessionState
from ..storage.tokens import CredentialStore
from .refresh import RefreshCoordinator
from .signer import RequestDecorator, RequestSigner, bearer_token


class AuthClient:
    """HTTP client with bearer signing and transparent token renewal.

    The client wraps :class:`httpx.AsyncClient`.  Requests sent through the
    verb helpers (:meth:`get`, :meth:`post`, ...) are *protected*: they are
    signed with the current access token and, when the server answers
    ``401``, replayed once after the :class:`RefreshCoordinator` has
    obtained a new token.  The ``raw_*`` helpers bypass both steps and are
    used for the unauthenticated auth endpoints.

    Example::

        async with AuthClient(state, store, "https://api.example.com") as client:
            resp = await client.get("/product/listings")
    """

    def __init__(
        self,
        state: SessionState,
        store: CredentialStore,
        server_url: str,
        *,
        refresh_path: str = "/auth/refresh-token",
        sign_out_path: str = "/auth/sign-out",
        timeout: float = 30.0,
        default_headers: dict[str, str] | None = None,
        decorators: tuple[RequestDecorator, ...] = (),
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.server_url = server_url.rstrip("/")
        self._http = httpx.AsyncClient(
            timeout=timeout, headers=default_headers, transport=transport
        )
        self._sign = RequestSigner(state, decorators)
        self.refresher = RefreshCoordinator(
            self._http,
            state,
            store,
            refresh_url=self.url(refresh_path),
            sign_out_url=self.url(sign_out_path),
        )

    def url(self, path: str) -> str:
        """Return the absolute URL for an API *path*."""
        return f"{self.server_url}{path}"

    # ------------------------------------------------------------------
    # Protected requests
    # ------------------------------------------------------------------

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a signed request to ``server_url + path``.

        A ``401`` answer triggers one renewal (shared with any concurrent
        failures) followed by exactly one replay; the replay's response is
        returned whatever its status.

        Raises :class:`NetworkError` on transport failure and
        :class:`~authsession.errors.RefreshRejected` when the renewal ended
        the session.
        """
        request = self._sign(self._http.build_request(method, self.url(path), **kwargs))
        sent_with = bearer_token(request)
        resp = await self._send(request)
        if resp.status_code != 401:
            return resp

        logger.debug(f"{method} {path} rejected with 401; renewing access token")
        pair = await self.refresher.renew(sent_with)
        replay = self.refresher.build_replay(request, pair)
        logger.debug(f"Replaying {method} {path} with renewed token")
        return await self._send(replay)

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PUT", path, **kwargs)

    async def patch(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", path, **kwargs)

    async def get_json(self, path: str, **kwargs: Any) -> Any:
        """GET *path* and return the decoded JSON body.

        Raises :class:`AuthRejected` if the request is still unauthorised
        after renewal, :class:`httpx.HTTPStatusError` for other non-2xx
        responses and :class:`NetworkError` when the body is not JSON.
        """
        resp = await self.get(path, **kwargs)
        if resp.status_code == 401:
            raise AuthRejected(f"GET {path} was not authorised")
        resp.raise_for_status()
        try:
            return resp.json()
        except ValueError as exc:
            raise NetworkError(f"GET {path} returned a body that is not JSON") from exc

    # ------------------------------------------------------------------
    # Unprotected requests
    # ------------------------------------------------------------------

    async def raw_post(self, path: str, **kwargs: Any) -> httpx.Response:
        """POST to ``server_url + path`` without signing or renewal."""
        return await self._send(self._http.build_request("POST", self.url(path), **kwargs))

    async def _send(self, request: httpx.Request) -> httpx.Response:
        try:
            return await self._http.send(request)
        except httpx.RequestError as exc:
            raise NetworkError(f"{request.method} {request.url} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Close the underlying HTTP transport."""
        await self.refresher.wait_idle()
        await self._http.aclose()

    @property
    def is_closed(self) -> bool:
        return self._http.is_closed

    async def __aenter__(self) -> AuthClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
