"""Single-flight renewal of an expired access token.

When a protected request comes back with HTTP 401, the client asks the
:class:`RefreshCoordinator` for a fresh credential pair.  The coordinator
is either idle, in which case it opens a *ticket* (an
:class:`asyncio.Future`) and starts one refresh-token exchange in a
background task, or it is already refreshing, in which case the caller
simply waits on the open ticket.  Every caller therefore shares the
outcome of exactly one exchange.

The ticket is resolved only after the new pair has been written to the
credential store and published to the session state, so no replay can
be built from the old token.  Writing and publishing happen under
:attr:`SessionState.writer`, the lock sign-in and sign-out also hold.
Waiters resume in the order they started waiting.

An exchange that the server rejects ends the session: state is cleared,
both stored tokens are removed and every waiter gets
:class:`RefreshRejected`.
"""

from __future__ import annotations

import asyncio

import httpx
from loguru import logger
from pydantic import ValidationError

from ..errors import NetworkError, RefreshRejected, StorageError
from ..models.user import TokenPair, TokenResponse
from ..state import SessionState
from ..storage.tokens import REFRESH_TOKEN_KEY, CredentialStore, delete_tokens, save_tokens
from .signer import bearer

# Statuses from the refresh endpoint meaning "this refresh token is dead".
REJECTED_STATUSES = frozenset({400, 401, 403})


class RefreshCoordinator:
    """Guarantee at most one outstanding refresh-token exchange.

    Parameters
    ----------
    http:
        Transport used for the (unsigned) refresh call.
    state:
        Session register updated with the renewed access token.
    store:
        Durable store holding the refresh token.
    refresh_url:
        Absolute URL of the refresh-token endpoint.
    sign_out_url:
        Absolute URL of the sign-out endpoint.  A replay of a failed
        sign-out call carries the *new* refresh token in its body.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        state: SessionState,
        store: CredentialStore,
        refresh_url: str,
        sign_out_url: str,
    ) -> None:
        self._http = http
        self._state = state
        self._store = store
        self._refresh_url = refresh_url
        self._sign_out_url = sign_out_url
        self._ticket: asyncio.Future[TokenPair] | None = None
        self._task: asyncio.Task[None] | None = None
        self._last_pair: TokenPair | None = None
        self.exchanges = 0

    @property
    def refreshing(self) -> bool:
        """``True`` while an exchange is outstanding."""
        return self._ticket is not None

    async def renew(self, stale_token: str | None) -> TokenPair:
        """Return a credential pair newer than *stale_token*.

        *stale_token* is the access token the failed request was sent
        with.  If a newer pair was already issued and is still current,
        it is returned without another exchange.  Otherwise the caller
        joins the in-flight exchange, starting one if none is running.

        Raises :class:`RefreshRejected` if the session was terminated,
        :class:`NetworkError` if the refresh endpoint could not be reached,
        or :class:`StorageError` if the refresh token could not be read.
        """
        ticket = self._ticket
        if ticket is None:
            last = self._last_pair
            if (
                last is not None
                and stale_token != last.access
                and self._state.read().access_token == last.access
            ):
                logger.debug("Request used a superseded token; reusing current pair")
                return last
            ticket = asyncio.get_running_loop().create_future()
            self._ticket = ticket
            self._task = asyncio.create_task(self._exchange(ticket))
        else:
            logger.debug("Refresh already in flight; waiting on it")
        return await asyncio.shield(ticket)

    def build_replay(self, request: httpx.Request, pair: TokenPair) -> httpx.Request:
        """Copy *request* with the new access token in its header.

        A sign-out call is rebuilt with the new refresh token as its body,
        since the server invalidates the refresh token named in the payload.
        """
        headers = httpx.Headers(request.headers)
        headers["Authorization"] = bearer(pair.access)
        if request.url == self._sign_out_url:
            headers.pop("Content-Length", None)
            return httpx.Request(
                request.method,
                request.url,
                headers=headers,
                json={"refreshToken": pair.refresh},
                extensions=request.extensions,
            )
        return httpx.Request(
            request.method,
            request.url,
            headers=headers,
            content=request.content,
            extensions=request.extensions,
        )

    async def wait_idle(self) -> None:
        """Wait for the in-flight exchange task, if any, to finish."""
        task = self._task
        if task is not None:
            await asyncio.shield(task)

    # ------------------------------------------------------------------
    # Exchange
    # ------------------------------------------------------------------

    async def _exchange(self, ticket: asyncio.Future[TokenPair]) -> None:
        try:
            with self._state.busy():
                used = await self._store.get(REFRESH_TOKEN_KEY)
                try:
                    pair = await self._fetch_pair(used)
                except RefreshRejected as exc:
                    async with self._state.writer:
                        if await self._superseded(used):
                            raise RefreshRejected("Session ended during renewal") from exc
                        logger.warning(f"Refresh token rejected, ending session: {exc}")
                        await self._terminate()
                    raise
                async with self._state.writer:
                    # A sign-out or new sign-in while the exchange was in flight
                    # owns the store now; the renewed pair belongs to nobody.
                    if await self._superseded(used):
                        logger.warning("Session changed during renewal; discarding new tokens")
                        raise RefreshRejected("Session ended during renewal")
                    await self._persist(pair)
                    # A renewal for a request sent while signed out must not
                    # publish a token without a profile.
                    if self._state.read().profile is not None:
                        self._state.update(access_token=pair.access)
                    self._last_pair = pair
            logger.debug("Access token renewed")
            ticket.set_result(pair)
        except asyncio.CancelledError:
            ticket.cancel()
            raise
        except RefreshRejected as exc:
            ticket.set_exception(exc)
        except Exception as exc:
            logger.error(f"Token refresh failed: {exc}")
            ticket.set_exception(exc)
        finally:
            self._ticket = None
            self._task = None
            # Retrieve the exception so an unobserved ticket does not warn.
            if ticket.done() and not ticket.cancelled():
                ticket.exception()

    async def _superseded(self, used: str | None) -> bool:
        return await self._store.get(REFRESH_TOKEN_KEY) != used

    async def _fetch_pair(self, refresh_token: str | None) -> TokenPair:
        if not refresh_token:
            raise RefreshRejected("No refresh token stored")

        self.exchanges += 1
        logger.debug(f"Requesting new tokens from {self._refresh_url}")
        try:
            resp = await self._http.post(
                self._refresh_url, json={"refreshToken": refresh_token}
            )
        except httpx.RequestError as exc:
            raise NetworkError(f"Refresh request failed: {exc}") from exc

        if resp.status_code in REJECTED_STATUSES:
            raise RefreshRejected(f"Refresh endpoint returned HTTP {resp.status_code}")
        if resp.is_error:
            raise NetworkError(f"Refresh endpoint returned HTTP {resp.status_code}")
        try:
            return TokenResponse.model_validate(resp.json()).tokens
        except (ValueError, ValidationError) as exc:
            raise NetworkError(f"Malformed refresh response: {exc}") from exc

    async def _persist(self, pair: TokenPair) -> None:
        try:
            await save_tokens(self._store, pair.access, pair.refresh)
        except StorageError as exc:
            logger.error(f"Renewed tokens could not be stored: {exc}")

    async def _terminate(self) -> None:
        self._last_pair = None
        self._state.update(profile=None, access_token=None)
        await delete_tokens(self._store)
