"""Sign-in and sign-out against the remote auth endpoints.

:class:`AuthSession` ties the pieces together: it owns the
:class:`~authsession.state.SessionState`, the credential store and the
:class:`~authsession.api.client.AuthClient`, and keeps the first two in
step on every transition.  Its public operations report failure as a
return value; they do not raise for network, credential or storage
problems.

Typical use::

    async with AuthSession() as session:
        if await session.sign_in("a@b.com", "pw"):
            resp = await session.client.get("/product/listings")
        await session.sign_out()
"""

from __future__ import annotations

from typing import Any, Callable

import httpx
from loguru import logger
from pydantic import ValidationError

from ..errors import StorageError
from ..models.user import ProfileResponse, SignInResponse, TokenPair
from ..state import SessionSnapshot, SessionState
from ..storage.config import DEFAULTS, AppSettings
from ..storage.tokens import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    CredentialStore,
    FileCredentialStore,
    delete_tokens,
    save_tokens,
)
from .client import AuthClient
from .results import run_async
from .signer import bearer


class AuthSession:
    """Public face of the authenticated request subsystem.

    Parameters
    ----------
    settings:
        Overrides on top of :data:`~authsession.storage.config.DEFAULTS`.
        When omitted the settings file is loaded.
    store:
        Durable credential store; a :class:`FileCredentialStore` by default.
    transport:
        Optional :mod:`httpx` transport, e.g. :class:`httpx.MockTransport`.
    """

    def __init__(
        self,
        settings: dict[str, Any] | None = None,
        store: CredentialStore | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if settings is None:
            settings = AppSettings.load()
        self.settings: dict[str, Any] = {**DEFAULTS, **settings}
        self.state = SessionState()
        self.store: CredentialStore = store if store is not None else FileCredentialStore()
        self.client = AuthClient(
            self.state,
            self.store,
            self.settings["server_url"],
            refresh_path=self.settings["refresh_path"],
            sign_out_path=self.settings["sign_out_path"],
            timeout=float(self.settings["timeout"]),
            default_headers={"User-Agent": self.settings["user_agent"]},
            transport=transport,
        )

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    @property
    def auth_state(self) -> SessionSnapshot:
        return self.state.read()

    @property
    def logged_in(self) -> bool:
        return self.state.read().signed_in

    def on_session_ended(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Call *callback* whenever a signed-in session becomes signed out.

        Fires for an explicit sign-out as well as for a session ended by a
        rejected refresh token.  Returns an unsubscribe callable.
        """
        was_signed_in = self.state.read().signed_in

        def observer(snapshot: SessionSnapshot) -> None:
            nonlocal was_signed_in
            ended = was_signed_in and not snapshot.signed_in
            was_signed_in = snapshot.signed_in
            if ended:
                callback()

        return self.state.subscribe(observer)

    # ------------------------------------------------------------------
    # Sign-in / sign-out
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> bool:
        """Authenticate with *email* and *password*.

        Returns ``True`` once the profile and access token are published.
        On any failure the session is left signed out and ``False`` is
        returned.
        """
        with self.state.busy(profile=None, access_token=None):
            result = await run_async(
                self.client.raw_post(
                    self.settings["sign_in_path"],
                    json={"email": email, "password": password},
                )
            )
            if not result.ok:
                logger.warning(f"Sign-in failed: {result.error}")
                self.state.update(profile=None, access_token=None)
                return False
            try:
                body = SignInResponse.model_validate(result.data)
            except ValidationError as exc:
                logger.error(f"Malformed sign-in response: {exc}")
                self.state.update(profile=None, access_token=None)
                return False

            async with self.state.writer:
                await self._store_tokens(body.tokens)
                self.state.update(profile=body.profile, access_token=body.tokens.access)
            logger.info(f"Signed in as {body.profile.email}")
            return True

    async def sign_out(self) -> None:
        """End the session locally and, if possible, on the server.

        The server call goes through the protected path, so an expired
        access token is renewed once first and the call carries the
        refresh token current at that point.  Local cleanup always runs.
        """
        with self.state.busy():
            try:
                refresh_token = await self.store.get(REFRESH_TOKEN_KEY)
            except StorageError as exc:
                logger.error(f"Could not read refresh token: {exc}")
                refresh_token = None
            try:
                if refresh_token:
                    result = await run_async(
                        self.client.post(
                            self.settings["sign_out_path"],
                            json={"refreshToken": refresh_token},
                        )
                    )
                    if not result.ok:
                        logger.warning(f"Server sign-out failed: {result.error}")
            finally:
                async with self.state.writer:
                    await delete_tokens(self.store)
                    self.state.update(profile=None, access_token=None)
                logger.info("Signed out")

    async def restore(self) -> bool:
        """Resume a session from the stored access token.

        Fetches the profile with the stored token (renewing it once if the
        server rejects it) and publishes the signed-in state.  Returns
        ``False`` if there is nothing to restore or the server refuses.
        """
        try:
            access = await self.store.get(ACCESS_TOKEN_KEY)
        except StorageError as exc:
            logger.error(f"Could not read access token: {exc}")
            return False
        if not access:
            return False

        with self.state.busy():
            result = await run_async(
                self.client.get_json(
                    self.settings["profile_path"],
                    headers={"Authorization": bearer(access)},
                )
            )
            if not result.ok:
                logger.warning(f"Could not restore session: {result.error}")
                return False
            try:
                profile = ProfileResponse.model_validate(result.data).profile
            except ValidationError as exc:
                logger.error(f"Malformed profile response: {exc}")
                return False
            async with self.state.writer:
                try:
                    # A renewal during the fetch has already stored a newer token.
                    current = await self.store.get(ACCESS_TOKEN_KEY) or access
                except StorageError as exc:
                    logger.error(f"Could not re-read access token: {exc}")
                    current = access
                self.state.update(profile=profile, access_token=current)
            logger.info(f"Restored session for {profile.email}")
            return True

    def set_avatar(self, uri: str | None) -> None:
        """Replace the avatar of the signed-in profile."""
        profile = self.state.read().profile
        if profile is None:
            return
        self.state.update(profile=profile.model_copy(update={"avatar": uri}))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _store_tokens(self, tokens: TokenPair) -> None:
        try:
            await save_tokens(self.store, tokens.access, tokens.refresh)
        except StorageError as exc:
            logger.error(f"Tokens could not be stored; session will not survive a restart: {exc}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        await self.client.aclose()

    async def __aenter__(self) -> AuthSession:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
