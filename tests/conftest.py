"""Shared fixtures: an in-process fake auth server and a wired-up session."""
import asyncio
import json

import httpx
import pytest

from authsession.api.auth import AuthSession
from authsession.storage.tokens import MemoryCredentialStore

SERVER_URL = "https://api.test"

PROFILE = {
    "id": "1",
    "email": "a@b.com",
    "name": "Alice",
    "verified": True,
    "avatar": None,
}


class FakeAuthServer:
    """Minimal model of the remote API.

    Tokens are numbered by generation: sign-in issues ``A1``/``R1`` and
    each successful refresh issues the next pair.  Protected endpoints
    accept only the current access token.
    """

    def __init__(self, store=None):
        self.store = store
        self.generation = 0
        self.valid_access = None
        self.valid_refresh = None
        self.requests = []
        self.protected = []
        self.rejected = []
        self.refresh_calls = 0
        self.refresh_gate = None
        self.refresh_status = None
        self.refresh_exception = None
        self.reject_all = False
        self.profile_response = None
        self.signed_out = []

    # -- test controls ------------------------------------------------------

    def expire_access(self):
        self.valid_access = None

    def _issue(self):
        self.generation += 1
        self.valid_access = f"A{self.generation}"
        self.valid_refresh = f"R{self.generation}"
        return {"access": self.valid_access, "refresh": self.valid_refresh}

    # -- request handling ---------------------------------------------------

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if path == "/auth/sign-in":
            if body.get("password") != "pw":
                return httpx.Response(401, json={"message": "Email/Password mismatch!"})
            return httpx.Response(200, json={"profile": PROFILE, "tokens": self._issue()})

        if path == "/auth/refresh-token":
            self.refresh_calls += 1
            if self.refresh_gate is not None:
                await self.refresh_gate.wait()
            if self.refresh_exception is not None:
                raise self.refresh_exception("refresh endpoint unreachable", request=request)
            if self.refresh_status is not None:
                return httpx.Response(self.refresh_status, json={"message": "refresh failed"})
            if body.get("refreshToken") != self.valid_refresh:
                return httpx.Response(401, json={"message": "Unauthorized request!"})
            return httpx.Response(200, json={"tokens": self._issue()})

        header = request.headers.get("Authorization")
        stored = dict(self.store.data) if self.store is not None else None
        self.protected.append((path, header, stored))
        if self.reject_all or self.valid_access is None or header != f"Bearer {self.valid_access}":
            self.rejected.append((path, header))
            return httpx.Response(401, json={"message": "Session expired!"})

        if path == "/auth/sign-out":
            if body.get("refreshToken") != self.valid_refresh:
                return httpx.Response(422, json={"message": "Invalid refresh token"})
            self.signed_out.append(body["refreshToken"])
            self.valid_access = None
            self.valid_refresh = None
            return httpx.Response(200, json={"message": "signed out"})

        if path == "/auth/profile":
            if self.profile_response is not None:
                return self.profile_response
            return httpx.Response(200, json={"profile": PROFILE})

        return httpx.Response(200, json={"path": path, "token": self.valid_access})

    def calls_to(self, path):
        return [r for r in self.requests if r.url.path == path]


async def wait_until(predicate, timeout=2.0):
    """Yield to the event loop until *predicate* holds."""

    async def poll():
        while not predicate():
            await asyncio.sleep(0)

    await asyncio.wait_for(poll(), timeout)


async def settle(rounds=100):
    """Give every runnable task a chance to reach its next suspension point."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def store():
    return MemoryCredentialStore()


@pytest.fixture
def server(store):
    return FakeAuthServer(store)


@pytest.fixture
async def session(server, store):
    s = AuthSession(
        settings={"server_url": SERVER_URL},
        store=store,
        transport=httpx.MockTransport(server),
    )
    yield s
    await s.aclose()


@pytest.fixture
async def signed_in(session):
    assert await session.sign_in("a@b.com", "pw")
    return session
