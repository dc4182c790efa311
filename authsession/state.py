"""Observable in-memory record of the current session.

:class:`SessionState` is a single-writer register holding an immutable
:class:`SessionSnapshot`.  Readers call :meth:`SessionState.read` and
always get a fully-formed snapshot; writers call
:meth:`SessionState.update`, which swaps the whole snapshot in one step
and then notifies observers.

Writer contract
---------------
``profile`` and ``access_token`` travel together: every transition must
set both or clear both.  The writers (the sign-in/sign-out facade and the
refresh coordinator) are responsible for this at each call site.
:class:`SessionSnapshot` validates the pairing and raises
:class:`ValueError` when a writer breaks it, so a half-signed-in state is
never published.

Writing credentials spans awaits on the store, so a writer holds
:attr:`SessionState.writer` from the moment it decides to write until
the new snapshot is published.  Two writers never interleave their
store and state updates.
"""

from __future__ import annotations

import asyncio
from contextlib import contextmanager
from typing import Any, Callable, Iterator

from loguru import logger
from pydantic import BaseModel, ConfigDict, model_validator

from .models.user import Profile

Observer = Callable[["SessionSnapshot"], None]


class SessionSnapshot(BaseModel):
    """One immutable view of the session."""

    model_config = ConfigDict(frozen=True)

    profile: Profile | None = None
    access_token: str | None = None
    pending: bool = False

    @model_validator(mode="after")
    def _profile_requires_token(self) -> "SessionSnapshot":
        if (self.profile is None) != (self.access_token is None):
            raise ValueError("profile and access_token must be set or cleared together")
        return self

    @property
    def signed_in(self) -> bool:
        return self.profile is not None


class SessionState:
    """Single-writer, many-reader session register."""

    def __init__(self) -> None:
        self._snapshot = SessionSnapshot()
        self._observers: list[Observer] = []
        self._busy = 0
        # Held across "store the tokens, then publish them".
        self.writer = asyncio.Lock()

    def read(self) -> SessionSnapshot:
        return self._snapshot

    def update(self, **patch: Any) -> SessionSnapshot:
        """Replace the fields in *patch* and notify observers.

        Raises :class:`ValueError` for unknown fields or a transition that
        separates ``profile`` from ``access_token``; the current snapshot is
        left untouched in that case.
        """
        unknown = set(patch) - set(SessionSnapshot.model_fields)
        if unknown:
            raise ValueError(f"Unknown session fields: {sorted(unknown)}")
        snapshot = SessionSnapshot.model_validate(
            {**self._snapshot.model_dump(), **patch}
        )
        self._snapshot = snapshot
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception as exc:
                logger.error(f"Error in session observer {observer!r}: {exc}")
        return snapshot

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register *observer*; returns a callable that unregisters it."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    @contextmanager
    def busy(self, **patch: Any) -> Iterator[SessionSnapshot]:
        """Mark the session pending for the duration of the block.

        *patch* is applied together with ``pending=True`` on entry.
        Operations may nest (a renewal running inside a sign-out);
        ``pending`` goes back to ``False`` when the outermost one exits,
        whether it returned or raised.
        """
        self._busy += 1
        try:
            snapshot = self.update(pending=True, **patch)
        except Exception:
            self._busy -= 1
            raise
        try:
            yield snapshot
        finally:
            self._busy -= 1
            if self._busy == 0:
                self.update(pending=False)
