"""Durable key/value storage for the access and refresh credentials.

Both credentials are kept as plain strings under the keys
:data:`ACCESS_TOKEN_KEY` and :data:`REFRESH_TOKEN_KEY`.  The default
:class:`FileCredentialStore` keeps them in a small JSON object in the
platform config directory (see :data:`paths.CREDENTIALS_FILE`); every
write goes through :func:`atomic_write` to avoid corrupted files on crash.

All operations are coroutines and may raise :class:`StorageError`.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Protocol

from loguru import logger

from ..errors import StorageError
from .paths import CREDENTIALS_FILE, atomic_write

ACCESS_TOKEN_KEY = "access-token"
REFRESH_TOKEN_KEY = "refresh-token"


class CredentialStore(Protocol):
    """Durable ``key -> string`` persistence that survives restarts."""

    async def get(self, key: str) -> str | None: ...

    async def save(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


class FileCredentialStore:
    """JSON-file backed :class:`CredentialStore`.

    Parameters
    ----------
    path:
        File holding the credentials.  Defaults to
        :data:`~authsession.storage.paths.CREDENTIALS_FILE`.

    File I/O runs in a worker thread; a lock serialises the
    read-modify-write cycle of :meth:`save` and :meth:`remove`.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = path or CREDENTIALS_FILE
        self._lock = asyncio.Lock()

    # -- public interface ---------------------------------------------------

    async def get(self, key: str) -> str | None:
        data = await asyncio.to_thread(self._read)
        value = data.get(key)
        return value if isinstance(value, str) else None

    async def save(self, key: str, value: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            data[key] = value
            await asyncio.to_thread(self._write, data)
        logger.debug(f"Stored {key} in {self.path}")

    async def remove(self, key: str) -> None:
        async with self._lock:
            data = await asyncio.to_thread(self._read)
            if key not in data:
                return
            del data[key]
            await asyncio.to_thread(self._write, data)
        logger.debug(f"Removed {key} from {self.path}")

    # -- internals ----------------------------------------------------------

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StorageError(f"Failed to read credentials from {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"Credentials file {self.path} is not a JSON object")
        return data

    def _write(self, data: dict[str, str]) -> None:
        try:
            atomic_write(self.path, json.dumps(data, indent=2))
        except OSError as exc:
            raise StorageError(f"Failed to write credentials to {self.path}: {exc}") from exc


class MemoryCredentialStore:
    """In-process :class:`CredentialStore`, mainly for tests and embedding."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def save(self, key: str, value: str) -> None:
        self.data[key] = value

    async def remove(self, key: str) -> None:
        self.data.pop(key, None)


async def save_tokens(store: CredentialStore, access: str, refresh: str) -> None:
    """Persist both credentials.  The access token is written first."""
    await store.save(ACCESS_TOKEN_KEY, access)
    await store.save(REFRESH_TOKEN_KEY, refresh)


async def delete_tokens(store: CredentialStore) -> None:
    """Best-effort removal of both credentials.

    Each key is removed independently; a :class:`StorageError` is logged
    and does not stop the other key from being removed.
    """
    for key in (REFRESH_TOKEN_KEY, ACCESS_TOKEN_KEY):
        try:
            await store.remove(key)
        except StorageError as exc:
            logger.error(f"Failed to delete {key}: {exc}")
