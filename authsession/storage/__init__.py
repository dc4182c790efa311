"""Durable storage: credential store, settings and file locations."""

from authsession.storage.tokens import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    CredentialStore,
    FileCredentialStore,
    MemoryCredentialStore,
)

__all__ = [
    "ACCESS_TOKEN_KEY",
    "REFRESH_TOKEN_KEY",
    "CredentialStore",
    "FileCredentialStore",
    "MemoryCredentialStore",
]
