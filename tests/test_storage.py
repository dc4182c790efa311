"""Tests for storage layer -- paths, credential store, settings."""
import json
from unittest.mock import patch

import pytest

from authsession.errors import StorageError
from authsession.storage.tokens import (
    ACCESS_TOKEN_KEY,
    REFRESH_TOKEN_KEY,
    FileCredentialStore,
    MemoryCredentialStore,
    delete_tokens,
    save_tokens,
)


# =========================================================================
# atomic_write
# =========================================================================


class TestAtomicWrite:
    def test_atomic_write_text(self, tmp_path):
        from authsession.storage.paths import atomic_write
        target = tmp_path / "test.txt"
        atomic_write(target, "hello world")
        assert target.read_text() == "hello world"

    def test_atomic_write_bytes_are_decoded(self, tmp_path):
        from authsession.storage.paths import atomic_write
        target = tmp_path / "decoded.txt"
        atomic_write(target, b"bytes as text")
        assert target.read_text() == "bytes as text"

    def test_atomic_write_creates_parents(self, tmp_path):
        from authsession.storage.paths import atomic_write
        target = tmp_path / "a" / "b" / "deep.txt"
        atomic_write(target, "deep")
        assert target.read_text() == "deep"

    def test_atomic_write_no_orphaned_tmp(self, tmp_path):
        from authsession.storage.paths import atomic_write
        target = tmp_path / "clean.txt"
        atomic_write(target, "data")
        assert not target.with_suffix(".txt.tmp").exists()

    def test_atomic_write_failure_raises_and_cleans_up(self, tmp_path):
        from authsession.storage import paths
        target = tmp_path / "fail.txt"
        with patch.object(paths.os, "replace", side_effect=OSError("read-only")):
            with pytest.raises(OSError):
                paths.atomic_write(target, "data")
        assert not target.exists()
        assert not target.with_suffix(".txt.tmp").exists()


# =========================================================================
# FileCredentialStore
# =========================================================================


class TestFileCredentialStore:
    async def test_save_and_get(self, tmp_path):
        store = FileCredentialStore(tmp_path / "credentials.json")
        await store.save(ACCESS_TOKEN_KEY, "A1")
        await store.save(REFRESH_TOKEN_KEY, "R1")
        assert await store.get(ACCESS_TOKEN_KEY) == "A1"
        assert await store.get(REFRESH_TOKEN_KEY) == "R1"

    async def test_values_are_plain_strings_on_disk(self, tmp_path):
        path = tmp_path / "credentials.json"
        store = FileCredentialStore(path)
        await store.save(ACCESS_TOKEN_KEY, "A1")
        assert json.loads(path.read_text()) == {"access-token": "A1"}

    async def test_survives_new_instance(self, tmp_path):
        path = tmp_path / "credentials.json"
        await FileCredentialStore(path).save(REFRESH_TOKEN_KEY, "R1")
        assert await FileCredentialStore(path).get(REFRESH_TOKEN_KEY) == "R1"

    async def test_missing_file_returns_none(self, tmp_path):
        store = FileCredentialStore(tmp_path / "nonexistent.json")
        assert await store.get(ACCESS_TOKEN_KEY) is None

    async def test_remove(self, tmp_path):
        store = FileCredentialStore(tmp_path / "credentials.json")
        await store.save(ACCESS_TOKEN_KEY, "A1")
        await store.save(REFRESH_TOKEN_KEY, "R1")
        await store.remove(ACCESS_TOKEN_KEY)
        assert await store.get(ACCESS_TOKEN_KEY) is None
        assert await store.get(REFRESH_TOKEN_KEY) == "R1"

    async def test_remove_missing_key_is_noop(self, tmp_path):
        path = tmp_path / "credentials.json"
        store = FileCredentialStore(path)
        await store.remove(ACCESS_TOKEN_KEY)
        assert not path.exists()

    async def test_corrupt_file_raises_storage_error(self, tmp_path):
        """Corrupt data is reported, not silently treated as signed out."""
        path = tmp_path / "credentials.json"
        path.write_text("not valid json {{{}}", encoding="utf-8")
        with pytest.raises(StorageError):
            await FileCredentialStore(path).get(ACCESS_TOKEN_KEY)

    async def test_non_object_file_raises_storage_error(self, tmp_path):
        path = tmp_path / "credentials.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(StorageError):
            await FileCredentialStore(path).get(ACCESS_TOKEN_KEY)

    async def test_write_failure_raises_storage_error(self, tmp_path):
        from authsession.storage import tokens as token_mod
        store = FileCredentialStore(tmp_path / "credentials.json")
        with patch.object(token_mod, "atomic_write", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                await store.save(ACCESS_TOKEN_KEY, "A1")


# =========================================================================
# Token helpers
# =========================================================================


class TestTokenHelpers:
    async def test_save_tokens(self):
        store = MemoryCredentialStore()
        await save_tokens(store, "A1", "R1")
        assert store.data == {"access-token": "A1", "refresh-token": "R1"}

    async def test_delete_tokens(self):
        store = MemoryCredentialStore({"access-token": "A1", "refresh-token": "R1", "other": "x"})
        await delete_tokens(store)
        assert store.data == {"other": "x"}

    async def test_delete_tokens_is_best_effort(self):
        """A failure on one key does not stop the other from being removed."""
        store = MemoryCredentialStore({"access-token": "A1", "refresh-token": "R1"})
        real_remove = store.remove

        async def flaky_remove(key):
            if key == REFRESH_TOKEN_KEY:
                raise StorageError("locked")
            await real_remove(key)

        store.remove = flaky_remove
        await delete_tokens(store)  # should not raise
        assert store.data == {"refresh-token": "R1"}


# =========================================================================
# AppSettings
# =========================================================================


class TestAppSettings:
    def test_default_settings(self, tmp_path):
        from authsession.storage.config import AppSettings
        settings_file = tmp_path / "settings.json"

        with patch("authsession.storage.config.SETTINGS_FILE", settings_file):
            settings = AppSettings.load()
            assert settings["debug"] is False
            assert settings["refresh_path"] == "/auth/refresh-token"
            assert settings["timeout"] == 30.0

    def test_save_and_load(self, tmp_path):
        from authsession.storage.config import AppSettings
        settings_file = tmp_path / "settings.json"

        with patch("authsession.storage.config.SETTINGS_FILE", settings_file):
            AppSettings.set("server_url", "https://api.example.com")
            assert AppSettings.get("server_url") == "https://api.example.com"
            assert AppSettings.load()["sign_in_path"] == "/auth/sign-in"

    def test_unknown_key_returns_default(self, tmp_path):
        from authsession.storage.config import AppSettings
        settings_file = tmp_path / "settings.json"

        with patch("authsession.storage.config.SETTINGS_FILE", settings_file):
            assert AppSettings.get("nonexistent") is None
            assert AppSettings.get("nonexistent", 42) == 42

    def test_corrupt_settings_returns_defaults(self, tmp_path):
        from authsession.storage.config import AppSettings
        settings_file = tmp_path / "settings.json"
        settings_file.write_text("{{invalid json")

        with patch("authsession.storage.config.SETTINGS_FILE", settings_file):
            s = AppSettings.load()
            assert s["debug"] is False
