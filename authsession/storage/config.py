"""Application settings persisted as JSON in the platform config directory.

Settings are a flat dict.  Missing keys fall back to :data:`DEFAULTS`,
and a missing or corrupt file yields the defaults rather than an error.
"""

from __future__ import annotations

import json
from typing import Any

from loguru import logger

from .paths import SETTINGS_FILE, atomic_write

DEFAULTS: dict[str, Any] = {
    "server_url": "http://localhost:8000",
    "timeout": 30.0,
    "debug": False,
    "sign_in_path": "/auth/sign-in",
    "sign_out_path": "/auth/sign-out",
    "refresh_path": "/auth/refresh-token",
    "profile_path": "/auth/profile",
    "user_agent": "authsession",
}


class AppSettings:
    """Namespace for loading and saving the settings file."""

    @staticmethod
    def load() -> dict[str, Any]:
        """Return the merged settings (defaults overlaid with the file)."""
        settings = dict(DEFAULTS)
        if not SETTINGS_FILE.exists():
            return settings
        try:
            stored = json.loads(SETTINGS_FILE.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning(f"Failed to load settings from {SETTINGS_FILE}: {exc}")
            return settings
        if isinstance(stored, dict):
            settings.update(stored)
        return settings

    @staticmethod
    def save(settings: dict[str, Any]) -> None:
        atomic_write(SETTINGS_FILE, json.dumps(settings, indent=2))
        logger.debug(f"Settings saved to {SETTINGS_FILE}")

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        return cls.load().get(key, default)

    @classmethod
    def set(cls, key: str, value: Any) -> None:
        settings = cls.load()
        settings[key] = value
        cls.save(settings)
