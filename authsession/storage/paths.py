"""Cross-platform path management for authsession.

Every persistent file location is defined here so that the credential
store, the settings loader and the CLI agree on a single canonical set
of paths.  Directory creation is deferred to helpers rather than
happening at import time, keeping imports side-effect-free.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Union

from platformdirs import user_config_dir

# ---------------------------------------------------------------------------
# Application identifier
# ---------------------------------------------------------------------------

APP_NAME = "authsession"

# ---------------------------------------------------------------------------
# Base directories
# ---------------------------------------------------------------------------

_config_dir = Path(user_config_dir(APP_NAME))

CONFIG_DIR: Path = _config_dir

# ---------------------------------------------------------------------------
# Standard file locations
# ---------------------------------------------------------------------------

CREDENTIALS_FILE = _config_dir / "credentials.json"
SETTINGS_FILE = _config_dir / "settings.json"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def ensure_parents(path: Path) -> Path:
    """Create all parent directories for *path* if they do not exist.

    Returns *path* unchanged so the call can be used inline.  Failures
    surface later, when the file itself is written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError:
        pass
    return path


def atomic_write(path: Path, data: Union[str, bytes]) -> None:
    """Write *data* to *path* atomically (write-to-tmp then replace).

    Bytes are decoded as UTF-8.  The temporary file is removed if the
    replace step fails, and the original :class:`OSError` is re-raised so
    callers can report the storage failure.
    """
    tmp = path.with_suffix(path.suffix + ".tmp")
    ensure_parents(tmp)

    text = data.decode() if isinstance(data, bytes) else data
    with tmp.open("w", encoding="utf-8") as fh:
        fh.write(text)

    try:
        os.replace(tmp, path)
    except OSError:
        try:
            if tmp.exists():
                tmp.unlink()
        except OSError:
            pass
        raise
