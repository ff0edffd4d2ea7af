"""Runtime configuration: where the database lives and what we bind to."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import click

APP_NAME = "btasks"
DATABASE_FILENAME = "database.json"
CORRUPT_BACKUP_FILENAME = "database.corrupt.json"
DATA_DIR_ENV = "BTASKS_DATA_DIR"
DEFAULT_HOST = "127.0.0.1"


def user_data_dir() -> Path:
    """Return the platform's per-user data directory.

    Linux and other Unixes follow XDG (``$XDG_DATA_HOME`` or
    ``~/.local/share``).  macOS and Windows use the application directory
    click resolves for them, minus the app name.
    """
    if sys.platform.startswith("win") or sys.platform == "darwin":
        return Path(click.get_app_dir(APP_NAME, roaming=True)).parent
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg)
    return Path.home() / ".local" / "share"


def resolve_data_dir(override: str | Path | None = None) -> Path:
    """Directory holding ``database.json``.

    Precedence: explicit *override* > ``BTASKS_DATA_DIR`` > platform default
    (``<user-data-dir>/btasks``).  Empty values are treated as unset.
    """
    if override:
        return Path(override).expanduser()
    env_dir = os.environ.get(DATA_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()
    return user_data_dir() / APP_NAME


def database_path(data_dir: Path) -> Path:
    return data_dir / DATABASE_FILENAME
