"""Crash-safe replacement of the database document."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path


def _fsync_directory(path: Path) -> None:
    # Some platforms refuse fsync on a directory descriptor; the rename is
    # still atomic there, only its durability is weaker.
    try:
        fd = os.open(str(path), os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def atomic_write_text(path: Path, text: str) -> None:
    """Replace *path* with *text* (UTF-8), creating parent directories as needed.

    The text goes to a hidden temp file beside *path*, is fsynced, then
    renamed over *path*.  Readers and a crash at any point see either the
    previous document or the new one.  On failure the temp file is removed
    and the exception propagates.
    """
    parent = path.parent
    parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(dir=parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
    _fsync_directory(parent)
