"""The Store: sole owner of the in-memory Database and its backing file."""

from __future__ import annotations

import contextlib
import logging
import shutil
import threading
from collections.abc import Generator
from pathlib import Path

from btasks.core.config import CORRUPT_BACKUP_FILENAME
from btasks.core.models import Database, serialize_database, deserialize_database
from btasks.storage.fs import atomic_write_text

logger = logging.getLogger(__name__)

# Everything Database.from_dict / json.loads can raise on a bad document.
_DECODE_ERRORS = (ValueError, KeyError, TypeError, OverflowError, RecursionError)


def load_database(path: Path) -> Database | None:
    """Read and decode the database at *path*.

    Returns ``None`` when the file does not exist.  Raises ``OSError`` if it
    cannot be read and one of the decode errors if it is not a valid document.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    return deserialize_database(text)


class Store:
    """Database + backing path + the single lock that guards both.

    Handlers never touch the database directly; they enter :meth:`read` or
    :meth:`write`, which hold the lock for the whole block.  A ``write`` block
    flushes to disk before releasing the lock, and rolls the in-memory
    database back if the block or the flush raises.
    """

    def __init__(self, path: Path, database: Database | None = None) -> None:
        self.path = path
        self.database = database if database is not None else Database()
        self._lock = threading.Lock()

    @classmethod
    def open(cls, path: Path) -> Store:
        """Load the database at *path*, or start empty if it is missing or unreadable.

        An unreadable file is left in place (it is only replaced by the first
        successful flush) and a copy is saved next to it for recovery.
        """
        try:
            database = load_database(path)
        except (OSError, *_DECODE_ERRORS) as exc:
            backup = path.with_name(CORRUPT_BACKUP_FILENAME)
            try:
                shutil.copy2(path, backup)
            except OSError as copy_exc:
                logger.warning(
                    "Could not read database %s (%s); starting empty. "
                    "Backup copy failed: %s",
                    path,
                    exc,
                    copy_exc,
                )
            else:
                logger.warning(
                    "Could not read database %s (%s); starting empty. "
                    "A copy was saved to %s",
                    path,
                    exc,
                    backup,
                )
            return cls(path)

        if database is None:
            logger.info("No database at %s; starting empty", path)
        else:
            logger.info("Loaded %d project(s) from %s", len(database.projects), path)
        return cls(path, database)

    def flush(self) -> None:
        """Write the whole database to disk.  Caller must hold the lock."""
        atomic_write_text(self.path, serialize_database(self.database))
        logger.debug("Flushed database to %s", self.path)

    @contextlib.contextmanager
    def read(self) -> Generator[Database, None, None]:
        """Hold the lock and yield the database for read-only use."""
        with self._lock:
            yield self.database

    @contextlib.contextmanager
    def write(self) -> Generator[Database, None, None]:
        """Hold the lock, yield the database for mutation, then flush.

        If the block or the flush raises, the database is restored to its
        state before the block and the exception propagates.
        """
        with self._lock:
            before = self.database.to_dict()
            try:
                yield self.database
                self.flush()
            except BaseException:
                self.database = Database.from_dict(before)
                raise
