"""Shared test fixtures."""

from __future__ import annotations

import socket
import threading
from pathlib import Path

import pytest

from btasks.server.http import create_server
from btasks.storage.store import Store


def _get_free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    """Database location inside a data dir that does not exist yet."""
    return tmp_path / "data" / "btasks" / "database.json"


@pytest.fixture()
def store(db_path: Path) -> Store:
    return Store.open(db_path)


@pytest.fixture()
def free_port() -> int:
    return _get_free_port()


@pytest.fixture()
def api_server(store: Store, free_port: int):
    """Start a server on a random port, yield (base_url, store)."""
    server = create_server(store, "127.0.0.1", free_port)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    yield f"http://127.0.0.1:{free_port}", store

    server.shutdown()
    server.server_close()
