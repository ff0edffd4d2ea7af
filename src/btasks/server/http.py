"""HTTP shell: request handler class and threaded server factory."""

from __future__ import annotations

import json
import logging
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import urlsplit

from btasks.core.errors import BadRequest, BTasksError, PayloadTooLarge
from btasks.server.dispatch import dispatch, error_body
from btasks.storage.store import Store

logger = logging.getLogger(__name__)

# Maximum request body size (1 MiB).
MAX_REQUEST_BODY_BYTES = 1_048_576


class TaskServer(ThreadingHTTPServer):
    """Thread-per-connection server that waits for in-flight requests on close."""

    daemon_threads = False
    block_on_close = True

    def __init__(self, address: tuple[str, int], handler_cls: type, store: Store) -> None:
        self.store = store
        super().__init__(address, handler_cls)


class TaskRequestHandler(BaseHTTPRequestHandler):
    server: TaskServer
    protocol_version = "HTTP/1.1"

    def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
        logger.debug("%s - %s", self.address_string(), format % args)

    def do_GET(self) -> None:  # noqa: N802
        self._handle("GET")

    def do_POST(self) -> None:  # noqa: N802
        self._handle("POST")

    def __getattr__(self, name: str) -> Any:
        # Every other method (HEAD, OPTIONS, PUT, ...) is an unknown route, not a 501.
        if name.startswith("do_"):
            method = name[len("do_") :]
            return lambda: self._handle(method)
        raise AttributeError(name)

    def _handle(self, method: str) -> None:
        # One request per connection so shutdown never waits on idle keep-alives.
        self.close_connection = True
        path = urlsplit(self.path).path
        try:
            raw = self._read_request_body()
        except BTasksError as exc:
            self._send_json(exc.status, error_body(exc.status, str(exc)))
            return

        status, body = dispatch(self.server.store, method, path, raw)
        if body is None:
            self._send_empty(status)
        else:
            self._send_json(status, body)

    def _read_request_body(self) -> bytes:
        header = self.headers.get("Content-Length")
        if header is None:
            return b""
        try:
            length = int(header)
        except ValueError:
            raise BadRequest(f"Invalid Content-Length: {header!r}") from None
        if length < 0:
            raise BadRequest(f"Invalid Content-Length: {header!r}")
        if length > MAX_REQUEST_BODY_BYTES:
            raise PayloadTooLarge(f"Request body exceeds {MAX_REQUEST_BODY_BYTES} bytes")
        return self.rfile.read(length)

    def _send_json(self, status: int, body: dict) -> None:
        data = json.dumps(body).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Connection", "close")
        self.send_header("Content-Length", str(len(data)))
        self.end_headers()
        self.wfile.write(data)

    def _send_empty(self, status: int) -> None:
        self.send_response(status)
        self.send_header("Connection", "close")
        self.send_header("Content-Length", "0")
        self.end_headers()


def create_server(store: Store, host: str, port: int) -> TaskServer:
    """Bind a server on *host*:*port* that serves requests against *store*.

    Raises ``OSError`` if the address cannot be bound.
    """
    return TaskServer((host, port), TaskRequestHandler, store)
