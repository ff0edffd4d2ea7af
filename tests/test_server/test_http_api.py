"""End-to-end tests against a live server over HTTP."""

from __future__ import annotations

import json
import socket
import threading
from urllib.error import HTTPError
from urllib.request import Request, urlopen

import pytest

from btasks.server import handlers
from btasks.server.http import MAX_REQUEST_BODY_BYTES, create_server
from btasks.storage.store import Store


def _request(
    base_url: str, method: str, path: str, data: object = None
) -> tuple[int, dict | None, str]:
    """Send a request and return (status, parsed_body_or_None, content_type)."""
    payload = None if data is None else json.dumps(data).encode("utf-8")
    req = Request(f"{base_url}{path}", data=payload, method=method)
    try:
        with urlopen(req) as resp:
            status, raw, ctype = resp.status, resp.read(), resp.headers.get("Content-Type", "")
    except HTTPError as exc:
        status, raw, ctype = exc.code, exc.read(), exc.headers.get("Content-Type", "")
    return status, (json.loads(raw) if raw else None), ctype


def _get(base_url: str, path: str, data: object = None):
    status, body, _ = _request(base_url, "GET", path, data)
    return status, body


def _post(base_url: str, path: str, data: object):
    status, body, _ = _request(base_url, "POST", path, data)
    return status, body


OK = {"status": 200, "description": "OK"}


class TestScenario:
    """The walk-through from an empty database to a restart."""

    def test_full_walkthrough(self, api_server, db_path) -> None:
        base_url, store = api_server

        # 1. create a project and list it
        assert _post(base_url, "/project/create", {"name": "A", "description": "d"}) == (
            200,
            {"project_id": 0},
        )
        assert _get(base_url, "/") == (200, {"projects": [{"id": 0, "name": "A"}]})

        # 2. two tasks, listed in id order
        assert _post(
            base_url, "/task/create", {"project_id": 0, "title": "t1", "description": ""}
        ) == (200, {"task_id": 0})
        assert _post(
            base_url, "/task/create", {"project_id": 0, "title": "t2", "description": ""}
        ) == (200, {"task_id": 1})
        status, project = _get(base_url, "/project", {"project_id": 0})
        assert status == 200
        assert project == {
            "id": 0,
            "name": "A",
            "description": "d",
            "tasks": [
                {"id": 0, "title": "t1", "state": "Todo"},
                {"id": 1, "title": "t2", "state": "Todo"},
            ],
        }

        # 3. state change is logged
        assert _post(
            base_url, "/task/state", {"project_id": 0, "task_id": 0, "new_state": "Done"}
        ) == (200, OK)
        status, task = _get(base_url, "/task", {"project_id": 0, "task_id": 0})
        assert status == 200
        assert task["state"] == "Done"
        assert len(task["log"]) == 1
        assert task["log"][0]["entry_type"] == {"StateChangedTo": "Done"}

        # 4. deleted ids are not reused
        assert _post(base_url, "/task/delete", {"project_id": 0, "task_id": 0}) == (200, OK)
        assert _post(
            base_url, "/task/create", {"project_id": 0, "title": "t3", "description": ""}
        ) == (200, {"task_id": 2})

        # 5. dependency add is idempotent
        dep = {"project_id": 0, "task_id": 1, "dependency": 2, "action": "Add"}
        assert _post(base_url, "/task/dependency", dep) == (200, OK)
        assert _post(base_url, "/task/dependency", dep) == (200, OK)
        _, task = _get(base_url, "/task", {"project_id": 0, "task_id": 1})
        assert task["dependencies"] == [2]
        assert task["log"] == []

        # 6. a fresh store on the same file holds the same data
        assert Store.open(db_path).database == store.database


class TestRestart:
    def test_new_server_sees_flushed_state(self, db_path, free_port) -> None:
        first = Store.open(db_path)
        handlers.create_project(first, b'{"name": "kept", "description": ""}')

        server = create_server(Store.open(db_path), "127.0.0.1", free_port)
        thread = threading.Thread(target=server.serve_forever, daemon=True)
        thread.start()
        try:
            base_url = f"http://127.0.0.1:{free_port}"
            assert _get(base_url, "/") == (200, {"projects": [{"id": 0, "name": "kept"}]})
            assert _post(base_url, "/project/create", {"name": "next", "description": ""}) == (
                200,
                {"project_id": 1},
            )
        finally:
            server.shutdown()
            server.server_close()


class TestTransport:
    def test_responses_are_json(self, api_server) -> None:
        base_url, _ = api_server
        status, body, ctype = _request(base_url, "GET", "/")
        assert status == 200
        assert body == {"projects": []}
        assert ctype.startswith("application/json")

    def test_unknown_route_is_empty_404(self, api_server) -> None:
        base_url, _ = api_server
        assert _request(base_url, "GET", "/projects") == (404, None, "")

    @pytest.mark.parametrize("method", ["PUT", "DELETE", "HEAD", "OPTIONS"])
    def test_unsupported_method_is_404(self, api_server, method: str) -> None:
        base_url, _ = api_server
        status, body, _ = _request(base_url, method, "/")
        assert (status, body) == (404, None)

    def test_unknown_method_is_empty_404(self, api_server, free_port) -> None:
        head = "BREW / HTTP/1.1\r\nHost: 127.0.0.1\r\n\r\n"
        with socket.create_connection(("127.0.0.1", free_port), timeout=5) as sock:
            sock.sendall(head.encode("ascii"))
            chunks = []
            while chunk := sock.recv(4096):
                chunks.append(chunk)
        response = b"".join(chunks).decode("utf-8")

        assert response.startswith("HTTP/1.1 404")
        assert response.endswith("\r\n\r\n")
        assert "Content-Length: 0" in response

    def test_query_string_does_not_affect_routing(self, api_server) -> None:
        base_url, _ = api_server
        assert _get(base_url, "/?verbose=1") == (200, {"projects": []})

    def test_not_found_envelope(self, api_server) -> None:
        base_url, _ = api_server
        status, body = _get(base_url, "/project", {"project_id": 3})
        assert status == 404
        assert body == {"status": 404, "description": "Project 3 not found"}

    def test_bad_request_envelope(self, api_server) -> None:
        base_url, _ = api_server
        status, body = _post(base_url, "/project/create", {"name": "x"})
        assert status == 400
        assert body == {"status": 400, "description": "Missing field 'description'"}

    def test_oversized_body_is_rejected_before_reading(self, api_server, free_port) -> None:
        _, store = api_server
        head = (
            "POST /project/create HTTP/1.1\r\n"
            "Host: 127.0.0.1\r\n"
            f"Content-Length: {MAX_REQUEST_BODY_BYTES + 1}\r\n"
            "\r\n"
        )
        with socket.create_connection(("127.0.0.1", free_port), timeout=5) as sock:
            sock.sendall(head.encode("ascii"))
            chunks = []
            while chunk := sock.recv(4096):
                chunks.append(chunk)
        response = b"".join(chunks).decode("utf-8")

        assert response.startswith("HTTP/1.1 413")
        assert json.loads(response.split("\r\n\r\n", 1)[1])["status"] == 413
        assert store.database.projects == []
