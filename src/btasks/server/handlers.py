"""Endpoint handlers.

Every handler takes the Store and the raw request body, parses and validates
the body *before* taking the store lock, then does its lookup, mutation,
flush and response building inside a single ``store.read()`` or
``store.write()`` block.
"""

from __future__ import annotations

import json
from typing import Any

from btasks.core.errors import BadRequest
from btasks.core.models import STATE_NAMES, State
from btasks.storage.store import Store

OK_RESPONSE: dict = {"status": 200, "description": "OK"}

DEPENDENCY_ACTIONS = frozenset({"Add", "Remove"})


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------


def parse_body(raw: bytes) -> dict:
    """Decode a request body as a JSON object."""
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError, RecursionError) as exc:
        raise BadRequest(f"Invalid JSON in request body: {exc}") from None
    if not isinstance(body, dict):
        raise BadRequest("Request body must be a JSON object")
    return body


def _field(body: dict, key: str) -> Any:
    if key not in body:
        raise BadRequest(f"Missing field '{key}'")
    return body[key]


def _id_field(body: dict, key: str) -> int:
    value = _field(body, key)
    # bool is an int subclass; JSON true/false is not an id.
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise BadRequest(f"'{key}' must be a non-negative integer")
    return value


def _str_field(body: dict, key: str) -> str:
    value = _field(body, key)
    if not isinstance(value, str):
        raise BadRequest(f"'{key}' must be a string")
    return value


def _state_field(body: dict, key: str) -> State:
    value = _field(body, key)
    if not isinstance(value, str) or value not in STATE_NAMES:
        valid = ", ".join(STATE_NAMES)
        raise BadRequest(f"Invalid state: {value!r}. Valid: {valid}")
    return State(value)


def _action_field(body: dict, key: str) -> str:
    value = _field(body, key)
    if not isinstance(value, str) or value not in DEPENDENCY_ACTIONS:
        raise BadRequest(f"Invalid action: {value!r}. Valid: Add, Remove")
    return value


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


def list_projects(store: Store, raw: bytes) -> dict:  # noqa: ARG001
    """GET / -- id and name of every project, ascending by id."""
    with store.read() as db:
        return {"projects": [p.summary() for p in db.projects]}


def project_details(store: Store, raw: bytes) -> dict:
    """GET /project"""
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    with store.read() as db:
        return db.find_project_by_id(project_id).details()


def task_details(store: Store, raw: bytes) -> dict:
    """GET /task -- the full task document, log and dependencies included."""
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    task_id = _id_field(body, "task_id")
    with store.read() as db:
        return db.find_project_by_id(project_id).find_task_by_id(task_id).to_dict()


# ---------------------------------------------------------------------------
# Project mutations
# ---------------------------------------------------------------------------


def create_project(store: Store, raw: bytes) -> dict:
    body = parse_body(raw)
    name = _str_field(body, "name")
    description = _str_field(body, "description")
    with store.write() as db:
        project = db.create_project(name, description)
        return {"project_id": project.id}


def delete_project(store: Store, raw: bytes) -> dict:
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    with store.write() as db:
        db.remove_project(project_id)
    return dict(OK_RESPONSE)


def set_project_name(store: Store, raw: bytes) -> dict:
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    name = _str_field(body, "name")
    with store.write() as db:
        db.find_project_by_id(project_id).name = name
    return dict(OK_RESPONSE)


def set_project_description(store: Store, raw: bytes) -> dict:
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    description = _str_field(body, "description")
    with store.write() as db:
        db.find_project_by_id(project_id).description = description
    return dict(OK_RESPONSE)


# ---------------------------------------------------------------------------
# Task mutations
# ---------------------------------------------------------------------------


def create_task(store: Store, raw: bytes) -> dict:
    """POST /task/create -- new task starts in Todo with an empty log."""
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    title = _str_field(body, "title")
    description = _str_field(body, "description")
    with store.write() as db:
        task = db.find_project_by_id(project_id).create_task(title, description)
        return {"task_id": task.id}


def delete_task(store: Store, raw: bytes) -> dict:
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    task_id = _id_field(body, "task_id")
    with store.write() as db:
        db.find_project_by_id(project_id).remove_task(task_id)
    return dict(OK_RESPONSE)


def set_task_title(store: Store, raw: bytes) -> dict:
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    task_id = _id_field(body, "task_id")
    title = _str_field(body, "title")
    with store.write() as db:
        db.find_project_by_id(project_id).find_task_by_id(task_id).title = title
    return dict(OK_RESPONSE)


def set_task_description(store: Store, raw: bytes) -> dict:
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    task_id = _id_field(body, "task_id")
    description = _str_field(body, "description")
    with store.write() as db:
        db.find_project_by_id(project_id).find_task_by_id(task_id).description = description
    return dict(OK_RESPONSE)


def set_task_state(store: Store, raw: bytes) -> dict:
    """POST /task/state -- any state may follow any state; every call is logged."""
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    task_id = _id_field(body, "task_id")
    new_state = _state_field(body, "new_state")
    with store.write() as db:
        db.find_project_by_id(project_id).find_task_by_id(task_id).set_state(new_state)
    return dict(OK_RESPONSE)


def add_task_comment(store: Store, raw: bytes) -> dict:
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    task_id = _id_field(body, "task_id")
    comment = _str_field(body, "comment")
    with store.write() as db:
        db.find_project_by_id(project_id).find_task_by_id(task_id).add_comment(comment)
    return dict(OK_RESPONSE)


def update_task_dependency(store: Store, raw: bytes) -> dict:
    """POST /task/dependency -- Add is idempotent, Remove of a missing id is a no-op.

    The dependency id is not checked against the project's tasks.
    """
    body = parse_body(raw)
    project_id = _id_field(body, "project_id")
    task_id = _id_field(body, "task_id")
    dependency = _id_field(body, "dependency")
    action = _action_field(body, "action")
    with store.write() as db:
        task = db.find_project_by_id(project_id).find_task_by_id(task_id)
        if action == "Add":
            task.add_dependency(dependency)
        else:
            task.remove_dependency(dependency)
    return dict(OK_RESPONSE)
