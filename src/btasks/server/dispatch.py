"""Route table and error envelope."""

from __future__ import annotations

import logging
from collections.abc import Callable

from btasks.core.errors import BTasksError, ServerInternal
from btasks.server import handlers
from btasks.storage.store import Store

logger = logging.getLogger(__name__)

Handler = Callable[[Store, bytes], dict]

ROUTES: dict[tuple[str, str], Handler] = {
    ("GET", "/"): handlers.list_projects,
    ("GET", "/project"): handlers.project_details,
    ("GET", "/task"): handlers.task_details,
    ("POST", "/project/create"): handlers.create_project,
    ("POST", "/project/delete"): handlers.delete_project,
    ("POST", "/project/name"): handlers.set_project_name,
    ("POST", "/project/description"): handlers.set_project_description,
    ("POST", "/task/create"): handlers.create_task,
    ("POST", "/task/delete"): handlers.delete_task,
    ("POST", "/task/title"): handlers.set_task_title,
    ("POST", "/task/description"): handlers.set_task_description,
    ("POST", "/task/state"): handlers.set_task_state,
    ("POST", "/task/comment"): handlers.add_task_comment,
    ("POST", "/task/dependency"): handlers.update_task_dependency,
}


def error_body(status: int, description: str) -> dict:
    return {"status": status, "description": description}


def dispatch(store: Store, method: str, path: str, raw: bytes) -> tuple[int, dict | None]:
    """Run the handler for *method* and *path*.

    Returns ``(status, body)``.  ``body`` is ``None`` for an unknown route,
    which is answered with an empty 404.
    """
    handler = ROUTES.get((method, path))
    if handler is None:
        return 404, None

    try:
        return 200, handler(store, raw)
    except BTasksError as exc:
        logger.debug("%s %s -> %d: %s", method, path, exc.status, exc)
        return exc.status, error_body(exc.status, str(exc))
    except OSError as exc:
        # Flush failed; the mutation was rolled back and is not durable.
        logger.error("%s %s: failed to write database: %s", method, path, exc)
        return 500, error_body(500, f"Failed to write database: {exc}")
    except Exception as exc:
        logger.exception("%s %s: unexpected error", method, path)
        err = ServerInternal(str(exc) or type(exc).__name__)
        return err.status, error_body(err.status, str(err))
