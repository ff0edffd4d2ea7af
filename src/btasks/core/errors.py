"""Error kinds raised by the domain, storage, and request layers."""

from __future__ import annotations


class BTasksError(Exception):
    """Base class for errors that are reported back to HTTP clients.

    ``status`` is the HTTP status code the dispatcher answers with.
    """

    status: int = 500


class BadRequest(BTasksError):
    """Request body is not valid JSON, lacks a field, or has a bad value."""

    status = 400


class NotFound(BTasksError):
    """A project or task id does not match any record."""

    status = 404


class ServerInternal(BTasksError):
    """Anything unexpected that is not the client's fault."""

    status = 500


class PayloadTooLarge(BTasksError):
    """Request body exceeds the size the server is willing to read."""

    status = 413
