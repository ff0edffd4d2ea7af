"""Domain model: Database -> Project -> Task -> LogEntry, plus the JSON codec.

Projects and tasks live in lists kept sorted ascending by id.  New records
always take the next counter value and are appended at the tail, so the
lists never need re-sorting and lookups can use ``bisect``.
"""

from __future__ import annotations

import json
from bisect import bisect_left
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Union

from btasks.core.errors import NotFound


class State(Enum):
    """Lifecycle tag of a task.  Values are the on-disk tag names."""

    TODO = "Todo"
    IN_PROGRESS = "InProgress"
    BLOCKED = "Blocked"
    CANCELLED = "Cancelled"
    DONE = "Done"


STATE_NAMES: tuple[str, ...] = tuple(s.value for s in State)


# ---------------------------------------------------------------------------
# Log entries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Comment:
    text: str

    def to_dict(self) -> dict:
        return {"Comment": self.text}


@dataclass(frozen=True)
class StateChangedTo:
    state: State

    def to_dict(self) -> dict:
        return {"StateChangedTo": self.state.value}


LogEntryType = Union[Comment, StateChangedTo]


def decode_entry_type(raw: object) -> LogEntryType:
    """Decode an externally tagged entry type (``{"Comment": "..."}`` etc.)."""
    if not isinstance(raw, dict) or len(raw) != 1:
        raise ValueError(f"Invalid log entry type: {raw!r}")
    ((tag, payload),) = raw.items()
    if tag == "Comment":
        if not isinstance(payload, str):
            raise ValueError("Comment payload must be a string")
        return Comment(payload)
    if tag == "StateChangedTo":
        return StateChangedTo(State(payload))
    raise ValueError(f"Unknown log entry type: {tag!r}")


def utc_now() -> datetime:
    """Current UTC time truncated to whole seconds."""
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass
class LogEntry:
    timestamp: datetime
    entry_type: LogEntryType

    def to_dict(self) -> dict:
        return {
            "timestamp": int(self.timestamp.timestamp()),
            "entry_type": self.entry_type.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> LogEntry:
        ts = data["timestamp"]
        if not isinstance(ts, int) or isinstance(ts, bool):
            raise ValueError(f"timestamp must be integer seconds, got {ts!r}")
        return cls(
            timestamp=datetime.fromtimestamp(ts, timezone.utc),
            entry_type=decode_entry_type(data["entry_type"]),
        )


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def _require_id(value: object, what: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValueError(f"{what} must be a non-negative integer, got {value!r}")
    return value


def _require_str(value: object, what: str) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{what} must be a string, got {value!r}")
    return value


def _sorted_by_id(records: list, what: str) -> list:
    """Sort decoded records by id, rejecting duplicates."""
    records = sorted(records, key=lambda r: r.id)
    for prev, cur in zip(records, records[1:]):
        if prev.id == cur.id:
            raise ValueError(f"duplicate {what} id {cur.id}")
    return records


def _index_by_id(records: list, record_id: int) -> int | None:
    i = bisect_left(records, record_id, key=lambda r: r.id)
    if i < len(records) and records[i].id == record_id:
        return i
    return None


@dataclass
class Task:
    id: int
    title: str
    description: str = ""
    state: State = State.TODO
    dependencies: set[int] = field(default_factory=set)
    log: list[LogEntry] = field(default_factory=list)

    def new_log_entry(self, entry_type: LogEntryType) -> LogEntry:
        """Append a log entry stamped with the current time.

        Timestamps never go backwards within a log, even if the wall clock does.
        """
        ts = utc_now()
        if self.log and ts < self.log[-1].timestamp:
            ts = self.log[-1].timestamp
        entry = LogEntry(timestamp=ts, entry_type=entry_type)
        self.log.append(entry)
        return entry

    def set_state(self, new_state: State) -> None:
        # Log first, then assign; every call is logged even if unchanged.
        self.new_log_entry(StateChangedTo(new_state))
        self.state = new_state

    def add_comment(self, text: str) -> None:
        self.new_log_entry(Comment(text))

    def add_dependency(self, task_id: int) -> None:
        self.dependencies.add(task_id)

    def remove_dependency(self, task_id: int) -> None:
        self.dependencies.discard(task_id)

    def summary(self) -> dict:
        return {"id": self.id, "title": self.title, "state": self.state.value}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "state": self.state.value,
            "dependencies": sorted(self.dependencies),
            "log": [entry.to_dict() for entry in self.log],
        }

    @classmethod
    def from_dict(cls, data: dict) -> Task:
        deps = data.get("dependencies", [])
        if not isinstance(deps, list):
            raise ValueError("dependencies must be a list")
        return cls(
            id=_require_id(data["id"], "task id"),
            title=_require_str(data["title"], "title"),
            description=_require_str(data["description"], "description"),
            state=State(data["state"]),
            dependencies={_require_id(d, "dependency") for d in deps},
            log=[LogEntry.from_dict(e) for e in data.get("log", [])],
        )


@dataclass
class Project:
    id: int
    name: str
    description: str = ""
    tasks: list[Task] = field(default_factory=list)
    next_task_id: int = 0

    def find_task_by_id(self, task_id: int) -> Task:
        i = _index_by_id(self.tasks, task_id)
        if i is None:
            raise NotFound(f"Task {task_id} not found in project {self.id}")
        return self.tasks[i]

    def create_task(self, title: str, description: str) -> Task:
        task = Task(id=self.next_task_id, title=title, description=description)
        self.next_task_id += 1
        self.tasks.append(task)
        return task

    def remove_task(self, task_id: int) -> Task:
        i = _index_by_id(self.tasks, task_id)
        if i is None:
            raise NotFound(f"Task {task_id} not found in project {self.id}")
        return self.tasks.pop(i)

    def summary(self) -> dict:
        return {"id": self.id, "name": self.name}

    def details(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tasks": [task.summary() for task in self.tasks],
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tasks": [task.to_dict() for task in self.tasks],
            "next_task_id": self.next_task_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Project:
        tasks = _sorted_by_id([Task.from_dict(t) for t in data.get("tasks", [])], "task")
        next_task_id = _require_id(data.get("next_task_id", 0), "next_task_id")
        # Keep counters ahead of every stored id even if the file was edited by hand.
        if tasks:
            next_task_id = max(next_task_id, tasks[-1].id + 1)
        return cls(
            id=_require_id(data["id"], "project id"),
            name=_require_str(data["name"], "name"),
            description=_require_str(data["description"], "description"),
            tasks=tasks,
            next_task_id=next_task_id,
        )


@dataclass
class Database:
    projects: list[Project] = field(default_factory=list)
    next_project_id: int = 0

    def find_project_by_id(self, project_id: int) -> Project:
        i = _index_by_id(self.projects, project_id)
        if i is None:
            raise NotFound(f"Project {project_id} not found")
        return self.projects[i]

    def create_project(self, name: str, description: str) -> Project:
        project = Project(id=self.next_project_id, name=name, description=description)
        self.next_project_id += 1
        self.projects.append(project)
        return project

    def remove_project(self, project_id: int) -> Project:
        i = _index_by_id(self.projects, project_id)
        if i is None:
            raise NotFound(f"Project {project_id} not found")
        return self.projects.pop(i)

    def to_dict(self) -> dict:
        return {
            "projects": [p.to_dict() for p in self.projects],
            "next_project_id": self.next_project_id,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Database:
        if not isinstance(data, dict):
            raise ValueError("database document must be a JSON object")
        projects = _sorted_by_id(
            [Project.from_dict(p) for p in data.get("projects", [])], "project"
        )
        next_project_id = _require_id(data.get("next_project_id", 0), "next_project_id")
        if projects:
            next_project_id = max(next_project_id, projects[-1].id + 1)
        return cls(projects=projects, next_project_id=next_project_id)


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------


def serialize_database(database: Database) -> str:
    """Pretty-print the whole database as sorted JSON with trailing newline."""
    return json.dumps(database.to_dict(), sort_keys=True, indent=2) + "\n"


def deserialize_database(text: str) -> Database:
    """Parse a document written by :func:`serialize_database`.

    Raises ``ValueError`` (including ``json.JSONDecodeError``), ``KeyError``
    or ``TypeError`` when the document does not describe a valid database.
    """
    return Database.from_dict(json.loads(text))
