"""Conversion between local tasks and Microsoft To Do tasks.

The mapping is lossy on purpose: the remote side only knows three importance
levels, so a local ``urgent`` task goes out as ``high`` and comes back as
``high``. Only the completed/not-completed distinction survives a round trip
exactly; ``inProgress``, ``waitingOnOthers`` and ``deferred`` all read back as
not completed.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from datetime_utils import graph_date, graph_midnight, parse_date
from models.task import Task


STATUS_COMPLETED = "completed"
STATUS_NOT_STARTED = "notStarted"


def _importance(priority: Optional[str]) -> str:
    if priority in ("high", "urgent"):
        return "high"
    if priority == "low":
        return "low"
    return "normal"


def _priority(importance: Optional[str]) -> str:
    if importance == "high":
        return "high"
    if importance == "low":
        return "low"
    return "medium"


def to_remote(task: Task) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "title": task.title,
        "status": STATUS_COMPLETED if task.completed else STATUS_NOT_STARTED,
        "importance": _importance(task.priority),
    }
    if task.description:
        payload["body"] = {"content": task.description, "contentType": "text"}
    due = parse_date(task.due_date)
    if due:
        payload["dueDateTime"] = graph_midnight(due)
    return payload


def from_remote(remote: Dict[str, Any]) -> Dict[str, Any]:
    completed = remote.get("status") == STATUS_COMPLETED
    body = remote.get("body") or {}
    return {
        "title": remote.get("title") or "",
        "description": body.get("content") or None,
        "due_date": graph_date(remote.get("dueDateTime")),
        "completed": completed,
        "priority": _priority(remote.get("importance")),
        "completed_date": graph_date(remote.get("completedDateTime")) if completed else None,
    }


def fields_differ(task: Task, fields: Dict[str, Any]) -> bool:
    """Whether mapped remote fields change anything the sync compares."""
    return (
        bool(fields.get("completed")) != bool(task.completed)
        or (fields.get("title") or "") != (task.title or "")
        or fields.get("due_date") != parse_date(task.due_date)
    )


__all__ = [
    "STATUS_COMPLETED",
    "STATUS_NOT_STARTED",
    "fields_differ",
    "from_remote",
    "to_remote",
]
