# services/tasks.py
from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlmodel import select

from storage.db import get_session
from models.task import Task
from core.priorities import PRIORITY_RANK, normalize_priority
from datetime_utils import ensure_utc, parse_date, today_utc, utc_now


# Fields a caller may change through ``update``.
EDITABLE_FIELDS = (
    "title",
    "description",
    "notes",
    "due_date",
    "completed",
    "completed_date",
    "priority",
    "assigned_to",
    "sort_order",
)

# Fields produced by ``services.todo_mapping.from_remote``.
REMOTE_FIELDS = ("title", "description", "due_date", "completed", "priority", "completed_date")


def _apply_completion(task: Task) -> None:
    if not task.completed:
        task.completed_date = None
    elif task.completed_date is None:
        task.completed_date = today_utc()


def _clean_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = str(value).strip()
    return stripped or None


class TaskService:
    """Local task store: CRUD plus the narrow writes the sync engine needs."""

    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    # ---------- CRUD ----------
    def add(
        self,
        title: str,
        *,
        description: Optional[str] = None,
        notes: Optional[str] = None,
        due_date: date | str | None = None,
        priority: Optional[str] = None,
        assigned_to: Optional[str] = None,
    ) -> Task:
        if not title or not title.strip():
            raise ValueError("Task title is required")
        with self._session_factory() as s:
            max_order = s.exec(select(func.max(Task.sort_order))).one()
            t = Task(
                title=title.strip(),
                description=_clean_text(description),
                notes=_clean_text(notes),
                due_date=parse_date(due_date),
                priority=normalize_priority(priority),
                assigned_to=_clean_text(assigned_to),
                sort_order=(max_order or 0) + 1,
            )
            s.add(t)
            s.commit()
            s.refresh(t)
            return t

    def get(self, task_id: int) -> Optional[Task]:
        with self._session_factory() as s:
            return s.get(Task, task_id)

    def get_by_todo_id(self, todo_id: str | None) -> Optional[Task]:
        if not todo_id:
            return None
        with self._session_factory() as s:
            stmt = select(Task).where(Task.microsoft_todo_id == todo_id)
            return s.exec(stmt).first()

    def list_all(self) -> List[Task]:
        priority_order = case(
            *[(Task.priority == name, rank) for name, rank in PRIORITY_RANK.items()],
            else_=PRIORITY_RANK["medium"],
        )
        with self._session_factory() as s:
            stmt = select(Task).order_by(
                case((Task.due_date == None, 1), else_=0),  # noqa: E711
                Task.due_date.asc(),
                priority_order.desc(),
                Task.sort_order.asc(),
            )
            return list(s.exec(stmt))

    def list_for_sync(self) -> List[Task]:
        with self._session_factory() as s:
            stmt = select(Task).order_by(Task.created_at.asc(), Task.id.asc())
            return list(s.exec(stmt))

    def update(self, task_id: int, **fields: Any) -> Optional[Task]:
        """Apply a local edit; bumps ``updated_at`` so the next sync pushes it."""
        unknown = set(fields) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Unsupported task fields: {', '.join(sorted(unknown))}")
        with self._session_factory() as s:
            t = s.get(Task, task_id)
            if not t:
                return None
            if "title" in fields:
                title = (fields["title"] or "").strip()
                if not title:
                    raise ValueError("Task title is required")
                t.title = title
            for key in ("description", "notes", "assigned_to"):
                if key in fields:
                    setattr(t, key, _clean_text(fields[key]))
            if "due_date" in fields:
                t.due_date = parse_date(fields["due_date"])
            if "priority" in fields:
                t.priority = normalize_priority(fields["priority"])
            if "sort_order" in fields and fields["sort_order"] is not None:
                t.sort_order = int(fields["sort_order"])
            if "completed" in fields:
                t.completed = bool(fields["completed"])
            if "completed_date" in fields:
                t.completed_date = parse_date(fields["completed_date"])
            _apply_completion(t)
            t.updated_at = utc_now()
            s.add(t)
            s.commit()
            s.refresh(t)
            return t

    def delete(self, task_id: int) -> bool:
        with self._session_factory() as s:
            t = s.get(Task, task_id)
            if not t:
                return False
            s.delete(t)
            s.commit()
            return True

    # ---------- Sync writes ----------
    def create_from_remote(
        self,
        fields: Dict[str, Any],
        *,
        todo_id: str,
        list_id: Optional[str],
        synced_at: Optional[datetime] = None,
    ) -> Task:
        synced_at = ensure_utc(synced_at) or utc_now()
        with self._session_factory() as s:
            max_order = s.exec(select(func.max(Task.sort_order))).one()
            task = Task(
                title=(fields.get("title") or "").strip() or "Untitled task",
                sort_order=(max_order or 0) + 1,
                microsoft_todo_id=todo_id,
                microsoft_list_id=list_id,
                last_synced_at=synced_at,
                created_at=synced_at,
                updated_at=synced_at,
            )
            self._assign_remote(task, fields)
            s.add(task)
            s.commit()
            s.refresh(task)
            return task

    def apply_remote(
        self,
        task_id: int,
        fields: Dict[str, Any],
        *,
        synced_at: Optional[datetime] = None,
    ) -> Optional[Task]:
        """Overwrite a task with remote-originated fields and mark it synced."""
        synced_at = ensure_utc(synced_at) or utc_now()
        with self._session_factory() as s:
            task = s.get(Task, task_id)
            if not task:
                return None
            self._assign_remote(task, fields)
            task.last_synced_at = synced_at
            task.updated_at = synced_at
            s.add(task)
            s.commit()
            s.refresh(task)
            return task

    def mark_synced(
        self,
        task_id: int,
        *,
        todo_id: Optional[str] = None,
        list_id: Optional[str] = None,
        synced_at: Optional[datetime] = None,
    ) -> Optional[Task]:
        """Record a successful push without touching ``updated_at``."""
        with self._session_factory() as s:
            task = s.get(Task, task_id)
            if not task:
                return None
            if todo_id is not None:
                task.microsoft_todo_id = todo_id
            if list_id is not None:
                task.microsoft_list_id = list_id
            task.last_synced_at = ensure_utc(synced_at) or utc_now()
            s.add(task)
            s.commit()
            s.refresh(task)
            return task

    def unlink(self, task_id: int) -> Optional[Task]:
        with self._session_factory() as s:
            task = s.get(Task, task_id)
            if not task:
                return None
            self._clear_link(task)
            s.add(task)
            s.commit()
            s.refresh(task)
            return task

    def unlink_by_todo_id(self, todo_id: str | None) -> Optional[Task]:
        task = self.get_by_todo_id(todo_id)
        if task is None:
            return None
        return self.unlink(task.id)

    def unlink_all(self) -> int:
        changed = 0
        with self._session_factory() as s:
            stmt = select(Task).where(Task.microsoft_todo_id != None)  # noqa: E711
            for task in s.exec(stmt).all():
                self._clear_link(task)
                s.add(task)
                changed += 1
            if changed:
                s.commit()
        return changed

    # ---------- Dashboard ----------
    def stats(self, today: Optional[date] = None) -> Dict[str, int]:
        today = today or today_utc()
        week_ahead = today + timedelta(days=7)
        tasks = self.list_all()
        open_tasks = [t for t in tasks if not t.completed]
        return {
            "total": len(tasks),
            "completed": len(tasks) - len(open_tasks),
            "pending": len(open_tasks),
            "overdue": sum(1 for t in open_tasks if t.due_date and t.due_date < today),
            "upcoming": sum(
                1 for t in open_tasks if t.due_date and today <= t.due_date <= week_ahead
            ),
        }

    # ---------- helpers ----------
    @staticmethod
    def _assign_remote(task: Task, fields: Dict[str, Any]) -> None:
        for key in REMOTE_FIELDS:
            if key not in fields or key == "title":
                continue
            value = fields[key]
            if key in ("due_date", "completed_date"):
                value = parse_date(value)
            elif key == "priority":
                value = normalize_priority(value)
            elif key == "completed":
                value = bool(value)
            setattr(task, key, value)
        if "title" in fields and fields["title"]:
            task.title = str(fields["title"]).strip() or task.title
        if not task.completed:
            task.completed_date = None

    @staticmethod
    def _clear_link(task: Task) -> None:
        task.microsoft_todo_id = None
        task.microsoft_list_id = None
        task.last_synced_at = None


__all__ = ["TaskService", "EDITABLE_FIELDS", "REMOTE_FIELDS"]
