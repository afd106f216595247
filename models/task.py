# models/task.py
from typing import Optional
from datetime import date, datetime

from datetime_utils import utc_now
from sqlmodel import SQLModel, Field

class Task(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    title: str
    description: Optional[str] = None
    notes: Optional[str] = None
    due_date: Optional[date] = None
    completed: bool = False
    completed_date: Optional[date] = None
    priority: str = "medium"      # low / medium / high / urgent
    assigned_to: Optional[str] = None
    sort_order: int = 0
    microsoft_todo_id: Optional[str] = Field(default=None, index=True)
    microsoft_list_id: Optional[str] = None
    last_synced_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
