"""SQLModel table holding the connected Microsoft account."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from datetime_utils import utc_now


CREDENTIAL_ID = 1


class MicrosoftAuth(SQLModel, table=True):
    """Singleton row: one external account is connected at a time."""

    id: int = Field(default=CREDENTIAL_ID, primary_key=True)
    access_token: str
    refresh_token: str
    expires_at: datetime
    todo_list_id: str
    todo_list_name: Optional[str] = None
    webhook_subscription_id: Optional[str] = None
    webhook_expires_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utc_now)


__all__ = ["CREDENTIAL_ID", "MicrosoftAuth"]
