"""Persistence helpers for the connected Microsoft account."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from models.microsoft_auth import CREDENTIAL_ID, MicrosoftAuth
from storage.db import get_session
from datetime_utils import ensure_utc, utc_now


def expiry_from_tokens(tokens: Mapping[str, Any], now: Optional[datetime] = None) -> datetime:
    """Absolute expiry for an OAuth token response (``expires_in`` seconds)."""
    now = ensure_utc(now) or utc_now()
    try:
        seconds = int(tokens.get("expires_in") or 0)
    except (TypeError, ValueError):
        seconds = 0
    return now + timedelta(seconds=seconds)


class CredentialStore:
    """Wrapper around the single ``MicrosoftAuth`` row."""

    def __init__(self, session_factory=get_session) -> None:
        self._session_factory = session_factory

    def get(self) -> Optional[MicrosoftAuth]:
        with self._session_factory() as session:
            record = session.get(MicrosoftAuth, CREDENTIAL_ID)
            if record is not None:
                record.expires_at = ensure_utc(record.expires_at)
                record.webhook_expires_at = ensure_utc(record.webhook_expires_at)
            return record

    def save_connection(
        self,
        tokens: Mapping[str, Any],
        *,
        list_id: str,
        list_name: Optional[str],
    ) -> MicrosoftAuth:
        """Upsert the singleton; reconnecting replaces the previous account."""
        with self._session_factory() as session:
            record = session.get(MicrosoftAuth, CREDENTIAL_ID)
            if record is None:
                record = MicrosoftAuth(
                    id=CREDENTIAL_ID,
                    access_token=tokens["access_token"],
                    refresh_token=tokens.get("refresh_token") or "",
                    expires_at=expiry_from_tokens(tokens),
                    todo_list_id=list_id,
                )
            record.access_token = tokens["access_token"]
            record.refresh_token = tokens.get("refresh_token") or ""
            record.expires_at = expiry_from_tokens(tokens)
            record.todo_list_id = list_id
            record.todo_list_name = list_name
            record.webhook_subscription_id = None
            record.webhook_expires_at = None
            record.updated_at = utc_now()
            session.add(record)
            session.commit()
            session.refresh(record)
            return record

    def save_tokens(self, tokens: Mapping[str, Any]) -> Optional[MicrosoftAuth]:
        with self._session_factory() as session:
            record = session.get(MicrosoftAuth, CREDENTIAL_ID)
            if record is None:
                return None
            record.access_token = tokens["access_token"]
            # Keep the old refresh token only when the server did not rotate it.
            record.refresh_token = tokens.get("refresh_token") or record.refresh_token
            record.expires_at = expiry_from_tokens(tokens)
            record.updated_at = utc_now()
            session.add(record)
            session.commit()
            session.refresh(record)
            return record

    def update_webhook(
        self,
        subscription_id: Optional[str],
        expires_at: Optional[datetime],
    ) -> Optional[MicrosoftAuth]:
        with self._session_factory() as session:
            record = session.get(MicrosoftAuth, CREDENTIAL_ID)
            if record is None:
                return None
            record.webhook_subscription_id = subscription_id
            record.webhook_expires_at = ensure_utc(expires_at)
            record.updated_at = utc_now()
            session.add(record)
            session.commit()
            session.refresh(record)
            return record

    def clear(self) -> None:
        with self._session_factory() as session:
            record = session.get(MicrosoftAuth, CREDENTIAL_ID)
            if record:
                session.delete(record)
                session.commit()


__all__ = ["CredentialStore", "expiry_from_tokens"]
