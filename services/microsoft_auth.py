# services/microsoft_auth.py
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

import requests
from oauthlib.oauth2 import OAuth2Error
from requests_oauthlib import OAuth2Session

from core.settings import MICROSOFT, MicrosoftSyncSettings
from datetime_utils import ensure_utc, utc_now
from services.credential_store import CredentialStore
from services.sync_log import get_logger


class MicrosoftAuthError(RuntimeError):
    """The OAuth handshake could not be completed."""


@dataclass(frozen=True)
class ValidCredential:
    access_token: str
    list_id: str


class MicrosoftOAuth:
    """Authorization-code flow against the Microsoft identity platform."""

    def __init__(self, settings: MicrosoftSyncSettings = MICROSOFT) -> None:
        self.settings = settings
        self.logger = get_logger("auth")
        # Microsoft answers with the scopes actually granted, which rarely match
        # the requested list verbatim.
        os.environ.setdefault("OAUTHLIB_RELAX_TOKEN_SCOPE", "1")

    def _session(self, state: Optional[str] = None) -> OAuth2Session:
        return OAuth2Session(
            self.settings.client_id,
            redirect_uri=self.settings.redirect_uri,
            scope=list(self.settings.scopes),
            state=state,
        )

    def authorization_url(self, state: Optional[str] = None) -> Tuple[str, str]:
        if not self.settings.client_id:
            raise MicrosoftAuthError("MICROSOFT_CLIENT_ID is not configured")
        return self._session(state).authorization_url(
            self.settings.authorize_url,
            response_mode="query",
        )

    def exchange_code(self, code: str) -> Dict[str, Any]:
        try:
            token = self._session().fetch_token(
                self.settings.token_url,
                code=code,
                client_secret=self.settings.client_secret,
                include_client_id=True,
                timeout=self.settings.request_timeout_sec,
            )
        except (OAuth2Error, requests.RequestException) as exc:
            raise MicrosoftAuthError(f"Token exchange failed: {exc}") from exc
        return dict(token)

    def refresh(self, refresh_token: str) -> Dict[str, Any]:
        session = OAuth2Session(self.settings.client_id, scope=list(self.settings.scopes))
        try:
            token = session.refresh_token(
                self.settings.token_url,
                refresh_token=refresh_token,
                client_id=self.settings.client_id,
                client_secret=self.settings.client_secret,
                timeout=self.settings.request_timeout_sec,
            )
        except (OAuth2Error, requests.RequestException) as exc:
            raise MicrosoftAuthError(f"Token refresh failed: {exc}") from exc
        return dict(token)


class TokenManager:
    """Hands out a usable access token or ``None`` when not connected."""

    def __init__(
        self,
        store: Optional[CredentialStore] = None,
        oauth: Optional[MicrosoftOAuth] = None,
        *,
        refresh_margin: Optional[timedelta] = None,
        clock=utc_now,
    ) -> None:
        self.store = store or CredentialStore()
        self.oauth = oauth or MicrosoftOAuth()
        self.refresh_margin = refresh_margin or timedelta(
            seconds=MICROSOFT.token_refresh_margin_sec
        )
        self._clock = clock
        self.logger = get_logger("auth")

    def needs_refresh(self, expires_at: Optional[datetime]) -> bool:
        expires = ensure_utc(expires_at)
        if expires is None:
            return True
        return expires - self._clock() < self.refresh_margin

    def get_valid_credential(self) -> Optional[ValidCredential]:
        record = self.store.get()
        if record is None:
            return None

        if not self.needs_refresh(record.expires_at):
            return ValidCredential(record.access_token, record.todo_list_id)

        self.logger.info("Access token expires at %s; refreshing", record.expires_at)
        try:
            tokens = self.oauth.refresh(record.refresh_token)
        except (OAuth2Error, requests.RequestException, MicrosoftAuthError) as exc:
            self.logger.error("Token refresh failed: %s", exc)
            return None

        if not tokens.get("access_token"):
            self.logger.error("Token refresh returned no access token")
            return None

        updated = self.store.save_tokens(tokens)
        if updated is None:
            # Disconnected while the refresh was in flight.
            return None
        return ValidCredential(updated.access_token, updated.todo_list_id)


__all__ = ["MicrosoftAuthError", "MicrosoftOAuth", "TokenManager", "ValidCredential"]
