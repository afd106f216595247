"""Minimal Microsoft To Do client (Graph API) used by the synchronisation service."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import requests

from core.settings import MICROSOFT, MicrosoftSyncSettings
from datetime_utils import to_rfc3339_utc, utc_now


class GraphError(Exception):
    """Non-2xx answer from Microsoft Graph."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"Graph API error ({status}): {message}")
        self.status = status
        self.message = message

    @property
    def not_found(self) -> bool:
        return self.status == 404


def _error_message(response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        message = error.get("message") or error.get("code")
        if message:
            return str(message)
    elif error:
        return str(error)
    return response.reason or "Unknown error"


class MicrosoftTodoClient:
    def __init__(
        self,
        access_token: str,
        *,
        session: Optional[requests.Session] = None,
        settings: MicrosoftSyncSettings = MICROSOFT,
        clock=utc_now,
    ) -> None:
        self.access_token = access_token
        self.session = session or requests.Session()
        self.settings = settings
        self._clock = clock

    # ------------------------------------------------------------------
    # Transport
    def _request(
        self,
        method: str,
        path: str,
        *,
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        url = path if path.startswith("http") else f"{self.settings.graph_base_url}{path}"
        response = self.session.request(
            method,
            url,
            headers={
                "Authorization": f"Bearer {self.access_token}",
                "Content-Type": "application/json",
            },
            json=body,
            timeout=self.settings.request_timeout_sec,
        )
        if not 200 <= response.status_code < 300:
            raise GraphError(response.status_code, _error_message(response))
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()

    def _collect(self, path: str) -> List[Dict[str, Any]]:
        items: List[Dict[str, Any]] = []
        next_url: Optional[str] = path
        while next_url:
            response = self._request("GET", next_url)
            items.extend(response.get("value", []))
            next_url = response.get("@odata.nextLink")
        return items

    # ------------------------------------------------------------------
    # Lists
    def list_lists(self) -> List[Dict[str, Any]]:
        return self._collect("/me/todo/lists")

    def create_list(self, display_name: str) -> Dict[str, Any]:
        return self._request("POST", "/me/todo/lists", body={"displayName": display_name})

    def ensure_list(self, display_name: str) -> Dict[str, Any]:
        for item in self.list_lists():
            if item.get("displayName") == display_name:
                return item
        return self.create_list(display_name)

    # ------------------------------------------------------------------
    # Tasks
    def list_tasks(self, list_id: str) -> List[Dict[str, Any]]:
        return self._collect(f"/me/todo/lists/{list_id}/tasks")

    def get_task(self, list_id: str, task_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/me/todo/lists/{list_id}/tasks/{task_id}")

    def create_task(self, list_id: str, task: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("POST", f"/me/todo/lists/{list_id}/tasks", body=task)

    def update_task(self, list_id: str, task_id: str, patch: Dict[str, Any]) -> Dict[str, Any]:
        return self._request("PATCH", f"/me/todo/lists/{list_id}/tasks/{task_id}", body=patch)

    def delete_task(self, list_id: str, task_id: str) -> None:
        try:
            self._request("DELETE", f"/me/todo/lists/{list_id}/tasks/{task_id}")
        except GraphError as exc:
            if exc.not_found:
                return
            raise

    # ------------------------------------------------------------------
    # Change notifications
    def _subscription_expiry(self) -> datetime:
        return self._clock() + timedelta(minutes=self.settings.subscription_minutes)

    def subscribe(self, list_id: str, notification_url: str, client_state: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/subscriptions",
            body={
                "changeType": "created,updated,deleted",
                "notificationUrl": notification_url,
                "resource": f"/me/todo/lists/{list_id}/tasks",
                "expirationDateTime": to_rfc3339_utc(self._subscription_expiry()),
                "clientState": client_state,
            },
        )

    def renew(self, subscription_id: str) -> Dict[str, Any]:
        return self._request(
            "PATCH",
            f"/subscriptions/{subscription_id}",
            body={"expirationDateTime": to_rfc3339_utc(self._subscription_expiry())},
        )

    def unsubscribe(self, subscription_id: str) -> None:
        try:
            self._request("DELETE", f"/subscriptions/{subscription_id}")
        except GraphError as exc:
            if exc.not_found:
                return
            raise


__all__ = ["GraphError", "MicrosoftTodoClient"]
