"""Microsoft Graph change notifications for the synced To Do list."""
from __future__ import annotations

from typing import Any, Callable, Dict, Iterable, Optional

from core.settings import MICROSOFT
from datetime_utils import utc_now
from services.microsoft_auth import TokenManager
from services.microsoft_todo import GraphError, MicrosoftTodoClient
from services.sync_log import get_logger
from services.sync_service import REMOTE_ERRORS
from services.tasks import TaskService
from services.todo_mapping import from_remote


def notification_task_id(notification: Dict[str, Any]) -> Optional[str]:
    """Task id from ``resourceData.id`` or the tail of ``resource``."""
    resource_data = notification.get("resourceData") or {}
    if isinstance(resource_data, dict) and resource_data.get("id"):
        return str(resource_data["id"])
    resource = str(notification.get("resource") or "").rstrip("/")
    if not resource:
        return None
    tail = resource.rsplit("/", 1)[-1]
    # Graph sometimes writes the resource as ``tasks('<id>')``.
    if tail.startswith("tasks(") and tail.endswith(")"):
        tail = tail[len("tasks("):-1].strip("'\"")
    return tail or None


class WebhookReceiver:
    def __init__(
        self,
        tasks: Optional[TaskService] = None,
        tokens: Optional[TokenManager] = None,
        *,
        client_factory: Callable[[str], MicrosoftTodoClient] = MicrosoftTodoClient,
        client_state: str = MICROSOFT.webhook_secret,
        clock=utc_now,
    ) -> None:
        self.tasks = tasks or TaskService()
        self.tokens = tokens or TokenManager()
        self.client_factory = client_factory
        self.client_state = client_state
        self._clock = clock
        self.logger = get_logger("webhook")

    @staticmethod
    def validation_response(token: str) -> str:
        # Graph expects the token echoed back untouched.
        return token

    def handle_notifications(self, payload: Dict[str, Any]) -> int:
        """Apply a change batch; returns how many entries were applied."""
        entries: Iterable[Any] = []
        if isinstance(payload, dict):
            entries = payload.get("value") or []
        applied = 0
        for entry in entries:
            if not isinstance(entry, dict):
                continue
            if entry.get("clientState") != self.client_state:
                self.logger.warning("Discarding notification with invalid client state")
                continue
            try:
                handled = self.handle_notification(entry)
            except REMOTE_ERRORS as exc:
                self.logger.warning("Notification for %s failed: %s", entry.get("resource"), exc)
                continue
            if handled:
                applied += 1
        return applied

    def handle_notification(self, notification: Dict[str, Any]) -> bool:
        task_id = notification_task_id(notification)
        change = notification.get("changeType")
        if not task_id or change not in ("created", "updated", "deleted"):
            return False

        if change == "deleted":
            task = self.tasks.unlink_by_todo_id(task_id)
            if task is not None:
                self.logger.info("Remote task %s deleted; unlinked local task %s", task_id, task.id)
            return task is not None

        credential = self.tokens.get_valid_credential()
        if credential is None:
            self.logger.info("Ignoring %s notification: not connected", change)
            return False

        client = self.client_factory(credential.access_token)
        try:
            remote = client.get_task(credential.list_id, task_id)
        except GraphError as exc:
            if exc.not_found:
                self.logger.info("Remote task %s vanished before it could be fetched", task_id)
                return False
            raise

        fields = from_remote(remote)
        existing = self.tasks.get_by_todo_id(task_id)
        if existing is None:
            created = self.tasks.create_from_remote(
                fields,
                todo_id=task_id,
                list_id=credential.list_id,
                synced_at=self._clock(),
            )
            self.logger.info("Remote task %s created local task %s", task_id, created.id)
        else:
            self.tasks.apply_remote(existing.id, fields, synced_at=self._clock())
            self.logger.info("Remote task %s updated local task %s", task_id, existing.id)
        return True


__all__ = ["WebhookReceiver", "notification_task_id"]
