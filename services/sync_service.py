from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

import requests

from core.settings import MICROSOFT, MicrosoftSyncSettings
from datetime_utils import UTC, ensure_utc, parse_rfc3339, to_rfc3339_utc, utc_now
from services.credential_store import CredentialStore
from services.microsoft_auth import MicrosoftOAuth, TokenManager
from services.microsoft_todo import GraphError, MicrosoftTodoClient
from services.sync_log import ensure_logger
from services.tasks import TaskService
from services.todo_mapping import fields_differ, from_remote, to_remote


# Failures of a single remote call; anything else (local store) propagates.
REMOTE_ERRORS = (GraphError, requests.RequestException)

_NEVER = datetime.min.replace(tzinfo=UTC)


@dataclass
class SyncResult:
    connected: bool = True
    pushed: int = 0
    pulled: int = 0
    updated: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class TaskSyncService:
    """Two-way reconciliation between local tasks and a Microsoft To Do list.

    A pass runs three phases in order: push unlinked local tasks, pull remote
    tasks nobody references yet, then settle tasks present on both sides by
    comparing ``updated_at`` with ``last_synced_at`` (local edits win, the
    remote copy wins otherwise). Remote deletions are not reconciled here;
    they arrive through the webhook or not at all.
    """

    def __init__(
        self,
        tasks: Optional[TaskService] = None,
        tokens: Optional[TokenManager] = None,
        *,
        store: Optional[CredentialStore] = None,
        oauth: Optional[MicrosoftOAuth] = None,
        client_factory: Callable[[str], MicrosoftTodoClient] = MicrosoftTodoClient,
        settings: MicrosoftSyncSettings = MICROSOFT,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.tasks = tasks or TaskService()
        self.store = store or CredentialStore()
        self.oauth = oauth or MicrosoftOAuth(settings)
        self.tokens = tokens or TokenManager(self.store, self.oauth)
        self.client_factory = client_factory
        self.settings = settings
        self._clock = clock
        self.logger = ensure_logger()

    # ------------------------------------------------------------------
    # Reconciliation
    def sync(self) -> SyncResult:
        credential = self.tokens.get_valid_credential()
        if credential is None:
            self.logger.info("Sync skipped: Microsoft account not connected")
            return SyncResult(connected=False)

        list_id = credential.list_id
        client = self.client_factory(credential.access_token)
        result = SyncResult()

        local_tasks = self.tasks.list_for_sync()
        try:
            remote_tasks = client.list_tasks(list_id)
        except REMOTE_ERRORS as exc:
            self.logger.warning("Fetching remote tasks failed: %s", exc)
            result.errors.append(f"Failed to fetch remote tasks: {exc}")
            return result

        remote_by_id = {item["id"]: item for item in remote_tasks if item.get("id")}
        known_ids: Set[str] = {t.microsoft_todo_id for t in local_tasks if t.microsoft_todo_id}

        # 1. push local tasks the remote list has never seen
        for task in local_tasks:
            if task.microsoft_todo_id:
                continue
            try:
                created = client.create_task(list_id, to_remote(task))
            except REMOTE_ERRORS as exc:
                self.logger.warning("Push of task %s failed: %s", task.id, exc)
                result.errors.append(f'Failed to push task "{task.title}": {exc}')
                continue
            todo_id = created.get("id")
            if not todo_id:
                result.errors.append(f'Failed to push task "{task.title}": no id returned')
                continue
            self.tasks.mark_synced(task.id, todo_id=todo_id, list_id=list_id, synced_at=self._clock())
            known_ids.add(todo_id)
            result.pushed += 1

        # 2. pull remote tasks no local task references
        for remote in remote_tasks:
            todo_id = remote.get("id")
            if not todo_id or todo_id in known_ids:
                continue
            known_ids.add(todo_id)
            self.tasks.create_from_remote(
                from_remote(remote),
                todo_id=todo_id,
                list_id=list_id,
                synced_at=self._clock(),
            )
            result.pulled += 1

        # 3. settle tasks that exist on both sides
        for task in local_tasks:
            remote = remote_by_id.get(task.microsoft_todo_id) if task.microsoft_todo_id else None
            if remote is None:
                continue
            local_modified = ensure_utc(task.updated_at) or _NEVER
            last_synced = ensure_utc(task.last_synced_at) or _NEVER
            if local_modified > last_synced:
                try:
                    client.update_task(
                        task.microsoft_list_id or list_id, task.microsoft_todo_id, to_remote(task)
                    )
                except REMOTE_ERRORS as exc:
                    self.logger.warning("Update of remote task %s failed: %s", task.microsoft_todo_id, exc)
                    result.errors.append(f'Failed to update task "{task.title}": {exc}')
                    continue
                self.tasks.mark_synced(task.id, synced_at=self._clock())
                result.updated += 1
                continue

            fields = from_remote(remote)
            if fields_differ(task, fields):
                self.logger.info("Remote task %s newer than local task %s", task.microsoft_todo_id, task.id)
                self.tasks.apply_remote(task.id, fields, synced_at=self._clock())
                result.updated += 1

        self.logger.info(
            "Sync finished: pushed=%s pulled=%s updated=%s errors=%s",
            result.pushed,
            result.pulled,
            result.updated,
            len(result.errors),
        )
        return result

    # ------------------------------------------------------------------
    # Task lifecycle
    def delete_task(self, task_id: int) -> bool:
        """Delete locally, removing the remote counterpart first when linked."""
        task = self.tasks.get(task_id)
        if task is None:
            return False
        if task.microsoft_todo_id:
            credential = self.tokens.get_valid_credential()
            if credential is None:
                self.logger.warning("Task %s deleted while disconnected; remote copy kept", task_id)
            else:
                client = self.client_factory(credential.access_token)
                try:
                    client.delete_task(task.microsoft_list_id or credential.list_id, task.microsoft_todo_id)
                except REMOTE_ERRORS as exc:
                    self.logger.warning("Remote delete of %s failed: %s", task.microsoft_todo_id, exc)
        return self.tasks.delete(task_id)

    # ------------------------------------------------------------------
    # Connection management
    def connect(self, code: str):
        tokens = self.oauth.exchange_code(code)
        client = self.client_factory(tokens["access_token"])
        todo_list = client.ensure_list(self.settings.tasklist_name)
        record = self.store.save_connection(
            tokens,
            list_id=todo_list["id"],
            list_name=todo_list.get("displayName") or self.settings.tasklist_name,
        )
        self.logger.info("Connected Microsoft To Do list %s", record.todo_list_name)
        return record

    def status(self) -> Dict[str, Any]:
        record = self.store.get()
        if record is None:
            return {"connected": False, "reason": "not_authenticated"}
        if self.tokens.get_valid_credential() is None:
            return {"connected": False, "reason": "token_refresh_failed"}
        expires = ensure_utc(record.webhook_expires_at)
        return {
            "connected": True,
            "listName": record.todo_list_name or self.settings.tasklist_name,
            "webhookActive": bool(
                record.webhook_subscription_id and expires and expires > self._clock()
            ),
            "webhookExpiresAt": to_rfc3339_utc(expires),
        }

    def setup_webhook(self, notification_url: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Renew the stored subscription or create one; ``None`` when not connected."""
        credential = self.tokens.get_valid_credential()
        record = self.store.get()
        if credential is None or record is None:
            return None
        client = self.client_factory(credential.access_token)

        subscription: Optional[Dict[str, Any]] = None
        if record.webhook_subscription_id:
            try:
                subscription = client.renew(record.webhook_subscription_id)
            except GraphError as exc:
                if not exc.not_found:
                    raise
                self.logger.info("Subscription %s is gone; creating a new one", record.webhook_subscription_id)
        if not subscription:
            subscription = client.subscribe(
                credential.list_id,
                notification_url or self.settings.webhook_url,
                self.settings.webhook_secret,
            )

        subscription_id = subscription.get("id") or record.webhook_subscription_id
        expires_at = parse_rfc3339(subscription.get("expirationDateTime"))
        self.store.update_webhook(subscription_id, expires_at)
        self.logger.info("Webhook subscription %s valid until %s", subscription_id, expires_at)
        return {"id": subscription_id, "expirationDateTime": to_rfc3339_utc(expires_at)}

    def disconnect(self) -> int:
        """Forget the account and every task's remote link. Returns tasks unlinked."""
        record = self.store.get()
        if record is not None and record.webhook_subscription_id:
            credential = self.tokens.get_valid_credential()
            if credential is not None:
                try:
                    self.client_factory(credential.access_token).unsubscribe(
                        record.webhook_subscription_id
                    )
                except REMOTE_ERRORS as exc:
                    self.logger.warning("Unsubscribe failed: %s", exc)
        self.store.clear()
        unlinked = self.tasks.unlink_all()
        self.logger.info("Microsoft account disconnected; %s tasks unlinked", unlinked)
        return unlinked


__all__ = ["REMOTE_ERRORS", "SyncResult", "TaskSyncService"]
