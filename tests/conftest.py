import os
import sys
import tempfile
from datetime import timedelta
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Keep the on-disk database and sync log out of the user's data directory.
os.environ.setdefault("WEDDING_DATA_DIR", tempfile.mkdtemp(prefix="wedding-tests-"))

import pytest
from oauthlib.oauth2 import InvalidGrantError
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import models  # noqa: F401
from datetime_utils import utc_now
from services.credential_store import CredentialStore
from services.microsoft_auth import TokenManager
from services.microsoft_todo import GraphError
from services.tasks import TaskService


class FakeOAuth:
    """Stand-in for :class:`MicrosoftOAuth` that never touches the network."""

    def __init__(self, tokens=None, fail=False):
        self.tokens = tokens or {
            "access_token": "fresh-access",
            "refresh_token": "fresh-refresh",
            "expires_in": 3600,
        }
        self.fail = fail
        self.refresh_calls = []
        self.exchanged = []

    def refresh(self, refresh_token):
        self.refresh_calls.append(refresh_token)
        if self.fail:
            raise InvalidGrantError(description="refresh token revoked")
        return dict(self.tokens)

    def exchange_code(self, code):
        self.exchanged.append(code)
        return dict(self.tokens)

    def authorization_url(self, state=None):
        return "https://login.example.test/authorize?client_id=abc", state or "state-123"


class FakeTodoClient:
    """In-memory Microsoft To Do list keyed by remote id."""

    def __init__(self, tasks=None, list_id="list-1"):
        self.list_id = list_id
        self.tasks = {item["id"]: dict(item) for item in (tasks or [])}
        self.failures = {}
        self.calls = []
        self.subscriptions = {}
        self.tokens_seen = []
        self.list_ids = []
        self._next = 1

    # factory hook: ``client_factory=fake`` works because of ``__call__``
    def __call__(self, access_token):
        self.tokens_seen.append(access_token)
        return self

    def fail(self, op, key=None, status=500, message="boom"):
        self.failures[(op, key)] = GraphError(status, message)

    def _check(self, op, key=None):
        self.calls.append((op, key))
        for candidate in ((op, key), (op, None)):
            if candidate in self.failures:
                raise self.failures[candidate]

    def list_lists(self):
        self._check("list_lists")
        return [{"id": self.list_id, "displayName": "Wedding Planning"}]

    def create_list(self, display_name):
        self._check("create_list")
        return {"id": self.list_id, "displayName": display_name}

    def ensure_list(self, display_name):
        self._check("ensure_list")
        return {"id": self.list_id, "displayName": display_name}

    def list_tasks(self, list_id):
        self._check("list_tasks")
        return [dict(item) for item in self.tasks.values()]

    def get_task(self, list_id, task_id):
        self._check("get_task", task_id)
        if task_id not in self.tasks:
            raise GraphError(404, "The requested resource was not found")
        return dict(self.tasks[task_id])

    def create_task(self, list_id, task):
        self._check("create_task", task.get("title"))
        remote_id = f"remote-{self._next}"
        self._next += 1
        self.tasks[remote_id] = dict(task, id=remote_id)
        return dict(self.tasks[remote_id])

    def update_task(self, list_id, task_id, patch):
        self._check("update_task", task_id)
        self.list_ids.append(("update_task", list_id))
        self.tasks.setdefault(task_id, {"id": task_id}).update(patch)
        return dict(self.tasks[task_id])

    def delete_task(self, list_id, task_id):
        self._check("delete_task", task_id)
        self.list_ids.append(("delete_task", list_id))
        self.tasks.pop(task_id, None)

    def subscribe(self, list_id, notification_url, client_state):
        self._check("subscribe")
        sub_id = f"sub-{len(self.subscriptions) + 1}"
        self.subscriptions[sub_id] = {
            "url": notification_url,
            "clientState": client_state,
            "resource": f"/me/todo/lists/{list_id}/tasks",
        }
        return {"id": sub_id, "expirationDateTime": "2030-01-03T00:00:00Z"}

    def renew(self, subscription_id):
        self._check("renew", subscription_id)
        if subscription_id not in self.subscriptions:
            raise GraphError(404, "Subscription not found")
        return {"id": subscription_id, "expirationDateTime": "2030-01-06T00:00:00Z"}

    def unsubscribe(self, subscription_id):
        self._check("unsubscribe", subscription_id)
        self.subscriptions.pop(subscription_id, None)


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    return engine


@pytest.fixture()
def session_factory(engine):
    def factory():
        return Session(engine, expire_on_commit=False)

    return factory


@pytest.fixture()
def task_service(session_factory):
    return TaskService(session_factory)


@pytest.fixture()
def credential_store(session_factory):
    return CredentialStore(session_factory)


@pytest.fixture()
def fake_oauth():
    return FakeOAuth()


@pytest.fixture()
def token_manager(credential_store, fake_oauth):
    return TokenManager(credential_store, fake_oauth)


@pytest.fixture()
def remote():
    return FakeTodoClient()


@pytest.fixture()
def connected(credential_store):
    """Store a credential that stays valid for the whole test."""
    return credential_store.save_connection(
        {"access_token": "stored-access", "refresh_token": "stored-refresh", "expires_in": 7200},
        list_id="list-1",
        list_name="Wedding Planning",
    )


def make_expiring(credential_store, minutes):
    """Move the stored credential's expiry ``minutes`` from now."""
    from models import CREDENTIAL_ID, MicrosoftAuth

    with credential_store._session_factory() as session:
        record = session.get(MicrosoftAuth, CREDENTIAL_ID)
        record.expires_at = utc_now() + timedelta(minutes=minutes)
        session.add(record)
        session.commit()
