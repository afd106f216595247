import pytest

from datetime_utils import utc_now
from services.webhook import WebhookReceiver, notification_task_id

SECRET = "test-secret"


@pytest.fixture()
def receiver(task_service, token_manager, remote):
    return WebhookReceiver(
        task_service,
        token_manager,
        client_factory=remote,
        client_state=SECRET,
    )


def _note(change, todo_id, state=SECRET):
    return {
        "changeType": change,
        "clientState": state,
        "resource": f"me/todo/lists/list-1/tasks/{todo_id}",
        "resourceData": {"id": todo_id},
    }


def test_validation_token_is_echoed():
    assert WebhookReceiver.validation_response("abc123") == "abc123"


def test_deleted_unlinks_but_keeps_local_task(receiver, task_service):
    task = task_service.add("Seating chart")
    task_service.mark_synced(task.id, todo_id="ms-9", list_id="list-1", synced_at=utc_now())

    applied = receiver.handle_notifications({"value": [_note("deleted", "ms-9")]})

    assert applied == 1
    stored = task_service.get(task.id)
    assert stored is not None
    assert stored.title == "Seating chart"
    assert stored.microsoft_todo_id is None
    assert stored.last_synced_at is None


def test_wrong_client_state_changes_nothing(receiver, task_service, remote, connected):
    task = task_service.add("Seating chart")
    task_service.mark_synced(task.id, todo_id="ms-9", list_id="list-1", synced_at=utc_now())
    remote.tasks["ms-10"] = {"id": "ms-10", "title": "Sneaky", "status": "notStarted"}

    applied = receiver.handle_notifications(
        {"value": [_note("deleted", "ms-9", state="nope"), _note("created", "ms-10", state=None)]}
    )

    assert applied == 0
    assert task_service.get(task.id).microsoft_todo_id == "ms-9"
    assert task_service.get_by_todo_id("ms-10") is None
    assert remote.calls == []


def test_created_inserts_local_task(receiver, task_service, remote, connected):
    remote.tasks["ms-1"] = {
        "id": "ms-1",
        "title": "Order cake",
        "status": "notStarted",
        "importance": "low",
        "dueDateTime": {"dateTime": "2025-05-01T00:00:00.0000000", "timeZone": "UTC"},
    }

    assert receiver.handle_notifications({"value": [_note("created", "ms-1")]}) == 1

    task = task_service.get_by_todo_id("ms-1")
    assert task.title == "Order cake"
    assert task.priority == "low"
    assert task.due_date.isoformat() == "2025-05-01"
    assert task.microsoft_list_id == "list-1"
    assert task.last_synced_at is not None


def test_updated_overwrites_existing_task(receiver, task_service, remote, connected):
    task = task_service.add("Order cake")
    task_service.mark_synced(task.id, todo_id="ms-1", list_id="list-1", synced_at=utc_now())
    remote.tasks["ms-1"] = {"id": "ms-1", "title": "Order cake", "status": "completed"}

    assert receiver.handle_notifications({"value": [_note("updated", "ms-1")]}) == 1

    stored = task_service.get(task.id)
    assert stored.completed is True
    assert len(task_service.list_all()) == 1


def test_created_for_known_task_does_not_duplicate(receiver, task_service, remote, connected):
    task = task_service.add("Order cake")
    task_service.mark_synced(task.id, todo_id="ms-1", list_id="list-1", synced_at=utc_now())
    remote.tasks["ms-1"] = {"id": "ms-1", "title": "Order cake", "status": "notStarted"}

    receiver.handle_notifications({"value": [_note("created", "ms-1")]})

    assert len(task_service.list_all()) == 1


def test_vanished_task_is_skipped(receiver, task_service, connected):
    assert receiver.handle_notifications({"value": [_note("updated", "ms-missing")]}) == 0
    assert task_service.list_all() == []


def test_remote_failure_is_isolated_per_entry(receiver, task_service, remote, connected):
    remote.tasks["ms-2"] = {"id": "ms-2", "title": "Hire DJ", "status": "notStarted"}
    remote.fail("get_task", "ms-1", status=503)

    applied = receiver.handle_notifications(
        {"value": [_note("updated", "ms-1"), _note("created", "ms-2")]}
    )

    assert applied == 1
    assert task_service.get_by_todo_id("ms-2") is not None


def test_not_connected_ignores_upserts(receiver, task_service):
    assert receiver.handle_notifications({"value": [_note("created", "ms-1")]}) == 0
    assert task_service.list_all() == []


def test_malformed_payloads_are_ignored(receiver):
    assert receiver.handle_notifications({}) == 0
    assert receiver.handle_notifications({"value": ["junk", None]}) == 0
    assert receiver.handle_notifications([]) == 0


def test_notification_task_id_variants():
    assert notification_task_id({"resourceData": {"id": "abc"}}) == "abc"
    assert notification_task_id({"resource": "me/todo/lists/l1/tasks/xyz"}) == "xyz"
    assert notification_task_id({"resource": "Users/u1/todo/Lists/l1/tasks('q1')"}) == "q1"
    assert notification_task_id({}) is None
