from datetime import datetime, timezone

import pytest

from services.microsoft_todo import GraphError, MicrosoftTodoClient


class FakeResponse:
    def __init__(self, status_code=200, payload=None, reason="OK"):
        self.status_code = status_code
        self._payload = payload
        self.reason = reason
        self.content = b"" if payload is None else b"{...}"

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, headers=None, json=None, timeout=None):
        self.requests.append({"method": method, "url": url, "headers": headers, "json": json})
        return self.responses.pop(0)


def _client(*responses):
    session = FakeSession(*responses)
    clock = lambda: datetime(2025, 1, 1, tzinfo=timezone.utc)  # noqa: E731
    return MicrosoftTodoClient("token-abc", session=session, clock=clock), session


def test_requests_carry_bearer_token_and_base_url():
    client, session = _client(FakeResponse(payload={"id": "t1", "title": "Cake"}))

    assert client.get_task("l1", "t1")["title"] == "Cake"

    sent = session.requests[0]
    assert sent["method"] == "GET"
    assert sent["url"] == "https://graph.microsoft.com/v1.0/me/todo/lists/l1/tasks/t1"
    assert sent["headers"]["Authorization"] == "Bearer token-abc"


def test_no_content_returns_empty_dict():
    client, _ = _client(FakeResponse(status_code=204))
    assert client.update_task("l1", "t1", {"title": "x"}) == {}


def test_error_uses_graph_message():
    client, _ = _client(
        FakeResponse(
            status_code=400,
            payload={"error": {"code": "BadRequest", "message": "Invalid importance"}},
            reason="Bad Request",
        )
    )
    with pytest.raises(GraphError) as info:
        client.create_task("l1", {"title": "x"})
    assert info.value.status == 400
    assert info.value.message == "Invalid importance"
    assert not info.value.not_found


def test_error_without_body_falls_back_to_reason():
    client, _ = _client(FakeResponse(status_code=502, reason="Bad Gateway"))
    with pytest.raises(GraphError) as info:
        client.list_tasks("l1")
    assert info.value.message == "Bad Gateway"


def test_list_tasks_follows_next_link():
    next_url = "https://graph.microsoft.com/v1.0/me/todo/lists/l1/tasks?$skip=1"
    client, session = _client(
        FakeResponse(payload={"value": [{"id": "a"}], "@odata.nextLink": next_url}),
        FakeResponse(payload={"value": [{"id": "b"}]}),
    )

    assert [t["id"] for t in client.list_tasks("l1")] == ["a", "b"]
    assert session.requests[1]["url"] == next_url


def test_delete_ignores_missing_task():
    client, _ = _client(FakeResponse(status_code=404, payload={"error": {"message": "gone"}}))
    client.delete_task("l1", "t1")


def test_delete_raises_other_errors():
    client, _ = _client(FakeResponse(status_code=403, payload={"error": {"message": "denied"}}))
    with pytest.raises(GraphError):
        client.delete_task("l1", "t1")


def test_ensure_list_reuses_existing():
    client, session = _client(
        FakeResponse(payload={"value": [{"id": "l9", "displayName": "Wedding Planning"}]})
    )
    assert client.ensure_list("Wedding Planning")["id"] == "l9"
    assert len(session.requests) == 1


def test_ensure_list_creates_missing():
    client, session = _client(
        FakeResponse(payload={"value": [{"id": "l1", "displayName": "Groceries"}]}),
        FakeResponse(status_code=201, payload={"id": "l2", "displayName": "Wedding Planning"}),
    )
    assert client.ensure_list("Wedding Planning")["id"] == "l2"
    assert session.requests[1]["json"] == {"displayName": "Wedding Planning"}


def test_subscribe_body():
    client, session = _client(
        FakeResponse(status_code=201, payload={"id": "sub-1", "expirationDateTime": "x"})
    )

    client.subscribe("l1", "https://example.test/hook", "s3cret")

    body = session.requests[0]["json"]
    assert body["changeType"] == "created,updated,deleted"
    assert body["resource"] == "/me/todo/lists/l1/tasks"
    assert body["notificationUrl"] == "https://example.test/hook"
    assert body["clientState"] == "s3cret"
    # 4230 minutes after the fixed clock
    assert body["expirationDateTime"] == "2025-01-03T22:30:00Z"


def test_renew_patches_expiry():
    client, session = _client(FakeResponse(payload={"id": "sub-1"}))
    client.renew("sub-1")
    sent = session.requests[0]
    assert sent["method"] == "PATCH"
    assert sent["url"].endswith("/subscriptions/sub-1")
    assert sent["json"] == {"expirationDateTime": "2025-01-03T22:30:00Z"}
