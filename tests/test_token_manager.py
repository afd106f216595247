from datetime import timedelta

from conftest import FakeOAuth, make_expiring
from datetime_utils import utc_now
from services.credential_store import expiry_from_tokens
from services.microsoft_auth import TokenManager


def test_no_record_means_not_connected(token_manager, fake_oauth):
    assert token_manager.get_valid_credential() is None
    assert fake_oauth.refresh_calls == []


def test_fresh_token_is_returned_without_refresh(token_manager, fake_oauth, connected):
    credential = token_manager.get_valid_credential()
    assert credential.access_token == "stored-access"
    assert credential.list_id == "list-1"
    assert fake_oauth.refresh_calls == []


def test_token_close_to_expiry_is_refreshed_and_persisted(
    token_manager, fake_oauth, credential_store, connected
):
    make_expiring(credential_store, minutes=2)

    credential = token_manager.get_valid_credential()

    assert fake_oauth.refresh_calls == ["stored-refresh"]
    assert credential.access_token == "fresh-access"
    record = credential_store.get()
    assert record.access_token == "fresh-access"
    assert record.refresh_token == "fresh-refresh"
    assert record.expires_at > utc_now() + timedelta(minutes=50)


def test_refresh_without_rotation_keeps_refresh_token(credential_store, connected):
    oauth = FakeOAuth(tokens={"access_token": "next-access", "expires_in": 3600})
    manager = TokenManager(credential_store, oauth)
    make_expiring(credential_store, minutes=-10)

    assert manager.get_valid_credential().access_token == "next-access"
    assert credential_store.get().refresh_token == "stored-refresh"


def test_failed_refresh_returns_none(credential_store, connected):
    manager = TokenManager(credential_store, FakeOAuth(fail=True))
    make_expiring(credential_store, minutes=1)

    assert manager.get_valid_credential() is None
    assert credential_store.get().access_token == "stored-access"


def test_refresh_margin_is_five_minutes(token_manager):
    now = utc_now()
    assert token_manager.needs_refresh(now + timedelta(minutes=4)) is True
    assert token_manager.needs_refresh(now + timedelta(minutes=6)) is False
    assert token_manager.needs_refresh(None) is True


def test_expiry_from_tokens():
    now = utc_now()
    assert expiry_from_tokens({"expires_in": 3600}, now) == now + timedelta(hours=1)
    assert expiry_from_tokens({"expires_in": "bogus"}, now) == now
