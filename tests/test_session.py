from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from google.auth.exceptions import TransportError
from google.oauth2.credentials import Credentials

from gup.auth_flow import AuthorizationFlow
from gup.config import Config
from gup.errors import ConfigError, NotAuthenticatedError
from gup.models import CredentialRecord
from gup.session import Session
from gup.token_refresh import TokenRefresher


@pytest.fixture
def session(config, store) -> Session:
    return Session(config, store=store, open_browser=False)


class TestGetClient:
    def test_fresh_record(self, session, store, fresh_record) -> None:
        store.save(fresh_record)
        creds = session.get_client()
        assert isinstance(creds, Credentials)
        assert creds.token == "ya29.fresh"
        assert creds.refresh_token == "1//refresh"
        assert creds.client_id == "cid.apps.googleusercontent.com"
        assert creds.valid

    def test_same_record_reuses_credentials(self, session, store, fresh_record) -> None:
        store.save(fresh_record)
        assert session.get_client() is session.get_client()

    def test_record_changed_on_disk(self, session, store, fresh_record) -> None:
        """Another process refreshing the token is picked up on the next call."""
        store.save(fresh_record)
        first = session.get_client()
        fresh_record.access_token = "ya29.other-process"
        store.save(fresh_record)
        second = session.get_client()
        assert second is not first
        assert second.token == "ya29.other-process"

    def test_expired_record_refreshes_exactly_once(self, session, store, expired_record) -> None:
        store.save(expired_record)
        refreshed = Credentials(token="ya29.new")
        with patch.object(TokenRefresher, "_request_refresh", return_value=refreshed) as req:
            refreshed.expiry = _naive_in(3600)
            creds = session.get_client()
            session.get_client()
        req.assert_called_once()
        assert creds.token == "ya29.new"
        assert store.load().refresh_token == "1//refresh"

    def test_non_interactive_without_token(self, session) -> None:
        with pytest.raises(NotAuthenticatedError):
            session.get_client(interactive=False)

    def test_interactive_without_token_runs_flow(self, session, fresh_record) -> None:
        with patch.object(AuthorizationFlow, "run", return_value=fresh_record) as run:
            creds = session.get_client()
        run.assert_called_once()
        assert run.call_args.kwargs["force"] is True
        assert creds.token == "ya29.fresh"

    def test_corrupt_record_runs_flow(self, session, store, fresh_record) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("not json")
        with patch.object(AuthorizationFlow, "run", return_value=fresh_record) as run:
            session.get_client()
        run.assert_called_once()

    def test_missing_client_settings(self, store, fresh_record) -> None:
        store.save(fresh_record)
        with pytest.raises(ConfigError):
            Session(Config(path=store.path.parent / "c.json"), store=store).get_client()


class TestLifecycle:
    def test_logout(self, session, store, fresh_record) -> None:
        store.save(fresh_record)
        assert session.is_authenticated()
        assert session.logout() is True
        assert not session.is_authenticated()
        assert session.logout() is False

    def test_status_does_not_refresh(self, session, store, expired_record) -> None:
        store.save(expired_record)
        with patch.object(TokenRefresher, "_request_refresh") as req:
            assert session.status() == expired_record
        req.assert_not_called()

    def test_status_corrupt(self, session, store) -> None:
        store.path.parent.mkdir(parents=True)
        store.path.write_text("[]")
        assert session.status() is None
        assert session.is_authenticated()

    def test_authenticate_passes_timeout(self, session, fresh_record) -> None:
        with patch.object(AuthorizationFlow, "run", return_value=fresh_record) as run:
            assert session.authenticate(force=True, timeout=7) == fresh_record
        run.assert_called_once_with(force=True, timeout=7)


class TestRevoke:
    def test_revoke_posts_refresh_token(self, session, store, fresh_record) -> None:
        store.save(fresh_record)
        request = MagicMock(return_value=MagicMock(status=200))
        with patch("gup.session.Request", return_value=request):
            assert session.revoke() is True
        kwargs = request.call_args.kwargs
        assert kwargs["method"] == "POST"
        assert "token=1%2F%2Frefresh" in kwargs["body"]
        assert not store.exists()

    def test_revoke_offline_still_logs_out(self, session, store, fresh_record) -> None:
        store.save(fresh_record)
        request = MagicMock(side_effect=TransportError("offline"))
        with patch("gup.session.Request", return_value=request):
            assert session.revoke() is False
        assert not store.exists()

    def test_revoke_without_token(self, session) -> None:
        with patch("gup.session.Request") as req:
            assert session.revoke() is False
        req.assert_not_called()


def _naive_in(seconds: int) -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(seconds=seconds)


def test_record_round_trip_through_client(session, store) -> None:
    """Credentials built from a record carry its expiry as naive UTC."""
    record = CredentialRecord("t", "r", 1_735_689_600_000, "")
    store.save(record)
    creds = session._client_for(record)
    assert creds.expiry.tzinfo is None
    assert creds.expiry.isoformat() == "2025-01-01T00:00:00"
