"""Tests for session state and the authentication manager."""

import json
import os
import stat

import pytest

from storefront_server.auth import AuthManager, SessionState
from storefront_server.models import AuthCredentials, SessionData, UserProfile


@pytest.fixture
def session_file(tmp_path):
    return str(tmp_path / "session.json")


@pytest.fixture
def auth(supabase, session_file):
    return AuthManager(supabase, session_file=session_file)


class TestSessionState:
    def test_subscribers_are_notified(self):
        state = SessionState()
        seen = []
        state.subscribe(seen.append)

        session = SessionData(access_token="t", user=UserProfile(id="1"), is_authenticated=True)
        state.set(session)

        assert seen == [session]
        assert state.user.id == "1"

    def test_unsubscribe(self):
        state = SessionState()
        seen = []
        unsubscribe = state.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        state.set(SessionData())

        assert seen == []

    def test_failing_listener_does_not_block_others(self):
        state = SessionState()
        seen = []

        def broken(_):
            raise RuntimeError("boom")

        state.subscribe(broken)
        state.subscribe(seen.append)
        state.set(SessionData())

        assert len(seen) == 1

    def test_unauthenticated_session_has_no_user(self):
        state = SessionState(SessionData(user=UserProfile(id="1"), is_authenticated=False))
        assert state.user is None


class TestAuthManager:
    """Sign-in persists the session; sign-out removes it."""

    def test_sign_in_persists_session(self, auth, session_file):
        ok = auth.sign_in(AuthCredentials(email="shopper@example.com", password="secret123"))

        assert ok
        assert auth.is_authenticated()
        assert auth.current_user.email == "shopper@example.com"
        assert auth.current_user.full_name == "Sam Shopper"
        assert auth.access_token == "token-user-1"

        with open(session_file) as f:
            saved = json.load(f)
        assert saved["access_token"] == "token-user-1"
        assert stat.S_IMODE(os.stat(session_file).st_mode) == 0o600

    def test_session_restored_on_start(self, auth, supabase, session_file):
        auth.sign_in(AuthCredentials(email="shopper@example.com", password="secret123"))

        restored = AuthManager(supabase, session_file=session_file)

        assert restored.is_authenticated()
        assert restored.current_user.id == "user-1"

    def test_bad_credentials(self, auth, session_file):
        ok = auth.sign_in(AuthCredentials(email="shopper@example.com", password="wrong"))

        assert not ok
        assert not auth.is_authenticated()
        assert auth.access_token is None
        assert not os.path.exists(session_file)

    def test_backend_outage_fails_sign_in(self, auth, backend):
        backend.fail = True
        assert not auth.sign_in(AuthCredentials(email="shopper@example.com", password="secret123"))

    def test_sign_out_clears_session_and_notifies(self, auth, backend, session_file):
        auth.sign_in(AuthCredentials(email="shopper@example.com", password="secret123"))
        seen = []
        auth.state.subscribe(seen.append)

        auth.sign_out()

        assert not auth.is_authenticated()
        assert not os.path.exists(session_file)
        assert seen and seen[-1].is_authenticated is False
        assert backend.count("POST", "/auth/v1/logout") == 1

    def test_sign_out_survives_remote_failure(self, auth, backend):
        auth.sign_in(AuthCredentials(email="shopper@example.com", password="secret123"))
        backend.fail = True

        auth.sign_out()

        assert not auth.is_authenticated()

    def test_sign_up(self, auth, backend):
        ok = auth.sign_up(AuthCredentials(email="new@example.com", password="pw123456"), "New Person")

        assert ok
        assert backend.users["new@example.com"]["user"]["user_metadata"]["full_name"] == "New Person"
        assert not auth.is_authenticated()

    def test_sign_up_existing_account(self, auth):
        assert not auth.sign_up(
            AuthCredentials(email="shopper@example.com", password="x"), "Sam"
        )

    def test_corrupt_session_file_starts_fresh(self, supabase, session_file):
        with open(session_file, "w") as f:
            f.write("{broken")

        manager = AuthManager(supabase, session_file=session_file)

        assert not manager.is_authenticated()
