"""Unit tests for the auth service

Tests registration, sign-in and the persisted current user:
- Registration and duplicate emails
- Exact email + password matching
- Passwords never handed out
- Logout
- Profile summary
"""
import pytest

from conftest import run
from iotdash.database import CURRENT_USER_KEY, USERS_KEY
from iotdash.errors import EmailInUse, InvalidCredentials, NotAuthenticated
from iotdash.models import ChannelCreate, Field, User


class TestRegister:
    """Test user registration"""

    def test_register_returns_user_without_password(self, auth):
        user = run(auth.register("alice", "alice@example.com", "secret"))

        assert isinstance(user, User)
        assert user.username == "alice"
        assert user.email == "alice@example.com"
        assert "password" not in user.to_record()
        assert user.created_at.tzinfo is not None

    def test_register_stores_password(self, auth, database):
        run(auth.register("alice", "alice@example.com", "secret"))

        users = run(database.get_collection(USERS_KEY))
        assert len(users) == 1
        assert users[0]["password"] == "secret"
        assert users[0]["createdAt"]

    def test_register_signs_user_in(self, auth, database):
        user = run(auth.register("alice", "alice@example.com", "secret"))

        assert run(auth.get_current_user()) == user
        assert "password" not in run(database.get_item(CURRENT_USER_KEY))

    def test_duplicate_email_rejected(self, auth, owner):
        with pytest.raises(EmailInUse) as exc:
            run(auth.register("alice2", "alice@example.com", "other"))

        assert exc.value.message == "Email already in use"
        assert exc.value.status_code == 409

    def test_users_get_distinct_ids(self, auth):
        first = run(auth.register("alice", "alice@example.com", "secret"))
        second = run(auth.register("bob", "bob@example.com", "secret"))

        assert first.id != second.id


class TestLogin:
    """Test sign-in"""

    def test_login_with_matching_credentials(self, auth, owner):
        run(auth.logout())
        user = run(auth.login("alice@example.com", "secret"))

        assert user.id == owner.id
        assert run(auth.get_current_user()).id == owner.id

    def test_wrong_password_rejected(self, auth, owner):
        with pytest.raises(InvalidCredentials) as exc:
            run(auth.login("alice@example.com", "SECRET"))
        assert exc.value.message == "Invalid email or password"

    def test_unknown_email_rejected(self, auth, owner):
        with pytest.raises(InvalidCredentials):
            run(auth.login("nobody@example.com", "secret"))

    def test_failed_login_keeps_current_user(self, auth, owner):
        with pytest.raises(InvalidCredentials):
            run(auth.login("alice@example.com", "nope"))
        assert run(auth.get_current_user()).id == owner.id

    def test_login_switches_current_user(self, auth, owner, stranger):
        run(auth.login("alice@example.com", "secret"))
        assert run(auth.get_current_user()).id == owner.id


class TestLogout:
    """Test sign-out and the current user record"""

    def test_logout_clears_current_user(self, auth, owner):
        run(auth.logout())
        assert run(auth.get_current_user()) is None

    def test_logout_when_signed_out(self, auth):
        run(auth.logout())
        assert run(auth.get_current_user()) is None

    def test_require_user_when_signed_out(self, auth):
        with pytest.raises(NotAuthenticated):
            run(auth.require_user())


class TestProfileSummary:
    """Test channel counts for the current user"""

    def test_counts_public_and_private(self, auth, channels, weather_channel, public_channel):
        summary = run(auth.get_profile_summary())

        assert summary.user.email == "alice@example.com"
        assert summary.total_channels == 2
        assert summary.public_channels == 1
        assert summary.private_channels == 1

    def test_ignores_other_users_channels(self, auth, channels, weather_channel, stranger):
        run(channels.create_channel(ChannelCreate(
            name="Bob's", fields=[Field(name="x", field_number=1)], is_public=True,
        )))
        summary = run(auth.get_profile_summary())

        assert summary.total_channels == 1
        assert summary.public_channels == 1

    def test_requires_sign_in(self, auth):
        with pytest.raises(NotAuthenticated):
            run(auth.get_profile_summary())
