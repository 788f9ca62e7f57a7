"""
Authentication, sessions and account provisioning.
"""

from datetime import timedelta

import pytest

from tailorshop.models import SessionToken, User
from tailorshop.services import auth_service, session_service
from tailorshop.services.auth_service import PasswordValidationError
from tailorshop.time_utils import utcnow


PASSWORD = "Password123!"
TEST_BCRYPT_ROUNDS = 4


def get_auth_token(client, username, password):
    resp = client.post("/api/auth/login", json={"username": username, "password": password})
    return resp.json.get("token") if resp.status_code == 200 else None


def auth_headers(token):
    return {"Authorization": f"Bearer {token}"}


class TestLogin:

    def test_login_returns_token_and_permissions(self, client, tailor):
        resp = client.post("/api/auth/login", json={"username": "Tailor", "password": PASSWORD})
        assert resp.status_code == 200
        assert resp.json["user"]["role"] == "tailor"
        assert "MARK_STITCHED" in resp.json["permissions"]
        assert "ADD_PAYMENT" not in resp.json["permissions"]
        assert resp.json["token"]

    def test_bad_password(self, client, tailor):
        resp = client.post("/api/auth/login", json={"username": "tailor", "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={"username": "x"}).status_code == 400

    def test_inactive_user_cannot_login(self, client, db_session, tailor):
        tailor.is_active = False
        db_session.commit()
        assert get_auth_token(client, "tailor", PASSWORD) is None

    def test_me_and_logout(self, client, manager):
        token = get_auth_token(client, "manager", PASSWORD)
        me = client.get("/api/auth/me", headers=auth_headers(token))
        assert me.status_code == 200
        assert me.json["user"]["username"] == "manager"

        assert client.post("/api/auth/logout", headers=auth_headers(token)).status_code == 200
        assert client.get("/api/auth/me", headers=auth_headers(token)).status_code == 401


class TestSessions:

    def test_token_is_stored_hashed(self, db_session, manager):
        session, token = session_service.create_session(manager.id)
        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token
        assert session_service.validate_session(token).id == manager.id

    def test_idle_timeout(self, db_session, manager):
        session, token = session_service.create_session(manager.id)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db_session.commit()

        assert session_service.validate_session(token) is None
        assert db_session.get(SessionToken, session.id).is_revoked is True

    def test_absolute_timeout(self, db_session, manager):
        session, token = session_service.create_session(manager.id)
        session.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()
        assert session_service.validate_session(token) is None

    def test_deactivated_user(self, db_session, manager):
        _, token = session_service.create_session(manager.id)
        manager.is_active = False
        db_session.commit()
        assert session_service.validate_session(token) is None

    def test_cleanup_removes_old_revoked(self, db_session, manager):
        old, _ = session_service.create_session(manager.id)
        old.created_at = utcnow() - timedelta(days=40)
        old.is_revoked = True
        session_service.create_session(manager.id)
        db_session.commit()

        assert session_service.cleanup_expired_sessions() == 1
        assert db_session.query(SessionToken).count() == 1


class TestProvisioning:

    def test_username_is_normalized(self, db_session):
        user = auth_service.create_user("  Saeed ", "Saeed", PASSWORD, "tailor", rounds=TEST_BCRYPT_ROUNDS)
        assert user.username == "saeed"
        assert auth_service.authenticate("SAEED", PASSWORD).id == user.id

    def test_duplicate_username(self, db_session, tailor):
        with pytest.raises(ValueError):
            auth_service.create_user("tailor", "Other", PASSWORD, "tailor", rounds=TEST_BCRYPT_ROUNDS)

    def test_unknown_role(self, db_session):
        with pytest.raises(ValueError):
            auth_service.create_user("boss", "Boss", PASSWORD, "admin", rounds=TEST_BCRYPT_ROUNDS)
        assert db_session.query(User).count() == 0

    @pytest.mark.parametrize("password", ["short1!", "alllower123!", "ALLUPPER123!", "NoDigits!!", "NoSpecial123"])
    def test_weak_passwords(self, db_session, password):
        with pytest.raises(PasswordValidationError):
            auth_service.create_user("weak", "Weak", password, "tailor", rounds=TEST_BCRYPT_ROUNDS)


class TestCli:

    def test_users_create_and_list(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--username", "hamad", "--name", "Hamad",
            "--password", PASSWORD, "--role", "tailor",
        ])
        assert result.exit_code == 0, result.output
        assert "PASS Created user: hamad" in result.output

        result = runner.invoke(args=["users", "list", "--role", "tailor"])
        assert "hamad" in result.output

    def test_users_create_rejects_weak_password(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=[
            "users", "create", "--username", "x", "--name", "X",
            "--password", "weak", "--role", "manager",
        ])
        assert result.exit_code != 0
        assert db_session.query(User).count() == 0

    def test_orders_list(self, app, db_session, make_order):
        make_order(serial_number="9001", customer_name="Turki")
        result = app.test_cli_runner().invoke(args=["orders", "list"])
        assert result.exit_code == 0
        assert "9001" in result.output
        assert "400.00" in result.output
