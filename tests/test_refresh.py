from datetime import timedelta

from app.core.clock import utcnow
from app.core.security import TokenClaims, sign_refresh_token
from app.models.session import UserSession
from app.services.session_service import REFRESH_GRACE_PERIOD

from conftest import login


def refresh_with(client, token):
    """Present a specific refresh token, the way a non-browser client would."""
    client.cookies.clear()
    return client.post("/auth/refresh-token", headers={"X-Refresh-Token": token})


def session_for(db, token):
    db.expire_all()
    return (
        db.query(UserSession)
        .filter((UserSession.token == token) | (UserSession.previous_token == token))
        .one()
    )


class TestRotation:
    def test_refresh_rotates_both_cookies(self, client, make_user, db):
        make_user()
        login(client)
        old_refresh = client.cookies.get("refresh_token")
        old_access = client.cookies.get("access_token")

        response = client.post("/auth/refresh-token")
        assert response.status_code == 200, response.text
        assert response.json() == {"message": "Token refreshed"}

        new_refresh = client.cookies.get("refresh_token")
        assert new_refresh != old_refresh
        assert client.cookies.get("access_token") != old_access

        session = session_for(db, new_refresh)
        assert session.token == new_refresh
        assert session.previous_token == old_refresh
        assert session.token_rotated_at is not None

    def test_body_token_accepted(self, client, make_user):
        make_user()
        login(client)
        token = client.cookies.get("refresh_token")
        client.cookies.clear()

        response = client.post("/auth/refresh-token", json={"refresh_token": token})
        assert response.status_code == 200

    def test_missing_token(self, client):
        response = client.post("/auth/refresh-token")
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_garbage_token(self, client):
        response = refresh_with(client, "garbage")
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_TOKEN"

    def test_well_signed_token_without_session(self, client, make_user):
        user = make_user()
        response = refresh_with(client, sign_refresh_token(TokenClaims.for_user(user)))
        assert response.status_code == 401
        assert response.json()["code"] == "SESSION_REVOKED"

    def test_expired_session_is_closed(self, client, make_user, db):
        make_user()
        login(client)
        token = client.cookies.get("refresh_token")
        session = session_for(db, token)
        session.expires_at = utcnow() - timedelta(minutes=1)
        db.commit()

        response = client.post("/auth/refresh-token")
        assert response.json()["code"] == "SESSION_REVOKED"
        assert session_for(db, token).is_active is False

    def test_deactivated_user_cannot_refresh(self, client, make_user, db):
        user = make_user()
        login(client)
        user.is_active = False
        db.commit()

        response = client.post("/auth/refresh-token")
        assert response.json()["code"] == "SESSION_REVOKED"


class TestGraceWindow:
    def test_replay_within_window_returns_current_token(self, client, make_user, db):
        make_user()
        login(client)
        original = client.cookies.get("refresh_token")
        client.post("/auth/refresh-token")
        rotated = client.cookies.get("refresh_token")

        response = refresh_with(client, original)
        assert response.status_code == 200, response.text
        # No second rotation: the client is handed the already rotated token
        assert client.cookies.get("refresh_token") == rotated
        assert client.cookies.get("access_token")

        session = session_for(db, rotated)
        assert session.is_active is True
        assert session.token == rotated

    def test_replay_after_window_revokes_session(self, client, make_user, db):
        make_user()
        login(client)
        original = client.cookies.get("refresh_token")
        client.post("/auth/refresh-token")
        rotated = client.cookies.get("refresh_token")

        session = session_for(db, rotated)
        session.token_rotated_at = utcnow() - REFRESH_GRACE_PERIOD - timedelta(seconds=1)
        db.commit()

        response = refresh_with(client, original)
        assert response.status_code == 401
        body = response.json()
        assert body["code"] == "SESSION_REVOKED"
        assert "revoked for security" in body["detail"]

        # The thief's replay also cost the legitimate holder the session
        assert session_for(db, rotated).is_active is False
        response = refresh_with(client, rotated)
        assert response.json()["code"] == "SESSION_REVOKED"

    def test_replay_of_token_from_logged_out_session(self, client, make_user):
        make_user()
        login(client)
        original = client.cookies.get("refresh_token")
        client.post("/auth/refresh-token")
        client.post("/auth/logout")

        response = refresh_with(client, original)
        assert response.json()["code"] == "SESSION_REVOKED"


class TestLogoutAndValidation:
    def test_logout_ends_session_and_clears_cookies(self, client, make_user, db):
        make_user()
        login(client)
        token = client.cookies.get("refresh_token")

        response = client.post("/auth/logout")
        assert response.status_code == 200
        assert not client.cookies.get("refresh_token")
        assert not client.cookies.get("access_token")
        assert session_for(db, token).is_active is False

        response = refresh_with(client, token)
        assert response.json()["code"] == "SESSION_REVOKED"

    def test_logout_is_idempotent(self, client, make_user):
        make_user()
        login(client)
        token = client.cookies.get("refresh_token")
        client.post("/auth/logout")

        assert client.post("/auth/logout", json={"refresh_token": token}).status_code == 200
        assert client.post("/auth/logout").status_code == 200

    def test_validate_session(self, client, make_user):
        make_user()
        assert client.post("/auth/validate-session").json() == {"valid": False, "check_interval": 5000}

        login(client)
        assert client.post("/auth/validate-session").json() == {"valid": True, "check_interval": 5000}
