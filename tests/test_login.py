from app.models.notification import Notification
from app.models.session import UserSession
from app.services.credential_service import GOOGLE_PROVIDER, create_user_with_account

from conftest import DESKTOP_FIREFOX, MOBILE_SAFARI, PASSWORD, login


def active_sessions(db, user):
    db.expire_all()
    return (
        db.query(UserSession)
        .filter(UserSession.user_id == user.id, UserSession.is_active == True)  # noqa: E712
        .all()
    )


class TestPasswordLogin:
    def test_success_sets_cookies_and_returns_profile(self, client, make_user, db, mailbox):
        user = make_user()
        response = login(client, email="  INVESTOR@example.com")
        assert response.status_code == 200, response.text

        body = response.json()
        assert body["user"]["email"] == "investor@example.com"
        assert body["sessions_invalidated"] == 0
        assert "refresh_token" not in body
        assert client.cookies.get("access_token")
        assert client.cookies.get("refresh_token")

        sessions = active_sessions(db, user)
        assert len(sessions) == 1
        assert (sessions[0].device, sessions[0].browser) == ("Desktop", "Chrome")
        assert sessions[0].token == client.cookies.get("refresh_token")

        assert db.query(Notification).filter(Notification.type == "login_alert").count() == 1
        assert mailbox.login_alerts == [("investor@example.com", "Desktop", "Chrome")]

    def test_access_cookie_authenticates(self, client, make_user):
        make_user()
        login(client)
        response = client.get("/users/me")
        assert response.status_code == 200
        assert response.json()["email"] == "investor@example.com"

    def test_wrong_password_and_unknown_email_are_indistinguishable(self, client, make_user):
        make_user()
        wrong = login(client, password="not-the-password")
        unknown = login(client, email="nobody@example.com")
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()
        assert wrong.json()["code"] == "INVALID_CREDENTIALS"

    def test_unverified_email(self, client, make_user):
        make_user(verified=False)
        response = login(client)
        assert response.status_code == 403
        assert response.json()["code"] == "EMAIL_NOT_VERIFIED"
        assert response.json()["requiresVerification"] is True

    def test_unverified_email_with_wrong_password_reveals_nothing(self, client, make_user):
        make_user(verified=False)
        response = login(client, password="not-the-password")
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_deactivated_account(self, client, make_user, db):
        user = make_user()
        user.is_active = False
        db.commit()
        response = login(client)
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_oauth_only_account_has_no_password(self, client, db):
        create_user_with_account(
            db, email="google.only@example.com", provider=GOOGLE_PROVIDER,
            provider_id="google-123", email_verified=True,
        )
        response = login(client, email="google.only@example.com")
        assert response.status_code == 401
        assert response.json()["code"] == "INVALID_CREDENTIALS"

    def test_unauthenticated_profile_request(self, client):
        response = client.get("/users/me")
        assert response.status_code == 401


class TestSingleDevicePolicy:
    def test_same_device_relogin_replaces_session(self, client, make_user, db):
        user = make_user()
        login(client)
        first_refresh = client.cookies.get("refresh_token")

        response = login(client)
        assert response.status_code == 200
        assert response.json()["sessions_invalidated"] == 1

        sessions = active_sessions(db, user)
        assert len(sessions) == 1
        assert sessions[0].token != first_refresh

    def test_other_device_is_refused_with_details(self, make_client, make_user, db):
        user = make_user()
        laptop = make_client()
        phone = make_client(MOBILE_SAFARI)
        login(laptop)

        response = login(phone)
        assert response.status_code == 409
        body = response.json()
        assert body["code"] == "SESSION_CONFLICT"
        assert body["requiresForceLogin"] is True
        assert body["existingSession"]["device"] == "Desktop"
        assert body["existingSession"]["browser"] == "Chrome"
        assert body["existingSession"]["lastActive"]
        assert body["newDevice"] == {"device": "Mobile", "browser": "Safari", "location": "Unknown"}
        assert "requiresTwoFactor" not in body

        # The refused login left the existing session alone and issued nothing
        assert not phone.cookies.get("refresh_token")
        sessions = active_sessions(db, user)
        assert len(sessions) == 1
        assert sessions[0].token == laptop.cookies.get("refresh_token")

    def test_same_device_other_browser_conflicts(self, make_client, make_user):
        make_user()
        login(make_client())
        response = login(make_client(DESKTOP_FIREFOX))
        assert response.status_code == 409

    def test_force_login_displaces_every_session(self, make_client, make_user, db):
        user = make_user()
        laptop = make_client()
        phone = make_client(MOBILE_SAFARI)
        login(laptop)

        response = phone.post("/auth/force-login", json={"email": "investor@example.com", "password": PASSWORD})
        assert response.status_code == 200, response.text
        assert response.json()["sessions_invalidated"] == 1

        sessions = active_sessions(db, user)
        assert len(sessions) == 1
        assert (sessions[0].device, sessions[0].browser) == ("Mobile", "Safari")

        # The laptop finds out on its next poll
        response = laptop.post("/auth/validate-session")
        assert response.json() == {"valid": False, "check_interval": 5000}

    def test_force_login_rechecks_password(self, make_client, make_user, db):
        user = make_user()
        laptop = make_client()
        login(laptop)

        response = make_client(MOBILE_SAFARI).post(
            "/auth/force-login", json={"email": "investor@example.com", "password": "guessing"},
        )
        assert response.status_code == 401
        assert len(active_sessions(db, user)) == 1

    def test_force_login_without_existing_sessions(self, client, make_user):
        make_user()
        response = client.post("/auth/force-login", json={"email": "investor@example.com", "password": PASSWORD})
        assert response.status_code == 200
        assert response.json()["sessions_invalidated"] == 0
