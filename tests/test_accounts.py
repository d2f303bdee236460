import pytest
from starlette.websockets import WebSocketDisconnect

from app.middleware.audit_middleware import DEACTIVATE_USER
from app.models.audit_log import AuditLog
from app.models.notification import Notification
from app.models.session import UserSession

from conftest import MOBILE_SAFARI, PASSWORD, login


class TestSessionList:
    def test_lists_active_sessions_with_current_flag(self, make_client, make_user):
        make_user()
        laptop = make_client()
        phone = make_client(MOBILE_SAFARI)
        login(laptop)
        phone.post("/auth/force-login", json={"email": "investor@example.com", "password": PASSWORD})

        body = phone.get("/sessions").json()
        assert body["total"] == 1
        session = body["sessions"][0]
        assert session["current"] is True
        assert (session["device"], session["browser"]) == ("Mobile", "Safari")

    def test_requires_authentication(self, client):
        assert client.get("/sessions").status_code == 401

    def test_revoke_other_session(self, make_client, make_user, db):
        user = make_user()
        laptop = make_client()
        login(laptop)

        # A second live session on another device, e.g. left over from an older client
        other = UserSession(
            user_id=user.id, token="other-device-token", device="Mobile", browser="Safari",
            ip_address="", location="Unknown", is_active=True,
            expires_at=db.query(UserSession).one().expires_at,
        )
        db.add(other)
        db.commit()

        listed = laptop.get("/sessions").json()["sessions"]
        assert len(listed) == 2
        current = [s for s in listed if s["current"]]
        assert len(current) == 1
        assert current[0]["browser"] == "Chrome"

        response = laptop.delete(f"/sessions/{other.id}")
        assert response.status_code == 200
        db.refresh(other)
        assert other.is_active is False

        response = laptop.delete(f"/sessions/{other.id}")
        assert response.status_code == 400
        assert response.json()["detail"] == "Session is already revoked"

    def test_cannot_revoke_current_session(self, client, make_user, db):
        make_user()
        login(client)
        session_id = db.query(UserSession).one().id

        response = client.delete(f"/sessions/{session_id}")
        assert response.status_code == 400
        assert response.json()["detail"] == "Cannot revoke your current session"

    def test_cannot_revoke_someone_elses_session(self, make_client, make_user, db):
        make_user()
        make_user(email="other@example.com")
        mine = make_client()
        theirs = make_client(MOBILE_SAFARI)
        login(mine)
        login(theirs, email="other@example.com")

        their_session = db.query(UserSession).filter(UserSession.token == theirs.cookies.get("refresh_token")).one()
        assert mine.delete(f"/sessions/{their_session.id}").status_code == 404
        assert mine.delete("/sessions/not-a-uuid").status_code == 404


class TestNotifications:
    def test_login_alert_is_listed(self, client, make_user):
        make_user()
        login(client)

        body = client.get("/notifications").json()
        assert body["total"] == 1
        note = body["notifications"][0]
        assert note["type"] == "login_alert"
        assert note["is_read"] is False
        assert "Chrome" in note["message"]

    def test_only_own_notifications(self, make_client, make_user, db):
        make_user()
        other = make_user(email="other@example.com")
        db.add(Notification(user_id=other.id, type="security", title="x", message="y"))
        db.commit()

        client = make_client()
        login(client)
        assert client.get("/notifications").json()["total"] == 1


class TestWebSocket:
    def test_rejects_invalid_token(self, client):
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect("/ws/notifications?token=garbage") as ws:
                ws.receive_json()
        assert exc.value.code == 1008

    def test_connects_and_answers_ping(self, client, make_user):
        make_user()
        login(client)
        token = client.cookies.get("access_token")

        with client.websocket_connect(f"/ws/notifications?token={token}") as ws:
            assert ws.receive_json()["type"] == "CONNECTED"
            ws.send_text("ping")
            assert ws.receive_text() == "pong"


class TestAdminDeactivation:
    def test_deactivate_revokes_sessions_and_blocks_access(self, make_client, make_user, db):
        target = make_user()
        make_user(email="admin@example.com", role="admin")

        victim = make_client(MOBILE_SAFARI)
        login(victim)
        admin = make_client()
        login(admin, email="admin@example.com")

        response = admin.put(f"/admin/users/{target.id}/deactivate")
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["sessions_revoked"] == 1
        assert body["user"]["is_active"] is False

        # Still-unexpired access token is refused on the next request
        response = victim.get("/users/me")
        assert response.status_code == 401
        assert response.json()["detail"] == "Account is no longer active"
        assert victim.post("/auth/validate-session").json()["valid"] is False
        assert login(victim).json()["code"] == "INVALID_CREDENTIALS"

        log = db.query(AuditLog).one()
        assert log.action == DEACTIVATE_USER
        assert log.target_id == str(target.id)
        assert log.details["sessions_revoked"] == 1

    def test_reactivate(self, make_client, make_user):
        target = make_user()
        make_user(email="admin@example.com", role="superadmin")
        admin = make_client()
        login(admin, email="admin@example.com")

        admin.put(f"/admin/users/{target.id}/deactivate")
        response = admin.put(f"/admin/users/{target.id}/activate")
        assert response.status_code == 200
        assert response.json()["user"]["is_active"] is True

        assert login(make_client(MOBILE_SAFARI)).status_code == 200

        logs = admin.get("/admin/audit-logs").json()
        assert logs["total"] == 2
        assert [entry["action"] for entry in logs["logs"]] in (
            ["ACTIVATE_USER", "DEACTIVATE_USER"],
            ["DEACTIVATE_USER", "ACTIVATE_USER"],
        )

    def test_admin_cannot_deactivate_self(self, client, make_user):
        admin = make_user(email="admin@example.com", role="admin")
        login(client, email="admin@example.com")
        response = client.put(f"/admin/users/{admin.id}/deactivate")
        assert response.status_code == 400

    def test_regular_user_forbidden(self, client, make_user):
        target = make_user(email="someone@example.com")
        make_user()
        login(client)
        assert client.put(f"/admin/users/{target.id}/deactivate").status_code == 403

    def test_unknown_user(self, client, make_user):
        make_user(role="admin")
        login(client)
        response = client.put("/admin/users/8c4f2a8e-1d7b-4c1e-9a55-2f0c7b0d9e11/deactivate")
        assert response.status_code == 404
