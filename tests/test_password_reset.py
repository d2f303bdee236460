from datetime import timedelta
from urllib.parse import parse_qs, urlparse

from app.core.clock import utcnow
from app.models.notification import Notification
from app.models.otp import PasswordResetToken
from app.models.user import Account
from app.services.credential_service import GOOGLE_PROVIDER, create_user_with_account

from conftest import MOBILE_SAFARI, login

NEW_PASSWORD = "a-brand-new-passphrase"


def request_reset(client, mailbox, email="investor@example.com"):
    response = client.post("/auth/forgot-password", json={"email": email})
    assert response.status_code == 200
    link = mailbox.reset_links[email]
    return parse_qs(urlparse(link).query)["token"][0]


def reset(client, token, password=NEW_PASSWORD):
    return client.post("/auth/reset-password", json={"token": token, "new_password": password})


class TestForgotPassword:
    def test_same_answer_for_known_and_unknown_email(self, client, make_user, mailbox):
        make_user()
        known = client.post("/auth/forgot-password", json={"email": "investor@example.com"})
        unknown = client.post("/auth/forgot-password", json={"email": "ghost@example.com"})

        assert known.status_code == unknown.status_code == 200
        assert known.json() == unknown.json() == {"message": "If that email exists, a reset link has been sent"}
        assert list(mailbox.reset_links) == ["investor@example.com"]

    def test_link_points_at_frontend(self, client, make_user, mailbox):
        make_user()
        request_reset(client, mailbox)
        assert mailbox.reset_links["investor@example.com"].startswith("http://frontend.test/reset-password?token=")

    def test_new_request_replaces_old_token(self, client, make_user, mailbox, db):
        make_user()
        first = request_reset(client, mailbox)
        second = request_reset(client, mailbox)

        assert first != second
        assert db.query(PasswordResetToken).count() == 1
        assert reset(client, first).json()["code"] == "INVALID_RESET_TOKEN"
        assert reset(client, second).status_code == 200


class TestResetPassword:
    def test_reset_changes_password_and_signs_out_everywhere(self, make_client, make_user, mailbox, db):
        make_user()
        laptop = make_client()
        login(laptop)

        phone = make_client(MOBILE_SAFARI)
        token = request_reset(phone, mailbox)
        response = reset(phone, token)
        assert response.status_code == 200, response.text

        assert laptop.post("/auth/validate-session").json()["valid"] is False
        assert login(phone).json()["code"] == "INVALID_CREDENTIALS"
        assert login(phone, password=NEW_PASSWORD).status_code == 200

        notes = db.query(Notification).filter(Notification.type == "security").all()
        assert [n.title for n in notes] == ["Password changed"]

    def test_token_is_single_use(self, client, make_user, mailbox):
        make_user()
        token = request_reset(client, mailbox)
        assert reset(client, token).status_code == 200

        response = reset(client, token, password="yet-another-passphrase")
        assert response.status_code == 400
        assert response.json()["code"] == "RESET_TOKEN_USED"

    def test_expired_token_is_deleted(self, client, make_user, mailbox, db):
        make_user()
        token = request_reset(client, mailbox)
        record = db.query(PasswordResetToken).one()
        record.expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        response = reset(client, token)
        assert response.json()["code"] == "RESET_TOKEN_EXPIRED"
        assert db.query(PasswordResetToken).count() == 0

    def test_unknown_token(self, client):
        response = reset(client, "f" * 64)
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_RESET_TOKEN"

    def test_weak_new_password(self, client, make_user, mailbox):
        make_user()
        token = request_reset(client, mailbox)
        assert reset(client, token, password="short").status_code == 422

    def test_oauth_only_user_gains_a_password(self, client, mailbox, db):
        create_user_with_account(
            db, email="google.only@example.com", provider=GOOGLE_PROVIDER,
            provider_id="google-123", email_verified=True,
        )
        token = request_reset(client, mailbox, email="google.only@example.com")
        assert reset(client, token).status_code == 200

        assert {a.provider for a in db.query(Account).all()} == {GOOGLE_PROVIDER, "credentials"}
        assert login(client, email="google.only@example.com", password=NEW_PASSWORD).status_code == 200
