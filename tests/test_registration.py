from datetime import timedelta

from app.core.clock import utcnow
from app.models.notification import Notification
from app.models.otp import OTPRecord
from app.models.referral import Referral, Transaction
from app.models.session import UserSession
from app.models.user import User
from app.services import referral_service
from app.services.otp_service import OTP_MAX_ATTEMPTS, create_otp_record
from app.services.referral_service import REFERRAL_BONUS

from conftest import PASSWORD


def register(client, email="new.investor@example.com", **extra):
    body = {
        "email": email,
        "password": PASSWORD,
        "first_name": "Grace",
        "last_name": "Hopper",
        **extra,
    }
    return client.post("/auth/register", json=body)


def wrong_code(code):
    return "000000" if code != "000000" else "111111"


class TestRegister:
    def test_creates_unverified_user_and_emails_code(self, client, db, mailbox):
        response = register(client, email="  New.Investor@Example.com ")
        assert response.status_code == 201, response.text
        assert response.json()["email"] == "new.investor@example.com"

        user = db.query(User).filter(User.email == "new.investor@example.com").one()
        assert user.email_verified is False
        assert len(user.referral_code) == 8
        assert mailbox.codes["new.investor@example.com"].isdigit()
        assert len(mailbox.codes["new.investor@example.com"]) == 6

        # Only the hash is stored
        record = db.query(OTPRecord).filter(OTPRecord.email == user.email).one()
        assert record.code_hash != mailbox.codes[user.email]

    def test_no_tokens_before_verification(self, client):
        response = register(client)
        assert "access_token" not in response.cookies
        assert "refresh_token" not in response.cookies

    def test_duplicate_email_conflicts(self, client, make_user):
        make_user(email="taken@example.com")
        response = register(client, email="TAKEN@example.com")
        assert response.status_code == 409

    def test_short_password_rejected(self, client):
        response = client.post(
            "/auth/register",
            json={"email": "a@example.com", "password": "short", "first_name": "A", "last_name": "B"},
        )
        assert response.status_code == 422

    def test_unknown_referral_code_rejected(self, client, db):
        response = register(client, referral_code="nope1234")
        assert response.status_code == 400
        assert db.query(User).count() == 0


class TestVerifyOTP:
    def test_verification_signs_in(self, client, db, mailbox):
        register(client)
        code = mailbox.codes["new.investor@example.com"]

        response = client.post("/auth/verify-otp", json={"email": "new.investor@example.com", "otp": code})
        assert response.status_code == 200, response.text
        body = response.json()
        assert body["user"]["email_verified"] is True
        assert "access_token" not in body
        assert client.cookies.get("access_token")
        assert client.cookies.get("refresh_token")

        assert db.query(UserSession).filter(UserSession.is_active == True).count() == 1  # noqa: E712
        assert db.query(OTPRecord).count() == 0
        assert mailbox.login_alerts == [("new.investor@example.com", "Desktop", "Chrome")]

    def test_code_is_single_use(self, client, mailbox):
        register(client)
        code = mailbox.codes["new.investor@example.com"]
        client.post("/auth/verify-otp", json={"email": "new.investor@example.com", "otp": code})

        response = client.post("/auth/verify-otp", json={"email": "new.investor@example.com", "otp": code})
        assert response.status_code == 400
        assert response.json()["code"] == "ALREADY_VERIFIED"

    def test_wrong_code_counts_down_then_locks(self, client, db, mailbox):
        register(client)
        code = mailbox.codes["new.investor@example.com"]
        bad = wrong_code(code)

        for attempt in range(1, OTP_MAX_ATTEMPTS + 1):
            response = client.post("/auth/verify-otp", json={"email": "new.investor@example.com", "otp": bad})
            assert response.status_code == 400
            assert response.json()["code"] == "INVALID_OTP"
            assert response.json()["attemptsRemaining"] == OTP_MAX_ATTEMPTS - attempt

        # Even the right code is refused once the attempts are spent
        response = client.post("/auth/verify-otp", json={"email": "new.investor@example.com", "otp": code})
        assert response.json()["code"] == "TOO_MANY_OTP_ATTEMPTS"
        assert db.query(OTPRecord).count() == 0

    def test_expired_code(self, client, db, mailbox):
        register(client)
        record = db.query(OTPRecord).one()
        record.expires_at = utcnow() - timedelta(seconds=1)
        db.commit()

        code = mailbox.codes["new.investor@example.com"]
        response = client.post("/auth/verify-otp", json={"email": "new.investor@example.com", "otp": code})
        assert response.json()["code"] == "OTP_EXPIRED"

    def test_unknown_email_looks_like_a_bad_code(self, client):
        response = client.post("/auth/verify-otp", json={"email": "ghost@example.com", "otp": "123456"})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_OTP"

    def test_malformed_code_rejected(self, client):
        response = client.post("/auth/verify-otp", json={"email": "ghost@example.com", "otp": "12ab"})
        assert response.status_code == 422


class TestResendOTP:
    def test_new_code_replaces_old(self, client, db, mailbox):
        register(client)
        first = mailbox.codes["new.investor@example.com"]

        response = client.post("/auth/resend-otp", json={"email": "new.investor@example.com"})
        assert response.status_code == 200
        second = mailbox.codes["new.investor@example.com"]
        assert db.query(OTPRecord).count() == 1

        if first != second:
            response = client.post("/auth/verify-otp", json={"email": "new.investor@example.com", "otp": first})
            assert response.json()["code"] == "INVALID_OTP"

        response = client.post("/auth/verify-otp", json={"email": "new.investor@example.com", "otp": second})
        assert response.status_code == 200

    def test_unknown_email_answers_generically(self, client, mailbox):
        response = client.post("/auth/resend-otp", json={"email": "ghost@example.com"})
        assert response.status_code == 200
        assert mailbox.codes == {}

    def test_already_verified(self, client, make_user):
        make_user(email="done@example.com")
        response = client.post("/auth/resend-otp", json={"email": "done@example.com"})
        assert response.status_code == 400
        assert response.json()["code"] == "ALREADY_VERIFIED"


class TestReferral:
    def test_bonus_paid_once_on_verification(self, client, db, make_user, mailbox):
        referrer = make_user(email="referrer@example.com")
        register(client, referral_code=referrer.referral_code)

        # Nothing is paid before the email is verified
        assert db.query(Referral).count() == 0

        code = mailbox.codes["new.investor@example.com"]
        response = client.post("/auth/verify-otp", json={"email": "new.investor@example.com", "otp": code})
        assert response.status_code == 200
        assert response.json()["user"]["balance"] == REFERRAL_BONUS

        db.expire_all()
        referred = db.query(User).filter(User.email == "new.investor@example.com").one()
        assert referred.referred_by_id == referrer.id
        assert db.get(User, referrer.id).balance == REFERRAL_BONUS

        referral = db.query(Referral).one()
        assert referral.status == "completed"
        assert referral.reward == REFERRAL_BONUS

        transactions = db.query(Transaction).all()
        assert {t.user_id for t in transactions} == {referrer.id, referred.id}
        assert all(t.type == "referral" and t.status == "completed" for t in transactions)

        referral_notes = db.query(Notification).filter(Notification.type == "referral").all()
        assert {n.user_id for n in referral_notes} == {referrer.id, referred.id}

    def test_referral_failure_does_not_block_verification(self, client, db, make_user, mailbox, monkeypatch):
        referrer = make_user(email="referrer@example.com")
        register(client, referral_code=referrer.referral_code)

        def broken(db, user):
            raise RuntimeError("ledger unavailable")

        monkeypatch.setattr(referral_service, "credit_referral_bonus", broken)

        code = mailbox.codes["new.investor@example.com"]
        response = client.post("/auth/verify-otp", json={"email": "new.investor@example.com", "otp": code})
        assert response.status_code == 200, response.text
        assert response.json()["user"]["email_verified"] is True
        assert db.query(Referral).count() == 0


class TestDeactivatedBeforeVerification:
    def test_resend_sends_nothing(self, client, make_user, mailbox, db):
        user = make_user(email="dormant@example.com", verified=False)
        user.is_active = False
        db.commit()

        response = client.post("/auth/resend-otp", json={"email": "dormant@example.com"})
        assert response.status_code == 200
        assert mailbox.codes == {}

    def test_valid_code_opens_no_session(self, client, make_user, db):
        user = make_user(email="dormant@example.com", verified=False)
        code = create_otp_record(db, user.email)
        user.is_active = False
        db.commit()

        response = client.post("/auth/verify-otp", json={"email": "dormant@example.com", "otp": code})
        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_OTP"
        assert not client.cookies.get("refresh_token")
        assert db.query(UserSession).count() == 0

        db.expire_all()
        assert db.query(User).filter(User.email == "dormant@example.com").one().email_verified is False
