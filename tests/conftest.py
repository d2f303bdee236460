import os

# Settings are read once at import time, so the test environment has to be in
# place before anything under app/ is imported.
os.environ.setdefault("SQLALCHEMY_DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-access-secret-do-not-use-in-production")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret-do-not-use-in-production")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("MAIL_SUPPRESS_SEND", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("GEOLOCATION_ENABLED", "false")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("GOOGLE_CALLBACK_URL", "http://testserver/auth/google/callback")
os.environ.setdefault("FRONTEND_URL", "http://frontend.test")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from app.database import Base, SessionLocal, engine  # noqa: E402
from app.main import app  # noqa: E402
from app.core.security import hash_password  # noqa: E402
from app.services.credential_service import CREDENTIALS_PROVIDER, create_user_with_account  # noqa: E402

DESKTOP_CHROME = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
DESKTOP_FIREFOX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
MOBILE_SAFARI = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)

PASSWORD = "correct-horse-battery"


class Mailbox:
    """Collects what would have been emailed."""

    def __init__(self):
        self.codes = {}
        self.reset_links = {}
        self.login_alerts = []

    async def send_verification_code(self, email_to, code, first_name):
        self.codes[email_to] = code

    async def send_password_reset_link(self, email_to, first_name, reset_url):
        self.reset_links[email_to] = reset_url

    async def send_login_alert(self, email_to, first_name, device, browser, location, ip_address):
        self.login_alerts.append((email_to, device, browser))


@pytest.fixture(autouse=True)
def database():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db(database):
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def mailbox(monkeypatch):
    box = Mailbox()
    monkeypatch.setattr("app.routers.auth.send_verification_code", box.send_verification_code)
    monkeypatch.setattr("app.routers.auth.send_password_reset_link", box.send_password_reset_link)
    monkeypatch.setattr("app.services.auth_service.send_login_alert", box.send_login_alert)
    return box


@pytest.fixture
def make_client():
    clients = []

    def _make(user_agent=DESKTOP_CHROME):
        client = TestClient(app, headers={"User-Agent": user_agent})
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.close()


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def make_user(db):
    def _make(email="investor@example.com", password=PASSWORD, verified=True, role="user", **kwargs):
        user = create_user_with_account(
            db,
            email=email,
            provider=CREDENTIALS_PROVIDER,
            first_name=kwargs.pop("first_name", "Ada"),
            last_name=kwargs.pop("last_name", "Lovelace"),
            password_hash=hash_password(password),
            email_verified=verified,
            **kwargs,
        )
        if role != "user":
            user.role = role
            db.commit()
            db.refresh(user)
        return user

    return _make


def login(client, email="investor@example.com", password=PASSWORD):
    return client.post("/auth/login", json={"email": email, "password": password})
