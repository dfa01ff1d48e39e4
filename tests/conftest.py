import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

_TMP_DIR = Path(tempfile.mkdtemp(prefix="researcher-hut-tests-"))
DB_PATH = _TMP_DIR / "test.db"

# settings are read at import time, so the environment goes first
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["DB_AUTO_CREATE"] = "true"
os.environ["JWT_SECRET"] = "test-jwt-secret"
os.environ["OTP_SECRET"] = "test-otp-secret"
os.environ["ADMIN_EMAIL"] = "admin@researcher.hut"
os.environ["BREVO_API_KEY"] = ""
os.environ["BCRYPT_ROUNDS"] = "4"

from fastapi.testclient import TestClient  # noqa: E402

from researcher_hut.core.ratelimit import build_otp_limiter, limiter  # noqa: E402
from researcher_hut.main import app  # noqa: E402
from researcher_hut.services.pending_actions import InMemoryPendingActionStore  # noqa: E402

API = "/api"
ADMIN_EMAIL = "admin@researcher.hut"
ADMIN_USERNAME = "chief_admin"
ADMIN_PASSWORD = "S3cure-admin-pass"


class FakeClock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[str, str, int]] = []
        self.deliver = True

    async def send_otp_email(self, to: str, otp: str, expires_minutes: int) -> bool:
        self.sent.append((to, otp, expires_minutes))
        return self.deliver

    def recipients(self) -> list[str]:
        return [to for to, _, _ in self.sent]

    def last_otp(self, to: str) -> str:
        for addr, otp, _ in reversed(self.sent):
            if addr == to:
                return otp
        raise AssertionError(f"no OTP was sent to {to}")


def wrong_otp(otp: str) -> str:
    return "100000" if otp != "100000" else "100001"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def store(clock):
    return InMemoryPendingActionStore(clock=clock)


@pytest.fixture
def client(clock, notifier, store):
    if DB_PATH.exists():
        DB_PATH.unlink()
    app.state.pending_store = store
    app.state.otp_limiter = build_otp_limiter(clock=clock)
    app.state.notifier = notifier
    app.state.limiter = limiter
    limiter.reset()
    with TestClient(app) as c:
        yield c


@pytest.fixture
def admin_credentials(client, notifier):
    """Runs the credential reset flow once so an admin row exists."""
    r = client.post(f"{API}/auth/admin/reset/send-otp", json={"email": ADMIN_EMAIL})
    assert r.status_code == 200
    r = client.post(f"{API}/auth/admin/reset", json={
        "email": ADMIN_EMAIL,
        "otp": notifier.last_otp(ADMIN_EMAIL),
        "newUsername": ADMIN_USERNAME,
        "newPassword": ADMIN_PASSWORD,
    })
    assert r.status_code == 200, r.text
    return {"email": ADMIN_EMAIL, "username": ADMIN_USERNAME, "password": ADMIN_PASSWORD}


def signup(client, notifier, email, username, name="Ada Reader", password="reading-is-fun"):
    r = client.post(f"{API}/auth/signup/send-otp", json={
        "email": email, "name": name, "username": username, "password": password,
    })
    assert r.status_code == 200, r.text
    r = client.post(f"{API}/auth/signup/verify", json={"email": email, "otp": notifier.last_otp(email)})
    assert r.status_code == 200, r.text
    return r.json()["user"]


@pytest.fixture
def registered_user(client, notifier):
    return signup(client, notifier, "reader@example.com", "reader_one")
