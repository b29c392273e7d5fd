"""Shared fixtures for Booth Collect tests."""

import os
from datetime import datetime, timezone

import pytest

import backend
import config
from db import LocalAuth, LocalStore, init_db
from models import AuthUser, HouseholdRecord

TEST_OTP = "123456"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Strip BOOTHCOLLECT_* env vars for test isolation."""
    for key in list(os.environ):
        if key.startswith("BOOTHCOLLECT_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def local_backend(tmp_path, monkeypatch):
    """Fresh SQLite file wired up as the local collaborator pair."""
    monkeypatch.setattr(config, "DB_PATH", str(tmp_path / "boothcollect-test.db"))
    monkeypatch.setattr(config, "BACKEND", "local")
    monkeypatch.setattr(config, "LOCAL_OTP_CODE", TEST_OTP)
    monkeypatch.setattr(config, "DISPLAY_TZ", "Asia/Kolkata")
    init_db()
    backend.reset_backends()
    yield
    backend.reset_backends()


@pytest.fixture
def store(local_backend):
    return LocalStore()


@pytest.fixture
def auth(local_backend):
    return LocalAuth()


@pytest.fixture
def booth_user():
    return AuthUser(uid="uid-booth-1", phone_number="+919876543210", display_name="Anil")


@pytest.fixture
def client(local_backend):
    import app as app_module

    app_module.app.config.update(TESTING=True)
    with app_module.app.test_client() as c:
        yield c


def login(client, phone="9876543210", code=TEST_OTP):
    """Run the two-step OTP login. Returns the session's uid."""
    client.post("/login", data={"action": "send", "phone": phone})
    resp = client.post("/login", data={"action": "verify", "otp": code})
    assert resp.status_code == 302
    with client.session_transaction() as sess:
        return sess["user"]["uid"]


def make_record(**overrides):
    base = dict(
        id="abcdefghijklmnop",
        created_at=datetime(2024, 3, 5, 15, 37, 5, tzinfo=timezone.utc),
        household_name="Ravi",
        phone_number="9876543210",
        issues="Water supply",
        booth_number="012",
        booth_number_field="013",
        user_id="uid-1",
        user_name="Anil",
        user_phone="+919800000000",
        area_region="Ward 4",
    )
    base.update(overrides)
    return HouseholdRecord(**base)


class FakeClock:
    def __init__(self, now_ms=0):
        self.now = now_ms

    def __call__(self):
        return self.now


class _ManualTimer:
    def __init__(self, due, callback):
        self.due = due
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Timers that only fire when advance() moves the fake clock past them."""

    def __init__(self, clock):
        self.clock = clock
        self.timers = []

    def schedule(self, delay_ms, callback):
        timer = _ManualTimer(self.clock.now + delay_ms, callback)
        self.timers.append(timer)
        return timer

    def pending(self):
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def advance(self, ms):
        target = self.clock.now + ms
        while True:
            due = sorted((t for t in self.pending() if t.due <= target), key=lambda t: t.due)
            if not due:
                break
            timer = due[0]
            self.clock.now = timer.due
            timer.fired = True
            timer.callback()
        self.clock.now = target


@pytest.fixture
def clock():
    return FakeClock(1_700_000_000_000)


@pytest.fixture
def scheduler(clock):
    return ManualScheduler(clock)
