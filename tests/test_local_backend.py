"""Local SQLite collaborators: OTP auth and document store."""

from datetime import datetime, timedelta, timezone

import pytest

import backend
import config
from backend import BackendError
from db import LocalAuth, LocalStore, get_conn, init_db
from models import OtpChallenge
from tests.conftest import TEST_OTP


class TestLocalAuth:
    def test_send_and_confirm(self, auth):
        challenge = auth.send_otp("+919876543210")
        assert challenge.phone_number == "+919876543210"
        user = auth.confirm_otp(challenge, TEST_OTP)
        assert user.uid
        assert user.phone_number == "+919876543210"

    def test_same_phone_same_uid(self, auth):
        first = auth.confirm_otp(auth.send_otp("+919876543210"), TEST_OTP)
        second = auth.confirm_otp(auth.send_otp("+919876543210"), TEST_OTP)
        assert first.uid == second.uid

    def test_wrong_code(self, auth):
        challenge = auth.send_otp("+919876543210")
        with pytest.raises(BackendError) as exc:
            auth.confirm_otp(challenge, "000000")
        assert exc.value.code == "INVALID_CODE"

    def test_code_is_single_use(self, auth):
        challenge = auth.send_otp("+919876543210")
        auth.confirm_otp(challenge, TEST_OTP)
        with pytest.raises(BackendError) as exc:
            auth.confirm_otp(challenge, TEST_OTP)
        assert exc.value.code == "INVALID_SESSION_INFO"

    def test_unknown_challenge(self, auth):
        with pytest.raises(BackendError) as exc:
            auth.confirm_otp(OtpChallenge(session_info="nope", phone_number="+91"), TEST_OTP)
        assert exc.value.code == "INVALID_SESSION_INFO"

    def test_expired_challenge(self, auth):
        challenge = auth.send_otp("+919876543210")
        past = (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat()
        with get_conn() as conn:
            conn.execute("UPDATE otp_challenges SET expires_at=? WHERE session_info=?", (past, challenge.session_info))
            conn.commit()
        with pytest.raises(BackendError) as exc:
            auth.confirm_otp(challenge, TEST_OTP)
        assert exc.value.code == "SESSION_EXPIRED"

    @pytest.mark.parametrize("phone", ["9876543210", "+91abc", ""])
    def test_phone_must_be_e164(self, auth, phone):
        with pytest.raises(BackendError) as exc:
            auth.send_otp(phone)
        assert exc.value.code == "INVALID_PHONE_NUMBER"

    def test_random_code_when_not_fixed(self, auth, monkeypatch):
        monkeypatch.setattr(config, "LOCAL_OTP_CODE", "")
        challenge = auth.send_otp("+919876543210")
        with pytest.raises(BackendError):
            auth.confirm_otp(challenge, "not-a-code")


class TestLocalStore:
    def test_get_missing(self, store):
        assert store.get("users", "nobody") is None

    def test_set_overwrites(self, store):
        store.set("users", "u1", {"a": 1})
        store.set("users", "u1", {"b": 2})
        assert store.get("users", "u1") == {"b": 2}

    def test_query_equality(self, store):
        store.add("households", {"boothNumber": "001"})
        store.add("households", {"boothNumber": "002"})
        docs = store.query("households", equals={"boothNumber": "002"})
        assert [d["boothNumber"] for _, d in docs] == ["002"]

    def test_since_excludes_documents_without_field(self, store):
        store.add("households", {"boothNumber": "001"})
        store.add("households", {"boothNumber": "001"}, server_timestamp_fields=("createdAt",))
        lower = datetime.now(timezone.utc) - timedelta(minutes=5)
        assert len(store.query("households", since=("createdAt", lower))) == 1

    def test_init_db_is_repeatable(self, store):
        store.set("users", "u1", {"a": 1})
        init_db()
        assert store.get("users", "u1") == {"a": 1}


class TestBackendSelection:
    def test_local_is_default(self, local_backend):
        assert isinstance(backend.get_store(), LocalStore)
        assert isinstance(backend.get_auth(), LocalAuth)
        assert backend.get_store() is backend.get_store()

    def test_unknown_backend(self, local_backend, monkeypatch):
        monkeypatch.setattr(config, "BACKEND", "mongo")
        backend.reset_backends()
        with pytest.raises(RuntimeError):
            backend.get_store()

    def test_firebase_requires_keys(self, local_backend, monkeypatch):
        monkeypatch.setattr(config, "BACKEND", "firebase")
        monkeypatch.setattr(config, "FIREBASE_API_KEY", "")
        backend.reset_backends()
        with pytest.raises(RuntimeError):
            backend.get_auth()
