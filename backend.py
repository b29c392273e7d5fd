# backend.py - Booth Collect
# Collaborator selection (hosted Firebase or the local SQLite stand-in)

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

import config
from models import AuthUser, OtpChallenge

COLLECTION_USERS = "users"
COLLECTION_HOUSEHOLDS = "households"


class BackendError(Exception):
    """A call to the auth or document collaborator failed."""

    def __init__(self, message: str, status: Optional[int] = None, code: str = ""):
        self.status = status
        self.code = code
        super().__init__(message)


class AuthBackend(Protocol):
    def send_otp(self, phone_number: str, recaptcha_token: str = "") -> OtpChallenge: ...

    def confirm_otp(self, challenge: OtpChallenge, code: str) -> AuthUser: ...

    def sign_out(self, user: Optional[AuthUser]) -> None: ...


class DocumentStore(Protocol):
    def get(self, collection: str, doc_id: str, id_token: str = "") -> Optional[Dict[str, Any]]: ...

    def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        server_timestamp_fields: Iterable[str] = (),
        id_token: str = "",
    ) -> None: ...

    def add(
        self,
        collection: str,
        data: Mapping[str, Any],
        server_timestamp_fields: Iterable[str] = (),
        id_token: str = "",
    ) -> str: ...

    def query(
        self,
        collection: str,
        equals: Optional[Mapping[str, Any]] = None,
        since: Optional[Tuple[str, datetime]] = None,
        id_token: str = "",
    ) -> List[Tuple[str, Dict[str, Any]]]: ...


_auth: Optional[AuthBackend] = None
_store: Optional[DocumentStore] = None


def _backend_name() -> str:
    name = (config.BACKEND or "local").strip().lower()
    if name not in ("local", "firebase"):
        raise RuntimeError(f"Unsupported backend: {name}")
    return name


def get_auth() -> AuthBackend:
    global _auth
    if _auth is None:
        if _backend_name() == "firebase":
            import firebase
            _auth = firebase.FirebaseAuth(config.FIREBASE_API_KEY, timeout=config.HTTP_TIMEOUT)
        else:
            import db
            _auth = db.LocalAuth()
    return _auth


def get_store() -> DocumentStore:
    global _store
    if _store is None:
        if _backend_name() == "firebase":
            import firebase
            _store = firebase.FirestoreStore(config.FIREBASE_PROJECT_ID, timeout=config.HTTP_TIMEOUT)
        else:
            import db
            _store = db.LocalStore()
    return _store


def reset_backends() -> None:
    global _auth, _store
    _auth = None
    _store = None
