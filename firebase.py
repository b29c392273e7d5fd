# firebase.py - Booth Collect
# Hosted collaborators over REST: Identity Toolkit (phone OTP) and
# Cloud Firestore (documents, server timestamps, filtered scans).

from __future__ import annotations

import logging
import secrets
import string
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import requests

from backend import BackendError
from models import AuthUser, OtpChallenge, parse_timestamp

logger = logging.getLogger(__name__)

IDENTITY_URL = "https://identitytoolkit.googleapis.com/v1"
FIRESTORE_URL = "https://firestore.googleapis.com/v1"
_ID_ALPHABET = string.ascii_letters + string.digits


def _raise_for_error(resp: requests.Response, what: str) -> None:
    if resp.status_code < 400:
        return
    code = ""
    detail = ""
    try:
        payload = resp.json()
        err = payload[0].get("error") if isinstance(payload, list) and payload else payload.get("error")
        err = err or {}
        detail = err.get("message") or ""
        code = (err.get("status") or detail.split(" ", 1)[0] or "").strip()
    except Exception:
        detail = (resp.text or "").strip()
    raise BackendError(f"{what} failed ({resp.status_code}). {detail}".strip(), status=resp.status_code, code=code)


def _send(call, what: str, *args: Any, **kwargs: Any) -> requests.Response:
    try:
        return call(*args, **kwargs)
    except requests.RequestException as e:
        raise BackendError(f"{what} failed: {e}", code="NETWORK_ERROR") from e


def _json(resp: requests.Response, what: str) -> Any:
    try:
        return resp.json()
    except ValueError as e:
        raise BackendError(f"{what} returned invalid JSON", status=resp.status_code) from e


# -------------------------------------------------
# Firestore value codec
# -------------------------------------------------

def encode_value(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return {"timestampValue": dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Cannot store {type(value).__name__} in Firestore")


def encode_fields(data: Mapping[str, Any]) -> Dict[str, Any]:
    return {str(k): encode_value(v) for k, v in data.items()}


def decode_value(value: Mapping[str, Any]) -> Any:
    if "stringValue" in value:
        return value["stringValue"]
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "timestampValue" in value:
        return parse_timestamp(value["timestampValue"])
    if "nullValue" in value:
        return None
    if "mapValue" in value:
        return decode_fields((value.get("mapValue") or {}).get("fields") or {})
    if "arrayValue" in value:
        return [decode_value(v) for v in (value.get("arrayValue") or {}).get("values") or []]
    if "referenceValue" in value:
        return value["referenceValue"]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    if "bytesValue" in value:
        return value["bytesValue"]
    raise ValueError(f"Unknown Firestore value: {sorted(value.keys())}")


def decode_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: decode_value(v) for k, v in fields.items()}


def new_document_id(length: int = 20) -> str:
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))


# -------------------------------------------------
# Auth
# -------------------------------------------------

class FirebaseAuth:
    def __init__(self, api_key: str, timeout: int = 20, session: Optional[requests.Session] = None):
        if not api_key:
            raise RuntimeError("BOOTHCOLLECT_FIREBASE_API_KEY is not configured.")
        self.api_key = api_key
        self.timeout = max(5, int(timeout or 20))
        self.http = session or requests.Session()

    def _post(self, method: str, body: Dict[str, Any]) -> Dict[str, Any]:
        resp = _send(
            self.http.post,
            method,
            f"{IDENTITY_URL}/accounts:{method}",
            params={"key": self.api_key},
            json=body,
            timeout=self.timeout,
        )
        _raise_for_error(resp, method)
        return _json(resp, method)

    def send_otp(self, phone_number: str, recaptcha_token: str = "") -> OtpChallenge:
        body: Dict[str, Any] = {"phoneNumber": phone_number}
        if recaptcha_token:
            body["recaptchaToken"] = recaptcha_token
        payload = self._post("sendVerificationCode", body)
        session_info = (payload.get("sessionInfo") or "").strip()
        if not session_info:
            raise BackendError("sendVerificationCode returned no sessionInfo")
        return OtpChallenge(session_info=session_info, phone_number=phone_number)

    def confirm_otp(self, challenge: OtpChallenge, code: str) -> AuthUser:
        payload = self._post(
            "signInWithPhoneNumber",
            {"sessionInfo": challenge.session_info, "code": (code or "").strip()},
        )
        id_token = payload.get("idToken") or ""
        uid = payload.get("localId") or ""
        if not uid or not id_token:
            raise BackendError("signInWithPhoneNumber returned no user")
        display_name = ""
        try:
            info = self._post("lookup", {"idToken": id_token})
            users = info.get("users") or []
            if users:
                display_name = users[0].get("displayName") or ""
        except BackendError:
            logger.warning("Profile lookup failed for %s; continuing without display name", uid)
        return AuthUser(
            uid=uid,
            phone_number=payload.get("phoneNumber") or challenge.phone_number,
            display_name=display_name,
            id_token=id_token,
        )

    def sign_out(self, user: Optional[AuthUser]) -> None:
        # ID tokens are bearer tokens held in our session only; dropping the
        # session is the sign-out.
        return None


# -------------------------------------------------
# Firestore
# -------------------------------------------------

class FirestoreStore:
    def __init__(self, project_id: str, timeout: int = 20, session: Optional[requests.Session] = None):
        if not project_id:
            raise RuntimeError("BOOTHCOLLECT_FIREBASE_PROJECT_ID is not configured.")
        self.project_id = project_id
        self.timeout = max(5, int(timeout or 20))
        self.http = session or requests.Session()

    @property
    def root(self) -> str:
        return f"projects/{self.project_id}/databases/(default)/documents"

    def _headers(self, id_token: str) -> Dict[str, str]:
        return {"Authorization": f"Bearer {id_token}"} if id_token else {}

    def _doc_name(self, collection: str, doc_id: str) -> str:
        return f"{self.root}/{collection}/{doc_id}"

    def get(self, collection: str, doc_id: str, id_token: str = "") -> Optional[Dict[str, Any]]:
        resp = _send(
            self.http.get,
            "get document",
            f"{FIRESTORE_URL}/{self._doc_name(collection, doc_id)}",
            headers=self._headers(id_token),
            timeout=self.timeout,
        )
        if resp.status_code == 404:
            return None
        _raise_for_error(resp, "get document")
        return decode_fields(_json(resp, "get document").get("fields") or {})

    def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        server_timestamp_fields: Iterable[str] = (),
        id_token: str = "",
    ) -> None:
        stamped = list(server_timestamp_fields)
        fields = {k: v for k, v in data.items() if k not in stamped}
        write: Dict[str, Any] = {
            "update": {"name": self._doc_name(collection, doc_id), "fields": encode_fields(fields)},
        }
        if stamped:
            write["updateTransforms"] = [
                {"fieldPath": name, "setToServerValue": "REQUEST_TIME"} for name in stamped
            ]
        resp = _send(
            self.http.post,
            "commit",
            f"{FIRESTORE_URL}/{self.root}:commit",
            headers=self._headers(id_token),
            json={"writes": [write]},
            timeout=self.timeout,
        )
        _raise_for_error(resp, "commit")

    def add(
        self,
        collection: str,
        data: Mapping[str, Any],
        server_timestamp_fields: Iterable[str] = (),
        id_token: str = "",
    ) -> str:
        doc_id = new_document_id()
        self.set(collection, doc_id, data, server_timestamp_fields=server_timestamp_fields, id_token=id_token)
        return doc_id

    def query(
        self,
        collection: str,
        equals: Optional[Mapping[str, Any]] = None,
        since: Optional[Tuple[str, datetime]] = None,
        id_token: str = "",
    ) -> List[Tuple[str, Dict[str, Any]]]:
        filters: List[Dict[str, Any]] = []
        for name, value in (equals or {}).items():
            filters.append(
                {"fieldFilter": {"field": {"fieldPath": name}, "op": "EQUAL", "value": encode_value(value)}}
            )
        if since is not None:
            name, lower = since
            filters.append(
                {
                    "fieldFilter": {
                        "field": {"fieldPath": name},
                        "op": "GREATER_THAN_OR_EQUAL",
                        "value": encode_value(lower),
                    }
                }
            )
        structured: Dict[str, Any] = {"from": [{"collectionId": collection}]}
        if len(filters) == 1:
            structured["where"] = filters[0]
        elif filters:
            structured["where"] = {"compositeFilter": {"op": "AND", "filters": filters}}

        resp = _send(
            self.http.post,
            "runQuery",
            f"{FIRESTORE_URL}/{self.root}:runQuery",
            headers=self._headers(id_token),
            json={"structuredQuery": structured},
            timeout=self.timeout,
        )
        _raise_for_error(resp, "runQuery")
        out: List[Tuple[str, Dict[str, Any]]] = []
        for item in _json(resp, "runQuery") or []:
            doc = item.get("document") if isinstance(item, dict) else None
            if not doc:
                continue
            doc_id = (doc.get("name") or "").rsplit("/", 1)[-1]
            out.append((doc_id, decode_fields(doc.get("fields") or {})))
        return out
