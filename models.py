# models.py - Booth Collect
# Typed records for documents coming back from the backend, plus the
# Result value returned by service calls.

from __future__ import annotations

import re
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

ROLE_ADMIN = "admin"
ROLE_BOOTH_USER = "booth_user"

# camelCase field -> legacy snake_case aliases seen in older documents
HOUSEHOLD_ALIASES = {
    "createdAt": ("created_at",),
    "householdName": ("household_name",),
    "phoneNumber": ("household_phone",),
    "issues": ("concerns",),
    "boothNumber": ("booth_number",),
    "boothNumberField": (),
    "areaRegion": ("area_region",),
    "userId": ("user_id",),
    "userName": ("user_name",),
    "userPhone": ("user_phone",),
}

_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


class RecordDecodeError(ValueError):
    """A backend document does not match the expected schema."""

    def __init__(self, doc_id: str, field_name: str, reason: str):
        self.doc_id = doc_id
        self.field_name = field_name
        self.reason = reason
        super().__init__(f"{doc_id}: field '{field_name}' {reason}")


@dataclass
class Result:
    ok: bool
    value: Any = None
    error: str = ""

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def fail(cls, error: str) -> "Result":
        return cls(ok=False, error=error)


@dataclass(frozen=True)
class HouseholdRecord:
    id: str
    created_at: Optional[datetime] = None
    household_name: str = ""
    phone_number: str = ""
    issues: str = ""
    booth_number: str = ""
    booth_number_field: str = ""
    user_id: str = ""
    user_name: str = ""
    user_phone: str = ""
    area_region: str = ""

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["created_at"] = self.created_at.isoformat() if self.created_at else None
        return d


@dataclass(frozen=True)
class UserProfile:
    uid: str
    mobile_number: str = ""
    booth_number: str = ""
    role: str = ROLE_BOOTH_USER
    created_at: Optional[datetime] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN


@dataclass(frozen=True)
class AuthUser:
    uid: str
    phone_number: str = ""
    display_name: str = ""
    id_token: str = field(default="", repr=False)

    def to_session(self) -> Dict[str, str]:
        return {
            "uid": self.uid,
            "phone_number": self.phone_number,
            "display_name": self.display_name,
            "id_token": self.id_token,
        }

    @classmethod
    def from_session(cls, data: Mapping[str, Any]) -> Optional["AuthUser"]:
        uid = (data or {}).get("uid") or ""
        if not uid:
            return None
        return cls(
            uid=str(uid),
            phone_number=str(data.get("phone_number") or ""),
            display_name=str(data.get("display_name") or ""),
            id_token=str(data.get("id_token") or ""),
        )


@dataclass(frozen=True)
class OtpChallenge:
    session_info: str
    phone_number: str


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Accepts datetime, RFC 3339 strings (Firestore REST, local store) and
    {"seconds": ..., "nanoseconds": ...} mappings. Naive values are UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, Mapping) and "seconds" in value:
        secs = float(value.get("seconds") or 0) + float(value.get("nanoseconds") or 0) / 1e9
        return datetime.fromtimestamp(secs, tz=timezone.utc)
    if isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        raw = _FRACTION_RE.sub(r".\1", raw)
        dt = datetime.fromisoformat(raw)
        return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)
    raise TypeError(f"unsupported timestamp type {type(value).__name__}")


def _text(doc_id: str, data: Mapping[str, Any], name: str, aliases=()) -> str:
    for key in (name, *aliases):
        if key not in data:
            continue
        value = data.get(key)
        if value is None or value == "":
            continue
        if isinstance(value, bool) or not isinstance(value, (str, int)):
            raise RecordDecodeError(doc_id, key, f"expected text, got {type(value).__name__}")
        return str(value)
    return ""


def _timestamp(doc_id: str, data: Mapping[str, Any], name: str, aliases=()) -> Optional[datetime]:
    for key in (name, *aliases):
        value = data.get(key)
        if value is None or value == "":
            continue
        try:
            return parse_timestamp(value)
        except (TypeError, ValueError) as e:
            raise RecordDecodeError(doc_id, key, f"is not a timestamp ({e})") from e
    return None


def decode_household(doc_id: str, data: Mapping[str, Any]) -> HouseholdRecord:
    if not doc_id:
        raise RecordDecodeError("?", "id", "is empty")
    if not isinstance(data, Mapping):
        raise RecordDecodeError(doc_id, "*", "document body is not a mapping")
    a = HOUSEHOLD_ALIASES
    return HouseholdRecord(
        id=str(doc_id),
        created_at=_timestamp(doc_id, data, "createdAt", a["createdAt"]),
        household_name=_text(doc_id, data, "householdName", a["householdName"]),
        phone_number=_text(doc_id, data, "phoneNumber", a["phoneNumber"]),
        issues=_text(doc_id, data, "issues", a["issues"]),
        booth_number=_text(doc_id, data, "boothNumber", a["boothNumber"]),
        booth_number_field=_text(doc_id, data, "boothNumberField"),
        user_id=_text(doc_id, data, "userId", a["userId"]),
        user_name=_text(doc_id, data, "userName", a["userName"]),
        user_phone=_text(doc_id, data, "userPhone", a["userPhone"]),
        area_region=_text(doc_id, data, "areaRegion", a["areaRegion"]),
    )


def decode_profile(uid: str, data: Mapping[str, Any]) -> UserProfile:
    if not isinstance(data, Mapping):
        raise RecordDecodeError(uid, "*", "document body is not a mapping")
    return UserProfile(
        uid=uid,
        mobile_number=_text(uid, data, "mobile_number"),
        booth_number=_text(uid, data, "booth_number"),
        role=_text(uid, data, "role") or ROLE_BOOTH_USER,
        created_at=_timestamp(uid, data, "created_at"),
    )
