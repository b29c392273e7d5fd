# households.py - Booth Collect
# Household survey entries: validation, submission, counts, admin listing

from __future__ import annotations

import logging
from datetime import datetime, time, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from zoneinfo import ZoneInfo

import config
from backend import COLLECTION_HOUSEHOLDS, BackendError, DocumentStore, get_store
from models import AuthUser, HouseholdRecord, RecordDecodeError, Result, decode_household

logger = logging.getLogger(__name__)

FORM_FIELDS = ("householdName", "phoneNumber", "issues", "boothNumberField", "areaRegion")

FORM_LABELS = {
    "householdName": "പരിവാര അംഗത്തിന്റെ പേര്",
    "phoneNumber": "ഫോൺ നമ്പർ",
    "issues": "പ്രശ്നങ്ങൾ",
    "boothNumberField": "ബൂത്ത് നമ്പർ",
    "areaRegion": "പ്രദേശം/മേഖല",
}

VALIDATION_MESSAGES = {
    "householdNameRequired": "അംഗത്തിന്റെ പേര് ആവശ്യമാണ്",
    "phoneNumberRequired": "ഫോൺ നമ്പർ ആവശ്യമാണ്",
    "phoneNumberMinLength": "ഫോൺ നമ്പർ കുറഞ്ഞത് 10 അക്കമെങ്കിലും വേണം",
    "issuesRequired": "പ്രശ്നങ്ങൾ/ആശങ്കകൾ വിശദീകരിക്കുക",
    "areaRegionRequired": "പ്രദേശം/മേഖല ആവശ്യമാണ്",
}

SUBMIT_SUCCESS = "✓ എൻട്രി വിജയകരമായി സമർപ്പിച്ചു"
SUBMIT_FAILED = "എൻട്രി സമർപ്പിക്കാൻ കഴിഞ്ഞില്ല"
NO_BOOTH = "ബൂത്ത് നമ്പർ ആവശ്യമാണ്"
LOAD_FAILED = "റിപ്പോർട്ട് ലോഡുചെയ്യാൻ കഴിഞ്ഞില്ല"

MAX_LENGTHS = {
    "householdName": 100,
    "phoneNumber": 15,
    "issues": 2000,
    "boothNumberField": 10,
    "areaRegion": 100,
}

FILTER_ALL = "all"


def clean_form(form: Mapping[str, Any]) -> Dict[str, str]:
    out: Dict[str, str] = {}
    for name in FORM_FIELDS:
        value = str(form.get(name) or "").strip()
        out[name] = value[: MAX_LENGTHS[name]]
    return out


def validate_household_form(data: Mapping[str, str]) -> Optional[str]:
    if not data.get("householdName"):
        return VALIDATION_MESSAGES["householdNameRequired"]
    phone = data.get("phoneNumber") or ""
    if not phone:
        return VALIDATION_MESSAGES["phoneNumberRequired"]
    if len(phone) < 10:
        return VALIDATION_MESSAGES["phoneNumberMinLength"]
    # boothNumberField is optional
    if not data.get("areaRegion"):
        return VALIDATION_MESSAGES["areaRegionRequired"]
    if not data.get("issues"):
        return VALIDATION_MESSAGES["issuesRequired"]
    return None


def submit_household(
    user: AuthUser,
    booth: str,
    form: Mapping[str, Any],
    store: Optional[DocumentStore] = None,
) -> Result:
    """
    Validates and writes one household entry. Result.value is the new id.
    """
    if not booth:
        return Result.fail(NO_BOOTH)
    data = clean_form(form)
    error = validate_household_form(data)
    if error:
        return Result.fail(error)

    entry = {
        "householdName": data["householdName"],
        "phoneNumber": data["phoneNumber"],
        "issues": data["issues"],
        "boothNumber": booth,
        "boothNumberField": data["boothNumberField"],
        "areaRegion": data["areaRegion"],
        "userId": user.uid,
        "userName": user.display_name or "Unknown",
        "userPhone": user.phone_number,
        "submittedAt": datetime.now(timezone.utc).isoformat(timespec="seconds"),
    }
    store = store or get_store()
    try:
        doc_id = store.add(
            COLLECTION_HOUSEHOLDS,
            entry,
            server_timestamp_fields=("createdAt",),
            id_token=user.id_token,
        )
    except BackendError:
        logger.exception("Household submission failed for %s (booth %s)", user.uid, booth)
        return Result.fail(SUBMIT_FAILED)
    logger.info(
        "Household %s submitted by %s for booth %s", doc_id, user.uid, booth,
        extra={"user_id": user.uid, "booth": booth, "event": "household_submitted"},
    )
    return Result.success(doc_id)


def start_of_today(now: Optional[datetime] = None) -> datetime:
    """Local midnight in the display timezone, as an aware UTC datetime."""
    try:
        tz = ZoneInfo(config.DISPLAY_TZ or "UTC")
    except Exception:
        tz = timezone.utc
    local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
    midnight = datetime.combine(local_now.date(), time.min, tzinfo=tz)
    return midnight.astimezone(timezone.utc)


def count_today(
    user: AuthUser,
    booth: str,
    now: Optional[datetime] = None,
    store: Optional[DocumentStore] = None,
) -> Result:
    store = store or get_store()
    try:
        docs = store.query(
            COLLECTION_HOUSEHOLDS,
            equals={"boothNumber": booth, "userId": user.uid},
            since=("createdAt", start_of_today(now)),
            id_token=user.id_token,
        )
    except BackendError:
        logger.exception("Today's count failed for %s", user.uid)
        return Result.fail(LOAD_FAILED)
    return Result.success(len(docs))


def decode_documents(docs: Iterable[Tuple[str, Mapping[str, Any]]]) -> List[HouseholdRecord]:
    records: List[HouseholdRecord] = []
    for doc_id, data in docs:
        try:
            records.append(decode_household(doc_id, data))
        except RecordDecodeError as e:
            logger.warning("Skipping malformed household document: %s", e)
    return records


def list_households(user: AuthUser, store: Optional[DocumentStore] = None) -> Result:
    store = store or get_store()
    try:
        docs = store.query(COLLECTION_HOUSEHOLDS, id_token=user.id_token)
    except BackendError:
        logger.exception("Household listing failed")
        return Result.fail(LOAD_FAILED)
    return Result.success(decode_documents(docs))


def filter_records(
    records: Sequence[HouseholdRecord],
    agent_booth: str = FILTER_ALL,
    household_booth: str = FILTER_ALL,
) -> List[HouseholdRecord]:
    """
    agent_booth matches the submitting account's booth (booth_number);
    household_booth matches the booth typed on the form (booth_number_field).
    """
    out = list(records)
    if agent_booth and agent_booth != FILTER_ALL:
        out = [r for r in out if r.booth_number == agent_booth]
    if household_booth and household_booth != FILTER_ALL:
        out = [r for r in out if r.booth_number_field == household_booth]
    return out


def booth_options(records: Sequence[HouseholdRecord]) -> Tuple[List[str], List[str]]:
    agent = sorted({r.booth_number for r in records if r.booth_number})
    household = sorted({r.booth_number_field for r in records if r.booth_number_field})
    return agent, household
