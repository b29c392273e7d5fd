# profiles.py - Booth Collect
# users/<uid> profile documents: booth assignment + role

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from backend import COLLECTION_USERS, BackendError, DocumentStore, get_store
from booths import format_booth, is_valid_booth
from models import ROLE_BOOTH_USER, AuthUser, RecordDecodeError, Result, UserProfile, decode_profile

logger = logging.getLogger(__name__)

ERROR_MESSAGES = {
    "booth_required": "Booth number is required",
    "booth_invalid": "സാധുവായ ബൂത്ത് നമ്പർ നൽകുക (001-188)",
    "phone_required": "Mobile number is required",
    "failed_to_fetch": "Error fetching profile",
    "failed_to_update": "Failed to update booth",
}

SUCCESS_MESSAGES = {
    "booth_updated": "✓ Booth number updated successfully!",
}


def get_profile(user: AuthUser, store: Optional[DocumentStore] = None) -> Result:
    """
    Result.value is the UserProfile, or None when the user has not
    registered a booth yet.
    """
    store = store or get_store()
    try:
        data = store.get(COLLECTION_USERS, user.uid, id_token=user.id_token)
    except BackendError:
        logger.exception("Profile fetch failed for %s", user.uid)
        return Result.fail(ERROR_MESSAGES["failed_to_fetch"])
    if data is None:
        return Result.success(None)
    try:
        return Result.success(decode_profile(user.uid, data))
    except RecordDecodeError:
        logger.exception("Profile document for %s is malformed", user.uid)
        return Result.fail(ERROR_MESSAGES["failed_to_fetch"])


def save_booth(
    user: AuthUser,
    booth: str,
    existing: Optional[UserProfile] = None,
    store: Optional[DocumentStore] = None,
) -> Result:
    booth = format_booth((booth or "").strip())
    if not booth:
        return Result.fail(ERROR_MESSAGES["booth_required"])
    if not is_valid_booth(booth):
        return Result.fail(ERROR_MESSAGES["booth_invalid"])
    phone = (existing.mobile_number if existing and existing.mobile_number else user.phone_number) or ""
    if not phone:
        return Result.fail(ERROR_MESSAGES["phone_required"])

    doc: Dict[str, Any] = {
        "mobile_number": phone,
        "booth_number": booth,
        "role": (existing.role if existing else "") or ROLE_BOOTH_USER,
    }
    stamp_fields = ()
    if existing and existing.created_at:
        doc["created_at"] = existing.created_at
    else:
        stamp_fields = ("created_at",)

    store = store or get_store()
    try:
        store.set(COLLECTION_USERS, user.uid, doc, server_timestamp_fields=stamp_fields, id_token=user.id_token)
    except BackendError as e:
        logger.exception("Booth update failed for %s", user.uid)
        return Result.fail(f"Error: {e}" if str(e) else ERROR_MESSAGES["failed_to_update"])
    logger.info("Booth set to %s for %s", booth, user.uid, extra={"user_id": user.uid, "booth": booth, "event": "booth_updated"})
    return Result.success(booth)
