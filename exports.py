# exports.py - Booth Collect
# Household exports: Excel-friendly CSV, JSON, summary stats

from __future__ import annotations

import csv
import io
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from zoneinfo import ZoneInfo

import config
from models import HouseholdRecord

BOM = "\ufeff"

CSV_HEADERS = [
    "Date & Time",
    "Booth",
    "Household Booth",
    "User Name",
    "User Phone",
    "Household Name",
    "Household Phone",
    "Issues",
    "ID",
]


def _display_tz():
    try:
        return ZoneInfo(config.DISPLAY_TZ or "UTC")
    except Exception:
        return timezone.utc


def _now() -> datetime:
    return datetime.now(timezone.utc)


def format_datetime_en_in(dt: datetime) -> str:
    """
    Matches the en-IN locale string spreadsheets receive from the field app,
    e.g. "5/3/2024, 9:07:05 pm".
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    local = dt.astimezone(_display_tz())
    hour12 = local.hour % 12 or 12
    suffix = "am" if local.hour < 12 else "pm"
    return f"{local.day}/{local.month}/{local.year}, {hour12}:{local.minute:02d}:{local.second:02d} {suffix}"


def _as_text_phone(phone: str) -> str:
    # Leading apostrophe keeps spreadsheets from turning the phone into a number.
    return f"'{phone}" if phone else "-"


def _one_line(text: str) -> str:
    return (text or "").replace("\r\n", " ").replace("\r", " ").replace("\n", " ")


def household_row(record: HouseholdRecord, now: Optional[datetime] = None) -> List[str]:
    stamp = record.created_at or now or _now()
    cells = [
        format_datetime_en_in(stamp),
        record.booth_number,
        record.booth_number_field,
        record.user_name,
        _as_text_phone(record.user_phone),
        record.household_name,
        _as_text_phone(record.phone_number),
        record.issues,
        (record.id or "")[:8],
    ]
    # One CSV line per record, whatever the free-text fields contain.
    return [_one_line(c) for c in cells]


def format_households_csv(records: Sequence[HouseholdRecord], now: Optional[datetime] = None) -> str:
    """
    BOM + header + one line per record. Every cell is quoted and inner
    quotes are doubled. Empty input gives an empty string.
    """
    if not records:
        return ""
    now = now or _now()
    buf = io.StringIO()
    w = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    w.writerow(CSV_HEADERS)
    for r in records:
        w.writerow(household_row(r, now=now))
    return BOM + buf.getvalue().rstrip("\n")


def households_json(records: Sequence[HouseholdRecord]) -> str:
    return json.dumps([r.to_dict() for r in records], ensure_ascii=False, indent=2)


def summary(records: Sequence[HouseholdRecord], now: Optional[datetime] = None) -> Dict[str, Any]:
    return {
        "total_entries": len(records),
        "unique_booths": len({r.booth_number for r in records}),
        "unique_users": len({r.user_id for r in records}),
        "unique_households": len({r.phone_number for r in records}),
        "generated_at": format_datetime_en_in(now or _now()),
    }

