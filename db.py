# db.py - Booth Collect
# Local SQLite collaborator: document store + phone OTP auth used in
# development and tests in place of the hosted backend.

from __future__ import annotations

import json
import logging
import secrets
import sqlite3
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from werkzeug.security import check_password_hash, generate_password_hash

import config
from backend import BackendError
from models import AuthUser, OtpChallenge, parse_timestamp

logger = logging.getLogger(__name__)


def get_conn() -> sqlite3.Connection:
    conn = sqlite3.connect(config.DB_PATH)
    conn.row_factory = sqlite3.Row
    return conn


def _table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cur = conn.cursor()
    cur.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=? LIMIT 1",
        (table,),
    )
    return cur.fetchone() is not None


def _cols(conn: sqlite3.Connection, table: str) -> List[str]:
    cur = conn.cursor()
    cur.execute(f"PRAGMA table_info({table})")
    return [r["name"] for r in cur.fetchall()]


def _add_column_if_missing(conn: sqlite3.Connection, table: str, col_def_sql: str) -> None:
    """
    col_def_sql example: "display_name TEXT"
    """
    col_name = col_def_sql.strip().split()[0]
    if col_name in _cols(conn, table):
        return
    conn.execute(f"ALTER TABLE {table} ADD COLUMN {col_def_sql}")


def init_db() -> None:
    """
    Safe init:
    - Creates tables if missing
    - Adds new columns if missing
    - Adds indexes
    """
    with get_conn() as conn:
        cur = conn.cursor()

        if not _table_exists(conn, "documents"):
            cur.execute(
                """
                CREATE TABLE documents (
                  collection TEXT NOT NULL,
                  doc_id TEXT NOT NULL,
                  data_json TEXT NOT NULL,
                  created_at TEXT,
                  updated_at TEXT,
                  PRIMARY KEY (collection, doc_id)
                )
                """
            )

        if not _table_exists(conn, "auth_users"):
            cur.execute(
                """
                CREATE TABLE auth_users (
                  uid TEXT PRIMARY KEY,
                  phone_number TEXT NOT NULL UNIQUE,
                  display_name TEXT,
                  created_at TEXT,
                  last_login_at TEXT
                )
                """
            )
        else:
            _add_column_if_missing(conn, "auth_users", "display_name TEXT")
            _add_column_if_missing(conn, "auth_users", "last_login_at TEXT")

        if not _table_exists(conn, "otp_challenges"):
            cur.execute(
                """
                CREATE TABLE otp_challenges (
                  session_info TEXT PRIMARY KEY,
                  phone_number TEXT NOT NULL,
                  code_hash TEXT NOT NULL,
                  expires_at TEXT NOT NULL,
                  used_at TEXT,
                  created_at TEXT
                )
                """
            )

        cur.execute("CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_otp_phone ON otp_challenges(phone_number)")
        conn.commit()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _now_iso() -> str:
    return _utcnow().isoformat(timespec="microseconds")


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        dt = value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


# -------------------------------------------------
# Documents
# -------------------------------------------------

class LocalStore:
    """Collection + id documents stored as JSON rows."""

    def get(self, collection: str, doc_id: str, id_token: str = "") -> Optional[Dict[str, Any]]:
        with get_conn() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT data_json FROM documents WHERE collection=? AND doc_id=? LIMIT 1",
                (collection, doc_id),
            )
            row = cur.fetchone()
        return json.loads(row["data_json"]) if row else None

    def set(
        self,
        collection: str,
        doc_id: str,
        data: Mapping[str, Any],
        server_timestamp_fields: Iterable[str] = (),
        id_token: str = "",
    ) -> None:
        now = _now_iso()
        body = dict(data)
        for name in server_timestamp_fields:
            body[name] = now
        payload = json.dumps(body, ensure_ascii=False, default=_json_default)
        with get_conn() as conn:
            conn.execute(
                """
                INSERT INTO documents (collection, doc_id, data_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(collection, doc_id) DO UPDATE SET
                  data_json=excluded.data_json,
                  updated_at=excluded.updated_at
                """,
                (collection, doc_id, payload, now, now),
            )
            conn.commit()

    def add(
        self,
        collection: str,
        data: Mapping[str, Any],
        server_timestamp_fields: Iterable[str] = (),
        id_token: str = "",
    ) -> str:
        doc_id = secrets.token_hex(10)
        self.set(collection, doc_id, data, server_timestamp_fields=server_timestamp_fields)
        return doc_id

    def query(
        self,
        collection: str,
        equals: Optional[Mapping[str, Any]] = None,
        since: Optional[Tuple[str, datetime]] = None,
        id_token: str = "",
    ) -> List[Tuple[str, Dict[str, Any]]]:
        with get_conn() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT doc_id, data_json FROM documents WHERE collection=? ORDER BY created_at ASC, doc_id ASC",
                (collection,),
            )
            rows = cur.fetchall()

        out: List[Tuple[str, Dict[str, Any]]] = []
        for r in rows:
            data = json.loads(r["data_json"])
            if equals and any(data.get(k) != v for k, v in equals.items()):
                continue
            if since is not None:
                field_name, lower = since
                try:
                    ts = parse_timestamp(data.get(field_name))
                except (TypeError, ValueError):
                    ts = None
                # Documents without the field never match a range filter.
                if ts is None or ts < parse_timestamp(lower):
                    continue
            out.append((r["doc_id"], data))
        return out


# -------------------------------------------------
# Phone OTP
# -------------------------------------------------

class LocalAuth:
    """
    Issues 6-digit codes. With BOOTHCOLLECT_LOCAL_OTP_CODE set every
    challenge uses that code; otherwise the code is written to the log.
    """

    def send_otp(self, phone_number: str, recaptcha_token: str = "") -> OtpChallenge:
        phone = (phone_number or "").strip()
        if not phone.startswith("+") or not phone[1:].isdigit():
            raise BackendError("INVALID_PHONE_NUMBER", status=400, code="INVALID_PHONE_NUMBER")
        code = config.LOCAL_OTP_CODE or f"{secrets.randbelow(1_000_000):06d}"
        session_info = secrets.token_urlsafe(24)
        expires = _utcnow() + timedelta(minutes=max(1, int(config.LOCAL_OTP_TTL_MINUTES or 10)))
        with get_conn() as conn:
            conn.execute(
                """
                INSERT INTO otp_challenges (session_info, phone_number, code_hash, expires_at, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (session_info, phone, generate_password_hash(code), expires.isoformat(), _now_iso()),
            )
            conn.commit()
        if not config.LOCAL_OTP_CODE:
            logger.info("Local OTP for %s: %s", phone, code)
        return OtpChallenge(session_info=session_info, phone_number=phone)

    def confirm_otp(self, challenge: OtpChallenge, code: str) -> AuthUser:
        with get_conn() as conn:
            cur = conn.cursor()
            cur.execute(
                "SELECT * FROM otp_challenges WHERE session_info=? LIMIT 1",
                (challenge.session_info,),
            )
            row = cur.fetchone()
            if not row or row["used_at"]:
                raise BackendError("INVALID_SESSION_INFO", status=400, code="INVALID_SESSION_INFO")
            if parse_timestamp(row["expires_at"]) < _utcnow():
                raise BackendError("SESSION_EXPIRED", status=400, code="SESSION_EXPIRED")
            if not check_password_hash(row["code_hash"], (code or "").strip()):
                raise BackendError("INVALID_CODE", status=400, code="INVALID_CODE")

            now = _now_iso()
            phone = row["phone_number"]
            conn.execute("UPDATE otp_challenges SET used_at=? WHERE session_info=?", (now, challenge.session_info))
            cur.execute("SELECT * FROM auth_users WHERE phone_number=? LIMIT 1", (phone,))
            user_row = cur.fetchone()
            if user_row:
                uid = user_row["uid"]
                display_name = user_row["display_name"] or ""
                conn.execute("UPDATE auth_users SET last_login_at=? WHERE uid=?", (now, uid))
            else:
                uid = secrets.token_hex(14)
                display_name = ""
                conn.execute(
                    "INSERT INTO auth_users (uid, phone_number, display_name, created_at, last_login_at) VALUES (?, ?, ?, ?, ?)",
                    (uid, phone, None, now, now),
                )
            conn.commit()
        return AuthUser(uid=uid, phone_number=phone, display_name=display_name)

    def sign_out(self, user: Optional[AuthUser]) -> None:
        # Local sessions live only in the Flask cookie.
        return None
