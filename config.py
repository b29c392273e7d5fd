import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
INSTANCE_DIR = BASE_DIR / "instance"
INSTANCE_DIR.mkdir(exist_ok=True)


def _load_dotenv(path: Path) -> None:
    if not path.exists():
        return
    try:
        for raw in path.read_text(encoding="utf-8").splitlines():
            line = raw.strip()
            if not line or line.startswith("#") or "=" not in line:
                continue
            key, val = line.split("=", 1)
            key = key.strip()
            if not key or key in os.environ:
                continue
            val = val.strip().strip("'").strip('"')
            os.environ[key] = val
    except (OSError, UnicodeDecodeError) as e:
        # Unreadable .env: keep the process environment as is.
        logger.warning("Ignoring %s: %s", path, e)


_load_dotenv(BASE_DIR / ".env")


def _env(key: str, default: str = "") -> str:
    return os.getenv(key, default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


def _env_int(key: str, default: int) -> int:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except Exception:
        return default


def _env_float(key: str, default: float) -> float:
    val = os.getenv(key)
    if val is None or val == "":
        return default
    try:
        return float(val)
    except Exception:
        return default


def _resolve_path(value: str, fallback: Path) -> str:
    if not value:
        return str(fallback)
    p = Path(value)
    if not p.is_absolute():
        p = BASE_DIR / p
    return str(p)


APP_NAME = _env("BOOTHCOLLECT_APP_NAME", "Booth Collect")
APP_VERSION = _env("BOOTHCOLLECT_APP_VERSION", "Booth Collect v1.0")
APP_ENV = _env("BOOTHCOLLECT_ENV", "development").strip().lower()

DB_PATH = _resolve_path(_env("BOOTHCOLLECT_DB_PATH", ""), INSTANCE_DIR / "boothcollect.db")

HOST = _env("BOOTHCOLLECT_HOST", "127.0.0.1")
PORT = _env_int("BOOTHCOLLECT_PORT", 5000)
DEBUG = _env_bool(
    "BOOTHCOLLECT_DEBUG",
    APP_ENV in ("dev", "development", "local"),
)

SECRET_KEY = _env("BOOTHCOLLECT_SECRET_KEY", "")

# Backend: "local" (SQLite, dev/test) or "firebase" (Identity Toolkit + Firestore)
BACKEND = _env("BOOTHCOLLECT_BACKEND", "local").strip().lower()
FIREBASE_API_KEY = _env("BOOTHCOLLECT_FIREBASE_API_KEY", "").strip()
FIREBASE_PROJECT_ID = _env("BOOTHCOLLECT_FIREBASE_PROJECT_ID", "").strip()
HTTP_TIMEOUT = _env_int("BOOTHCOLLECT_HTTP_TIMEOUT", 20)
# Site key for the reCAPTCHA widget on the login page (firebase backend)
RECAPTCHA_SITE_KEY = _env("BOOTHCOLLECT_RECAPTCHA_SITE_KEY", "").strip()

# Fixed OTP for the local backend (blank = random code, written to the log)
LOCAL_OTP_CODE = _env("BOOTHCOLLECT_LOCAL_OTP_CODE", "").strip()
LOCAL_OTP_TTL_MINUTES = _env_int("BOOTHCOLLECT_LOCAL_OTP_TTL_MINUTES", 10)

PHONE_COUNTRY_CODE = _env("BOOTHCOLLECT_PHONE_COUNTRY_CODE", "+91").strip()

AUTO_LOGOUT_HOURS = _env_float("BOOTHCOLLECT_AUTO_LOGOUT_HOURS", 3)
AUTO_LOGOUT_MS = int(AUTO_LOGOUT_HOURS * 60 * 60 * 1000)
# Minimum gap between client activity pings
ACTIVITY_PING_SECONDS = _env_int("BOOTHCOLLECT_ACTIVITY_PING_SECONDS", 60)

DISPLAY_TZ = _env("BOOTHCOLLECT_DISPLAY_TZ", "Asia/Kolkata").strip()

LOG_LEVEL = _env("BOOTHCOLLECT_LOG_LEVEL", "INFO").strip().upper()
LOG_JSON = _env_bool("BOOTHCOLLECT_LOG_JSON", APP_ENV in ("prod", "production"))
