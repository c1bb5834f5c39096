import os

from dotenv import load_dotenv

# Load .env file with explicit UTF-8 encoding
load_dotenv(encoding="utf-8")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name) or default)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name) or default)
    except ValueError:
        return default


DEFAULT_DATABASE_URL = "sqlite:///./loyalfy.db"
DATABASE_URL = os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL
LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()

# Coupons
COUPON_VALIDITY_DAYS = _env_int("COUPON_VALIDITY_DAYS", 30)
COUPON_CODE_PREFIX = os.getenv("COUPON_CODE_PREFIX") or "LOYALTY"
COUPON_CODE_PROVIDER = (os.getenv("COUPON_CODE_PROVIDER") or "local").lower()  # local / salla

# Upstream e-commerce API (coupon creation)
SALLA_API_BASE_URL = os.getenv("SALLA_API_BASE_URL") or "https://api.salla.dev/admin/v2"
UPSTREAM_TIMEOUT_SECONDS = _env_float("UPSTREAM_TIMEOUT_SECONDS", 10.0)
UPSTREAM_MAX_ATTEMPTS = _env_int("UPSTREAM_MAX_ATTEMPTS", 3)
UPSTREAM_BACKOFF_SECONDS = _env_float("UPSTREAM_BACKOFF_SECONDS", 0.5)

# Notifications
ADMIN_NOTIFICATION_EMAIL = os.getenv("ADMIN_NOTIFICATION_EMAIL") or None
SMTP_HOST = (os.getenv("SMTP_HOST") or "").strip()
SMTP_PORT = _env_int("SMTP_PORT", 587)
SMTP_USERNAME = (os.getenv("SMTP_USERNAME") or "").strip()
SMTP_PASSWORD = (os.getenv("SMTP_PASSWORD") or "").strip()
SMTP_FROM = (os.getenv("SMTP_FROM") or SMTP_USERNAME).strip()
SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", True)
NOTIFICATION_SEND_TIMEOUT_SECONDS = _env_float("NOTIFICATION_SEND_TIMEOUT_SECONDS", 10.0)
NOTIFICATION_MAX_ATTEMPTS = _env_int("NOTIFICATION_MAX_ATTEMPTS", 5)

# Deduplication of webhook-originated events on (merchant, event, orderId).
# Off by default: replays award twice unless explicitly enabled.
LOYALTY_DEDUPE_EVENTS = _env_bool("LOYALTY_DEDUPE_EVENTS", False)

# Reconciliation job
RECONCILE_CRON = os.getenv("RECONCILE_CRON") or "0 * * * *"
RECONCILE_TIMEZONE = os.getenv("RECONCILE_TIMEZONE") or "UTC"
