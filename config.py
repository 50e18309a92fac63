"""
Runtime configuration

Everything is read from the environment (a local .env file is loaded first).
"""

import logging
import os

import structlog
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in ("1", "true", "yes")


def _csv(name: str, default: str) -> list:
    raw = os.getenv(name) or default
    return [item.strip() for item in raw.split(",") if item.strip()]


ENVIRONMENT = (os.getenv("ENVIRONMENT") or "development").lower()
IS_PRODUCTION = ENVIRONMENT == "production"
LOG_LEVEL = (os.getenv("LOG_LEVEL") or "INFO").upper()

# Auth
JWT_SECRET = os.getenv("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = "HS256"
JWT_EXPIRES_HOURS = int(os.getenv("JWT_EXPIRES_HOURS", "168"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))
MAX_LOGIN_ATTEMPTS = 5
LOCK_HOURS = 2

# Frontend / CORS
FRONTEND_URL = (os.getenv("FRONTEND_URL") or "http://localhost:5173").rstrip("/")
PRODUCTION_ORIGINS = [FRONTEND_URL] + _csv("CORS_ALLOWED_ORIGINS", "")
DEVELOPMENT_ORIGINS = [
    FRONTEND_URL,
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
] + _csv("CORS_ALLOWED_ORIGINS", "")
LOCAL_NETWORK_ORIGIN = r"^http://(localhost|127\.0\.0\.1|192\.168\.[0-9]{1,3}\.[0-9]{1,3})(:[0-9]{2,5})?$"

# Uploads
UPLOAD_DIR = os.getenv("UPLOAD_DIR") or os.path.join(os.path.dirname(os.path.abspath(__file__)), "uploads")
ALLOWED_FILE_TYPES = _csv("ALLOWED_FILE_TYPES", "image/jpeg,image/png,image/gif,image/webp,image/avif")
MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE") or 5 * 1024 * 1024)
ALLOWED_VIDEO_TYPES = _csv("ALLOWED_VIDEO_TYPES", "video/mp4,video/webm,video/ogg")
MAX_VIDEO_FILE_SIZE = int(os.getenv("MAX_VIDEO_FILE_SIZE") or 100 * 1024 * 1024)

# PayU
_payu_mode = (os.getenv("PAYU_ENV") or os.getenv("PAYU_MODE") or "test").lower()
PAYU_IS_LIVE = _payu_mode in ("live", "prod", "production")
PAYU_MERCHANT_KEY = os.getenv("PAYU_MERCHANT_KEY")
PAYU_MERCHANT_SALT = os.getenv("PAYU_MERCHANT_SALT")
PAYU_PAYMENT_URL = os.getenv("PAYU_PAYMENT_URL") or (
    "https://secure.payu.in/_payment" if PAYU_IS_LIVE else "https://test.payu.in/_payment"
)
PAYU_ATTEMPT_TTL_HOURS = 24

# Mail
STORE_NAME = os.getenv("STORE_NAME") or "AUSTINE"
STORE_OWNER_EMAIL = os.getenv("STORE_OWNER_EMAIL") or ""
MAIL_FROM = os.getenv("MAIL_FROM") or f"{STORE_NAME} <no-reply@localhost>"
EMAIL_PROVIDER = (os.getenv("EMAIL_PROVIDER") or "").strip().lower()
EMAIL_STRICT = _flag("EMAIL_STRICT")
MAILGUN_API_KEY = os.getenv("MAILGUN_API_KEY")
MAILGUN_DOMAIN = os.getenv("MAILGUN_DOMAIN")
MAILGUN_BASE_URL = (os.getenv("MAILGUN_BASE_URL") or "https://api.mailgun.net").rstrip("/")
SMTP_HOST = os.getenv("SMTP_HOST")
SMTP_PORT = int(os.getenv("SMTP_PORT") or 0)
SMTP_USER = (os.getenv("SMTP_USER") or "").strip()
SMTP_PASS = (os.getenv("SMTP_PASS") or "").strip()
SMTP_SECURE = _flag("SMTP_SECURE")
CONTACT_TO_EMAIL = os.getenv("CONTACT_TO_EMAIL") or STORE_OWNER_EMAIL
CONTACT_AUTO_REPLY = _flag("CONTACT_AUTO_REPLY")

# Seeding
ADMIN_EMAIL = (os.getenv("ADMIN_EMAIL") or "admin@austine.com").lower()
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD") or "admin123"


def configure_logging():
    level = getattr(logging, LOG_LEVEL, logging.INFO)
    logging.basicConfig(format="%(message)s", level=level)
    renderer = structlog.processors.JSONRenderer() if IS_PRODUCTION else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
