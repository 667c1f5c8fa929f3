# backend/rental_engine/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/rental_engine.sqlite3 by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///rental_engine.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Shared secret for the cron-triggered lifecycle sweep endpoint
    CRON_SECRET = os.environ.get("CRON_SECRET")

    # Mail sink: "log" only logs messages, "smtp" delivers them
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "log")
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "localhost")
    MAIL_PORT = _env_int("MAIL_PORT", 587)
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "no-reply@rental.local")
    MAIL_TIMEOUT_SECONDS = _env_int("MAIL_TIMEOUT_SECONDS", 10)

    # Links in customer e-mails
    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:3000")

    # Lifecycle sweep: how many days ahead of rental_end reminders start
    REMINDER_WINDOW_DAYS = _env_int("REMINDER_WINDOW_DAYS", 3)

    # Settlement policy (basis points: 10000 = 100%)
    DAMAGE_FEE_RATE_BPS = _env_int("DAMAGE_FEE_RATE_BPS", 5000)
    FEE_TAX_RATE_BPS = _env_int("FEE_TAX_RATE_BPS", 1800)
    FEE_INVOICE_DUE_DAYS = _env_int("FEE_INVOICE_DUE_DAYS", 7)
