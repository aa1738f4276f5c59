# backend/stockledger/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Fallbacks for the app_settings key-value rows
    DEFAULT_EXPIRY_WARNING_DAYS = _env_int("DEFAULT_EXPIRY_WARNING_DAYS", 7)
    DEFAULT_DEPLETION_WARNING_DAYS = _env_int("DEFAULT_DEPLETION_WARNING_DAYS", 5)

    # 0 = previous full calendar week (Mon-Sun); N > 0 = rolling N whole days before today
    FORECAST_WINDOW_DAYS = _env_int("FORECAST_WINDOW_DAYS", 0)

    # Caller-supplied timestamps may lead server time by at most this much
    FUTURE_TOLERANCE_MINUTES = _env_int("FUTURE_TOLERANCE_MINUTES", 2)
