# backend/stockledger/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


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

    # Closing a day without a physical count is allowed (logged) unless this is set
    STOCK_REQUIRE_COUNT_BEFORE_CLOSE = _env_flag("STOCK_REQUIRE_COUNT_BEFORE_CLOSE")

    # Opening a day copies the previous session day's closing counts in as opening_stock
    STOCK_CARRY_FORWARD_OPENING = _env_flag("STOCK_CARRY_FORWARD_OPENING", True)

    # Unit assigned to items auto-created by the generic restock import
    STOCK_DEFAULT_UNIT = os.environ.get("STOCK_DEFAULT_UNIT", "PCS")
