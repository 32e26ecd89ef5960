# backend/app/config.py
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

    # SQLite DB stored in backend/instance/stockflow.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockflow.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # "lenient": mismatched unit prices are logged and accepted
    # "strict": mismatched unit prices reject the order
    PRICE_VALIDATION_MODE = os.environ.get("PRICE_VALIDATION_MODE", "lenient")
    PRICE_TOLERANCE_CENTS = _env_int("PRICE_TOLERANCE_CENTS", 2)

    TENANT_CACHE_TTL_SECONDS = _env_int("TENANT_CACHE_TTL_SECONDS", 300)

    # Unit-of-work bounds for multi-step operations (orders, transfers, adjustments)
    TRANSACTION_TIMEOUT_SECONDS = _env_int("TRANSACTION_TIMEOUT_SECONDS", 10)
    TRANSACTION_RETRY_ATTEMPTS = _env_int("TRANSACTION_RETRY_ATTEMPTS", 3)


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    PRICE_VALIDATION_MODE = "lenient"
