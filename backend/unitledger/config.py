# backend/unitledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/unitledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///unitledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Warranty applied when a registration/import omits warranty_months
    DEFAULT_WARRANTY_MONTHS = int(os.environ.get("DEFAULT_WARRANTY_MONTHS", "6"))

    # Consignment display numbers: CON-001, CON-002, ...
    CONSIGNMENT_NUMBER_PREFIX = os.environ.get("CONSIGNMENT_NUMBER_PREFIX", "CON-")
    CONSIGNMENT_NUMBER_PAD = int(os.environ.get("CONSIGNMENT_NUMBER_PAD", "3"))

    # When False, payments may not push a consignee's pending balance below zero
    ALLOW_CONSIGNEE_CREDIT = _env_bool("ALLOW_CONSIGNEE_CREDIT", False)

    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "USD")

    RETRY_ATTEMPTS = int(os.environ.get("RETRY_ATTEMPTS", "3"))

    CORS_ALLOWED_ORIGINS = tuple(
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173"
        ).split(",")
        if origin.strip()
    )

    # Low-stock notifier chain, resolved by notification_service.build_notifiers
    LOW_STOCK_NOTIFIERS = tuple(
        name.strip()
        for name in os.environ.get("LOW_STOCK_NOTIFIERS", "log,alert").split(",")
        if name.strip()
    )
