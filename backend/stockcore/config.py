# backend/stockcore/config.py
from __future__ import annotations
import os


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw else default


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw else default


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockcore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///stockcore.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SQLite busy timeout: a writer waiting on BEGIN IMMEDIATE gives up after this
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {"timeout": _float_env("SQLITE_BUSY_TIMEOUT_SECONDS", 10.0)},
    }

    # Atomic scope for every stock-mutating operation
    STOCK_TXN_TIMEOUT_SECONDS = _float_env("STOCK_TXN_TIMEOUT_SECONDS", 5.0)
    STOCK_TXN_RETRY_ATTEMPTS = _int_env("STOCK_TXN_RETRY_ATTEMPTS", 3)
    STOCK_TXN_RETRY_BACKOFF = _float_env("STOCK_TXN_RETRY_BACKOFF", 0.05)

    # Document numbering: {PREFIX}-{YYMMDD}-{0001}
    SALE_INVOICE_PREFIX = os.environ.get("SALE_INVOICE_PREFIX", "INV")
    PURCHASE_INVOICE_PREFIX = os.environ.get("PURCHASE_INVOICE_PREFIX", "PO")
    ADJUSTMENT_REFERENCE_PREFIX = os.environ.get("ADJUSTMENT_REFERENCE_PREFIX", "ADJ")

    DEFAULT_PAGE_SIZE = 10
    MAX_PAGE_SIZE = 100

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
