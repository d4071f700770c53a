# backend/consignment/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/consignment.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///consignment.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # SQLite busy timeout doubles as the transaction lock timeout
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {"timeout": float(os.environ.get("LEDGER_TX_TIMEOUT_SECONDS", "15"))},
    } if SQLALCHEMY_DATABASE_URI.startswith("sqlite") else {}

    # Reconciliation: atomic single-transaction path vs. degraded fallback
    LEDGER_ATOMIC_RECONCILE = _env_flag("LEDGER_ATOMIC_RECONCILE", True)
    LEDGER_FALLBACK_MODE = os.environ.get("LEDGER_FALLBACK_MODE", "refuse")  # refuse | locked
    LEDGER_LOCK_TTL_SECONDS = int(os.environ.get("LEDGER_LOCK_TTL_SECONDS", "30"))

    # Bounded retry for concurrent writers (StaleDataError / lock timeouts)
    LEDGER_RETRY_ATTEMPTS = int(os.environ.get("LEDGER_RETRY_ATTEMPTS", "3"))
    LEDGER_RETRY_BACKOFF_SECONDS = float(os.environ.get("LEDGER_RETRY_BACKOFF_SECONDS", "0.1"))

    # Trailing window for reliability scoring
    RISK_WINDOW_DAYS = int(os.environ.get("RISK_WINDOW_DAYS", "90"))
