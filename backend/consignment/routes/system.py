# backend/consignment/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports whether reconciliation runs on the
atomic path or a degraded fallback.
"""

import time
from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import FrontedRecord, LedgerLock
from ..time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        record_count = db.session.query(FrontedRecord).count()
        held_locks = db.session.query(LedgerLock).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "fronted_records": record_count,
                "ledger_locks": held_locks,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_reconciliation_mode() -> dict:
    if current_app.config.get("LEDGER_ATOMIC_RECONCILE", True):
        return {"status": "healthy", "mode": "atomic"}
    return {
        "status": "degraded",
        "mode": "fallback",
        "fallback_mode": current_app.config.get("LEDGER_FALLBACK_MODE", "refuse"),
        "warning": "Reconciliation is not atomic",
    }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: Healthy or degraded (still operational)
    - 503: Database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    reconciliation = check_reconciliation_mode()

    if database_health["status"] == "unhealthy":
        overall_status = "unhealthy"
        http_status = 503
    elif reconciliation["status"] == "degraded":
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    total_elapsed_ms = (time.time() - start_time) * 1000

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round(total_elapsed_ms, 2),
        "checks": {
            "database": database_health,
            "reconciliation": reconciliation,
        }
    }

    return response, http_status
