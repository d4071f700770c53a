# Overview: Risk/Overdue Scorer; read-only reliability, overdue and aging figures derived from the ledger.

"""
Risk / Overdue Scorer

Pure read side over FrontedRecord, FrontedPayment and ClientBalance. Nothing
here writes; every figure is recomputed on read from ledger state.

RELIABILITY SCORE (0-100):
    score = clamp(50 + 10 * on_time_payments - 15 * overdue_incidents, 0, 100)
- on_time_payments: payments in the trailing window received on or before
  their record's due date
- overdue_incidents: distinct records that are overdue right now, or that
  received a late payment in the trailing window
Non-decreasing in on-time payments, non-increasing in overdue incidents.

AGING (days since dispatch, ACTIVE records):
- HEALTHY: <= 7 days, WARNING: 8-14 days, OVERDUE: > 14 days
- health score = max(0, 100 - 2 * percentage of value-at-risk that is OVERDUE)

RECEIVABLES AGING (days past due, per client):
- remaining cents of each unpaid ACTIVE record, bucketed as CURRENT (not
  past due), 1-30, 31-60, 61-90 and OVER_90 days past due
"""

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import FrontedRecord, FrontedPayment
from ..time_utils import utcnow, whole_days_between
from . import balance_service, fronted_service
from .tenant_service import require_client_in_tenant


BASE_SCORE = 50
ON_TIME_POINTS = 10
OVERDUE_PENALTY = 15
MIN_SCORE = 0
MAX_SCORE = 100

AGING_HEALTHY = "HEALTHY"
AGING_WARNING = "WARNING"
AGING_OVERDUE = "OVERDUE"

AGING_WARNING_AFTER_DAYS = 7
AGING_OVERDUE_AFTER_DAYS = 14

RECEIVABLE_BUCKETS = [
    # (name, max days past due; None = no upper bound)
    ("CURRENT", 0),
    ("DAYS_1_30", 30),
    ("DAYS_31_60", 60),
    ("DAYS_61_90", 90),
    ("OVER_90", None),
]

RISK_LOW = "LOW"
RISK_MEDIUM = "MEDIUM"
RISK_HIGH = "HIGH"


# =============================================================================
# PER-RECORD FIGURES
# =============================================================================

def days_overdue(record: FrontedRecord, now: datetime | None = None) -> int:
    """Whole days past the due date while unpaid; 0 otherwise."""
    now = now or utcnow()
    if not fronted_service.is_overdue(record, now):
        return 0
    return max(0, whole_days_between(record.payment_due_date, now))


def days_out(record: FrontedRecord, now: datetime | None = None) -> int:
    now = now or utcnow()
    return max(0, whole_days_between(record.dispatched_at, now))


def aging_bucket(days: int) -> str:
    if days > AGING_OVERDUE_AFTER_DAYS:
        return AGING_OVERDUE
    if days > AGING_WARNING_AFTER_DAYS:
        return AGING_WARNING
    return AGING_HEALTHY


def record_risk_fields(record: FrontedRecord, now: datetime | None = None) -> dict:
    """Derived fields merged into a record's JSON on read."""
    now = now or utcnow()
    out = days_out(record, now)
    return {
        "is_overdue": fronted_service.is_overdue(record, now),
        "days_overdue": days_overdue(record, now),
        "days_out": out,
        "aging_bucket": aging_bucket(out) if record.status == fronted_service.STATUS_ACTIVE else None,
    }


def record_with_risk(record: FrontedRecord, now: datetime | None = None) -> dict:
    data = record.to_dict()
    data.update(record_risk_fields(record, now))
    return data


# =============================================================================
# RELIABILITY
# =============================================================================

def reliability_score(on_time_payments: int, overdue_incidents: int) -> int:
    """Bounded, monotonic score in [0, 100]."""
    on_time_payments = max(0, int(on_time_payments))
    overdue_incidents = max(0, int(overdue_incidents))
    raw = BASE_SCORE + ON_TIME_POINTS * on_time_payments - OVERDUE_PENALTY * overdue_incidents
    return max(MIN_SCORE, min(MAX_SCORE, raw))


def risk_level(score: int) -> str:
    if score >= 70:
        return RISK_LOW
    if score >= 40:
        return RISK_MEDIUM
    return RISK_HIGH


def payment_history_counts(
    tenant_id: int,
    client_id: int,
    now: datetime | None = None,
    window_days: int | None = None,
) -> dict:
    """On-time payment count and overdue incident count for the trailing window."""
    now = now or utcnow()
    if window_days is None:
        window_days = current_app.config.get("RISK_WINDOW_DAYS", 90)
    window_start = now - timedelta(days=window_days)

    payments = db.session.query(FrontedPayment).filter(
        FrontedPayment.tenant_id == tenant_id,
        FrontedPayment.client_id == client_id,
        FrontedPayment.received_at >= window_start,
        FrontedPayment.received_at <= now,
    ).all()

    on_time = sum(1 for p in payments if p.on_time)
    incident_records = {p.fronted_record_id for p in payments if not p.on_time}

    overdue_now = db.session.query(FrontedRecord.id).filter(
        FrontedRecord.tenant_id == tenant_id,
        FrontedRecord.client_id == client_id,
        fronted_service.overdue_clause(now),
    ).all()
    incident_records.update(row[0] for row in overdue_now)

    return {
        "window_days": window_days,
        "on_time_payments": on_time,
        "late_payments": sum(1 for p in payments if not p.on_time),
        "overdue_incidents": len(incident_records),
    }


def client_risk_summary(tenant_id: int, client_id: int, now: datetime | None = None) -> dict:
    """Balance, credit utilisation, overdue exposure and reliability for one client."""
    now = now or utcnow()
    client = require_client_in_tenant(client_id, tenant_id)
    balance = balance_service.get_balance(tenant_id, client_id)

    active = db.session.query(FrontedRecord).filter_by(
        tenant_id=tenant_id, client_id=client_id, status=fronted_service.STATUS_ACTIVE
    ).all()
    overdue = [r for r in active if fronted_service.is_overdue(r, now)]

    counts = payment_history_counts(tenant_id, client_id, now)
    score = reliability_score(counts["on_time_payments"], counts["overdue_incidents"])

    outstanding = balance.outstanding_balance_cents if balance else 0
    credit_limit = balance.credit_limit_cents if balance else 0

    return {
        "client_id": client.id,
        "business_name": client.business_name,
        "outstanding_balance_cents": outstanding,
        "credit_limit_cents": credit_limit,
        "credit_utilization": round(outstanding / credit_limit, 4) if credit_limit > 0 else None,
        "active_records": len(active),
        "overdue_records": len(overdue),
        "overdue_amount_cents": sum(r.remaining_cents for r in overdue),
        "max_days_overdue": max((days_overdue(r, now) for r in overdue), default=0),
        "reliability_score": score,
        "risk_level": risk_level(score),
        **counts,
    }


# =============================================================================
# PORTFOLIO AGING
# =============================================================================

def aging_summary(tenant_id: int, now: datetime | None = None) -> dict:
    """Aging of units still out across all ACTIVE records of a tenant."""
    now = now or utcnow()
    records = db.session.query(FrontedRecord).filter_by(
        tenant_id=tenant_id, status=fronted_service.STATUS_ACTIVE
    ).order_by(FrontedRecord.dispatched_at.asc()).all()

    buckets = {
        name: {"records": 0, "units": 0, "value_cents": 0}
        for name in (AGING_HEALTHY, AGING_WARNING, AGING_OVERDUE)
    }
    total_days = 0
    for record in records:
        out = days_out(record, now)
        total_days += out
        bucket = buckets[aging_bucket(out)]
        bucket["records"] += 1
        bucket["units"] += record.outstanding_quantity
        bucket["value_cents"] += record.outstanding_quantity * record.price_per_unit_cents

    total_value = sum(b["value_cents"] for b in buckets.values())
    overdue_pct = (buckets[AGING_OVERDUE]["value_cents"] / total_value * 100) if total_value > 0 else 0.0

    return {
        "active_records": len(records),
        "total_units": sum(b["units"] for b in buckets.values()),
        "total_value_cents": total_value,
        "avg_days_out": round(total_days / len(records)) if records else 0,
        "health_score": max(0.0, round(100 - overdue_pct * 2, 2)),
        "aging": buckets,
    }


# =============================================================================
# RECEIVABLES AGING
# =============================================================================

def receivable_bucket(days_past_due: int) -> str:
    for name, upper in RECEIVABLE_BUCKETS:
        if upper is None or days_past_due <= upper:
            return name
    return RECEIVABLE_BUCKETS[-1][0]


def client_receivables_aging(tenant_id: int, client_id: int, now: datetime | None = None) -> dict:
    """Unpaid amounts of a client's ACTIVE records, bucketed by days past due."""
    now = now or utcnow()
    require_client_in_tenant(client_id, tenant_id)

    records = db.session.query(FrontedRecord).filter_by(
        tenant_id=tenant_id, client_id=client_id, status=fronted_service.STATUS_ACTIVE
    ).order_by(FrontedRecord.payment_due_date.asc()).all()

    buckets = {name: {"records": 0, "amount_cents": 0} for name, _ in RECEIVABLE_BUCKETS}
    for record in records:
        remaining = record.remaining_cents
        if remaining <= 0:
            continue
        bucket = buckets[receivable_bucket(whole_days_between(record.payment_due_date, now))]
        bucket["records"] += 1
        bucket["amount_cents"] += remaining

    return {
        "client_id": client_id,
        "total_cents": sum(b["amount_cents"] for b in buckets.values()),
        "aging": buckets,
    }
