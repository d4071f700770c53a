# Overview: Append-only ledger event log; written in the same transaction as the operation it records.

from __future__ import annotations

import json
from typing import Optional
from datetime import datetime

from ..extensions import db
from ..models import LedgerEvent
from ..time_utils import utcnow
"""
Ledger Event Invariants (authoritative)

- Append-only audit log for dispatch, sale, reconciliation, payment, cancel.
- No domain/business logic in the event log itself.
- Events are flushed inside the caller's transaction; the caller commits.
- occurred_at is business time; defaults to now (UTC).
"""

EVENT_DISPATCHED = "FRONTED_DISPATCHED"
EVENT_SALE_REPORTED = "FRONTED_SALE_REPORTED"
EVENT_RECONCILED = "FRONTED_RECONCILED"
EVENT_RECONCILE_COMPENSATED = "FRONTED_RECONCILE_COMPENSATED"
EVENT_PAYMENT_RECORDED = "FRONTED_PAYMENT_RECORDED"
EVENT_CANCELLED = "FRONTED_CANCELLED"
EVENT_COMPLETED = "FRONTED_COMPLETED"


def append_ledger_event(
    *,
    tenant_id: int,
    event_type: str,
    entity_type: str,
    entity_id: int,
    fronted_record_id: int | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[dict] = None,
) -> LedgerEvent:
    """
    Append-only ledger event.

    - No deletes/updates of existing events.
    - payload is serialized to JSON text.
    """
    ev = LedgerEvent(
        tenant_id=tenant_id,
        event_type=event_type,
        entity_type=entity_type,
        entity_id=entity_id,
        fronted_record_id=fronted_record_id,
        occurred_at=occurred_at or utcnow(),
        note=note,
        payload=json.dumps(payload, sort_keys=True) if payload is not None else None,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(tenant_id: int, fronted_record_id: int | None = None, limit: int = 100) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent).filter_by(tenant_id=tenant_id)
    if fronted_record_id is not None:
        q = q.filter_by(fronted_record_id=fronted_record_id)
    return q.order_by(LedgerEvent.occurred_at.desc(), LedgerEvent.id.desc()).limit(limit).all()
