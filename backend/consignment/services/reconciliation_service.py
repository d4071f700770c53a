# Overview: Reconciliation Engine; applies a scanned return batch to record, stock, balance and scan log as one unit.

"""
Reconciliation Engine

WHY: A reconciliation batch touches four things at once: the fronted record's
quantities, the product's stock counters, the client's outstanding balance,
and the scan log. If any of them is written without the others the ledger is
wrong (stock double-counted, client over/under-credited), so the whole batch
is applied as ONE transaction or not at all.

ALGORITHM:
1. Load the record (locked). NotFound if absent, InvalidState unless ACTIVE
2. Reject barcodes already reconciled for the record (DuplicateScan)
3. Split the batch into good / damaged; OverReturn if
   existing(sold + returned + damaged) + good + damaged > fronted
4. returned_value = good * price_per_unit (damaged units are a write-off,
   not a refund)
5. Apply: record deltas, stock return/write-off, balance debit, scan log
6. Complete the record if fully accounted for and PAID

ATOMIC PATH: steps 1-6 run inside run_in_transaction. Any error rolls back
every write; concurrent writers (StaleDataError / lock timeouts) are retried
from step 1 against fresh state, then surface as TransactionConflict.

FALLBACK PATH: used only when LEDGER_ATOMIC_RECONCILE is off (the storage
layer cannot run the batch as one transaction).
- LEDGER_FALLBACK_MODE=refuse (default): nothing is written;
  DegradedConsistency is raised.
- LEDGER_FALLBACK_MODE=locked: the record is locked with a LedgerLock row,
  each write commits on its own with its state read back and verified, and
  any failed check runs compensating writes in reverse before raising
  DegradedConsistency. A successful run is still flagged degraded.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import FrontedRecord, ReconciliationBatch, ReturnScanEntry, LedgerLock
from ..time_utils import utcnow
from ..validation import optional_str
from . import fronted_service, stock_service, balance_service, scan_log_service, ledger_service
from .concurrency import run_in_transaction
from .errors import DegradedConsistency, OverReturn, TransactionConflict
from .scan_log_service import ScanEntry


CONSISTENCY_ATOMIC = "ATOMIC"
CONSISTENCY_DEGRADED = "DEGRADED"

FALLBACK_REFUSE = "refuse"
FALLBACK_LOCKED = "locked"


@dataclass(frozen=True)
class ReconciliationPlan:
    """Validated effect of one batch on one record (steps 1-4)."""
    tenant_id: int
    record_id: int
    product_id: int
    client_id: int
    good_count: int
    damaged_count: int
    returned_value_cents: int
    # Record quantities the plan was computed against: (sold, returned, damaged)
    planned_against: tuple[int, int, int]


@dataclass
class ReconciliationResult:
    good_returns: int
    damaged_returns: int
    returned_value_cents: int
    new_outstanding_balance_cents: int
    batch_id: int
    record: dict
    degraded: bool = False
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "good_returns": self.good_returns,
            "damaged_returns": self.damaged_returns,
            "returned_value_cents": self.returned_value_cents,
            "new_outstanding_balance_cents": self.new_outstanding_balance_cents,
            "batch_id": self.batch_id,
            "degraded": self.degraded,
            "warnings": self.warnings,
            "record": self.record,
        }


# =============================================================================
# ENTRY POINT
# =============================================================================

def reconcile(
    tenant_id: int,
    fronted_record_id: int,
    entries: list[Any],
    notes: str | None = None,
) -> ReconciliationResult:
    """
    Apply a finished scan batch to a fronted record.

    Args:
        tenant_id: Tenant owning the record
        fronted_record_id: Record being reconciled
        entries: [{barcode, condition, reason?}] or ScanEntry objects
        notes: Optional batch notes

    Raises:
        ValidationError, NotFound, InvalidState, OverReturn, DuplicateScan,
        TransactionConflict, DegradedConsistency
    """
    batch = scan_log_service.parse_batch(entries)
    notes = optional_str("notes", notes, max_length=2000)

    if not atomic_reconcile_available():
        return _reconcile_fallback(tenant_id, fronted_record_id, batch, notes)

    result = run_in_transaction(lambda: _reconcile_atomic(tenant_id, fronted_record_id, batch, notes))
    current_app.logger.info(
        "Reconciled fronted record %s: %s good, %s damaged, %s cents credited",
        fronted_record_id, result.good_returns, result.damaged_returns, result.returned_value_cents,
    )
    return result


def atomic_reconcile_available() -> bool:
    return bool(current_app.config.get("LEDGER_ATOMIC_RECONCILE", True))


def plan_batch(record: FrontedRecord, batch: list[ScanEntry]) -> ReconciliationPlan:
    """Steps 2-4: duplicate check, good/damaged split, over-return check, value."""
    scan_log_service.require_not_reconciled(record.id, batch)

    damaged_count = sum(1 for entry in batch if entry.is_damaged)
    good_count = len(batch) - damaged_count

    if record.accounted_quantity + good_count + damaged_count > record.quantity_fronted:
        raise OverReturn(
            f"Fronted record {record.id}: {good_count + damaged_count} more units would bring "
            f"accounted units to {record.accounted_quantity + good_count + damaged_count}, "
            f"but only {record.quantity_fronted} were fronted"
        )

    return ReconciliationPlan(
        tenant_id=record.tenant_id,
        record_id=record.id,
        product_id=record.product_id,
        client_id=record.client_id,
        good_count=good_count,
        damaged_count=damaged_count,
        returned_value_cents=good_count * record.price_per_unit_cents,
        planned_against=(record.quantity_sold, record.quantity_returned, record.quantity_damaged),
    )


def _append_batch(plan: ReconciliationPlan, batch: list[ScanEntry], notes: str | None, consistency: str) -> ReconciliationBatch:
    batch_row = ReconciliationBatch(
        tenant_id=plan.tenant_id,
        fronted_record_id=plan.record_id,
        good_count=plan.good_count,
        damaged_count=plan.damaged_count,
        returned_value_cents=plan.returned_value_cents,
        consistency=consistency,
        notes=notes,
    )
    db.session.add(batch_row)
    db.session.flush()

    scan_log_service.append_entries(plan.tenant_id, plan.record_id, batch_row.id, batch)

    ledger_service.append_ledger_event(
        tenant_id=plan.tenant_id,
        event_type=ledger_service.EVENT_RECONCILED,
        entity_type="reconciliation_batch",
        entity_id=batch_row.id,
        fronted_record_id=plan.record_id,
        payload={
            "good_count": plan.good_count,
            "damaged_count": plan.damaged_count,
            "returned_value_cents": plan.returned_value_cents,
            "consistency": consistency,
        },
    )
    return batch_row


# =============================================================================
# ATOMIC PATH
# =============================================================================

def _reconcile_atomic(tenant_id: int, record_id: int, batch: list[ScanEntry], notes: str | None) -> ReconciliationResult:
    record = fronted_service.get_record_for_update(tenant_id, record_id)
    fronted_service.require_active(record)

    plan = plan_batch(record, batch)

    fronted_service.apply_quantity_delta(
        record, returned_delta=plan.good_count, damaged_delta=plan.damaged_count
    )
    stock_service.return_to_stock(tenant_id, plan.product_id, plan.good_count)
    stock_service.write_off_damaged(tenant_id, plan.product_id, plan.damaged_count)
    balance = balance_service.debit(tenant_id, plan.client_id, plan.returned_value_cents)
    batch_row = _append_batch(plan, batch, notes, CONSISTENCY_ATOMIC)

    fronted_service.maybe_complete(record)

    return ReconciliationResult(
        good_returns=plan.good_count,
        damaged_returns=plan.damaged_count,
        returned_value_cents=plan.returned_value_cents,
        new_outstanding_balance_cents=balance.outstanding_balance_cents,
        batch_id=batch_row.id,
        record=record.to_dict(),
    )


# =============================================================================
# FALLBACK PATH
# =============================================================================

class StepVerificationError(Exception):
    """A fallback write did not land exactly as planned."""

    def __init__(self, step: str, expected: Any, actual: Any):
        super().__init__(f"{step}: expected {expected}, found {actual}")
        self.step = step


def _reconcile_fallback(tenant_id: int, record_id: int, batch: list[ScanEntry], notes: str | None) -> ReconciliationResult:
    mode = current_app.config.get("LEDGER_FALLBACK_MODE", FALLBACK_REFUSE)
    current_app.logger.warning(
        "DEGRADED CONSISTENCY: atomic reconciliation unavailable for fronted record %s (fallback mode=%s)",
        record_id, mode,
    )

    if mode != FALLBACK_LOCKED:
        raise DegradedConsistency(
            "Atomic reconciliation is unavailable and the non-atomic fallback is disabled; "
            "nothing was applied"
        )

    # NotFound / InvalidState before taking the lock
    record = fronted_service.get_record(tenant_id, record_id)
    fronted_service.require_active(record)

    token = acquire_record_lock(tenant_id, record_id)
    try:
        return _reconcile_locked(tenant_id, record_id, batch, notes)
    finally:
        release_record_lock(tenant_id, record_id, token)


def acquire_record_lock(tenant_id: int, record_id: int) -> str:
    """
    Take the explicit per-record lock (a LedgerLock row) and commit it.

    An expired lock left behind by a crashed holder is cleared first.
    Raises TransactionConflict if another holder has the record.
    """
    now = utcnow()
    ttl = timedelta(seconds=current_app.config.get("LEDGER_LOCK_TTL_SECONDS", 30))
    token = uuid.uuid4().hex

    db.session.query(LedgerLock).filter(
        LedgerLock.tenant_id == tenant_id,
        LedgerLock.fronted_record_id == record_id,
        LedgerLock.expires_at < now,
    ).delete(synchronize_session=False)

    db.session.add(LedgerLock(
        tenant_id=tenant_id,
        fronted_record_id=record_id,
        owner_token=token,
        acquired_at=now,
        expires_at=now + ttl,
    ))
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise TransactionConflict(
            f"Fronted record {record_id} is being reconciled by another request"
        ) from exc
    return token


def release_record_lock(tenant_id: int, record_id: int, token: str) -> None:
    db.session.rollback()
    db.session.query(LedgerLock).filter_by(
        tenant_id=tenant_id, fronted_record_id=record_id, owner_token=token
    ).delete(synchronize_session=False)
    db.session.commit()


def release_stale_locks() -> int:
    """Delete expired LedgerLock rows; returns how many were removed."""
    removed = db.session.query(LedgerLock).filter(
        LedgerLock.expires_at < utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    return removed


def _record_quantities(plan: ReconciliationPlan) -> tuple[int, int, int]:
    record = fronted_service.get_record(plan.tenant_id, plan.record_id)
    return (record.quantity_sold, record.quantity_returned, record.quantity_damaged)


def _stock_levels(plan: ReconciliationPlan) -> tuple[int, int]:
    stock = stock_service.get_stock(plan.tenant_id, plan.product_id)
    return (stock.available_quantity, stock.fronted_quantity) if stock else (0, 0)


def _outstanding(plan: ReconciliationPlan) -> int:
    balance = balance_service.get_balance(plan.tenant_id, plan.client_id)
    return balance.outstanding_balance_cents if balance else 0


def _verify(step: str, expected: Any, actual: Any) -> None:
    if expected != actual:
        raise StepVerificationError(step, expected, actual)


def _commit_step(apply: Callable[[], Any]) -> Any:
    result = apply()
    db.session.commit()
    return result


def _reconcile_locked(tenant_id: int, record_id: int, batch: list[ScanEntry], notes: str | None) -> ReconciliationResult:
    """
    Apply the batch as a verified sequence of single-row commits.

    Each step reads the row state before writing, commits, reads it back and
    checks it equals before +/- the planned delta. Compensations are
    registered as soon as a step commits and run newest-first on failure.
    """
    record = fronted_service.get_record(tenant_id, record_id)
    fronted_service.require_active(record)
    plan = plan_batch(record, batch)
    db.session.commit()

    good, damaged = plan.good_count, plan.damaged_count
    compensations: list[tuple[str, Callable[[], Any]]] = []

    try:
        # 1. Scan log first: the unique barcode key rejects a racing duplicate
        #    before any balance moves
        batch_id = _commit_step(lambda: _append_batch(plan, batch, notes, CONSISTENCY_DEGRADED).id)
        compensations.append(("scan log", lambda: _delete_batch(plan, batch_id)))
        _verify(
            "scan log (post)",
            len(batch),
            db.session.query(ReturnScanEntry).filter_by(batch_id=batch_id).count(),
        )

        # 2. Fronted record
        before = _record_quantities(plan)
        _verify("fronted record (pre)", plan.planned_against, before)
        _commit_step(lambda: fronted_service.apply_quantity_delta(
            fronted_service.get_record_for_update(tenant_id, record_id),
            returned_delta=good,
            damaged_delta=damaged,
        ))
        compensations.append(("fronted record", lambda: fronted_service.apply_quantity_delta(
            fronted_service.get_record_for_update(tenant_id, record_id),
            returned_delta=-good,
            damaged_delta=-damaged,
        )))
        _verify("fronted record (post)", (before[0], before[1] + good, before[2] + damaged), _record_quantities(plan))

        # 3. Product stock
        available, fronted = _stock_levels(plan)
        _verify("product stock (pre)", True, fronted >= good + damaged)

        def _move_stock():
            stock_service.return_to_stock(tenant_id, plan.product_id, good)
            stock_service.write_off_damaged(tenant_id, plan.product_id, damaged)

        _commit_step(_move_stock)
        compensations.append(("product stock", lambda: stock_service.undo_reconciliation_movement(
            tenant_id, plan.product_id, good, damaged
        )))
        _verify("product stock (post)", (available + good, fronted - good - damaged), _stock_levels(plan))

        # 4. Client balance (clamped at 0, so compensate by what was actually removed)
        outstanding_before = _outstanding(plan)
        _commit_step(lambda: balance_service.debit(tenant_id, plan.client_id, plan.returned_value_cents))
        outstanding_after = _outstanding(plan)
        debited = outstanding_before - outstanding_after
        compensations.append(("client balance", lambda: balance_service.reverse_debit(
            tenant_id, plan.client_id, debited
        )))
        _verify(
            "client balance (post)",
            max(0, outstanding_before - plan.returned_value_cents),
            outstanding_after,
        )

        # 5. Completion
        _commit_step(lambda: fronted_service.maybe_complete(
            fronted_service.get_record_for_update(tenant_id, record_id)
        ))
    except Exception as exc:
        db.session.rollback()
        failed = _run_compensations(compensations)
        current_app.logger.error(
            "DEGRADED CONSISTENCY: fallback reconciliation of fronted record %s failed (%s); "
            "compensated %s step(s), %s compensation(s) failed",
            record_id, exc, len(compensations) - len(failed), len(failed),
        )
        message = f"Fallback reconciliation of fronted record {record_id} failed and was compensated: {exc}"
        if failed:
            message = (
                f"Fallback reconciliation of fronted record {record_id} failed and could not be fully "
                f"compensated ({', '.join(failed)}); manual review required: {exc}"
            )
        raise DegradedConsistency(message) from exc

    current_app.logger.warning(
        "DEGRADED CONSISTENCY: fronted record %s reconciled through the locked fallback path "
        "(%s good, %s damaged)",
        record_id, good, damaged,
    )
    record = fronted_service.get_record(tenant_id, record_id)
    return ReconciliationResult(
        good_returns=good,
        damaged_returns=damaged,
        returned_value_cents=plan.returned_value_cents,
        new_outstanding_balance_cents=_outstanding(plan),
        batch_id=batch_id,
        record=record.to_dict(),
        degraded=True,
        warnings=["Applied without the atomic primitive; writes were committed step by step and verified"],
    )


def _delete_batch(plan: ReconciliationPlan, batch_id: int) -> None:
    """Remove a compensated batch from the scan log; the audit trail keeps both events."""
    db.session.query(ReturnScanEntry).filter_by(batch_id=batch_id).delete(synchronize_session=False)
    db.session.query(ReconciliationBatch).filter_by(id=batch_id).delete(synchronize_session=False)
    ledger_service.append_ledger_event(
        tenant_id=plan.tenant_id,
        event_type=ledger_service.EVENT_RECONCILE_COMPENSATED,
        entity_type="reconciliation_batch",
        entity_id=batch_id,
        fronted_record_id=plan.record_id,
    )


def _run_compensations(compensations: list[tuple[str, Callable[[], Any]]]) -> list[str]:
    """Run compensations newest-first, each in its own transaction. Returns names that failed."""
    failed = []
    for name, undo in reversed(compensations):
        try:
            run_in_transaction(undo)
        except Exception:
            current_app.logger.exception("Compensation for %s failed", name)
            failed.append(name)
    return failed


# =============================================================================
# QUERIES
# =============================================================================

def list_batches(tenant_id: int, fronted_record_id: int) -> list[ReconciliationBatch]:
    fronted_service.get_record(tenant_id, fronted_record_id)
    return db.session.query(ReconciliationBatch).filter_by(
        tenant_id=tenant_id, fronted_record_id=fronted_record_id
    ).order_by(ReconciliationBatch.id.asc()).all()
