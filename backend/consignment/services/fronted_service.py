# Overview: Fronted Record Store plus the dispatch, sale, payment and cancel operations.

"""
Fronted (Consignment) Record Service

WHY: A fronted record is a receivable backed by physical stock. Every change
to it must move the matching units in ProductStock and the matching money in
ClientBalance inside ONE transaction, otherwise the three balances drift.

DESIGN PRINCIPLES:
- Store-level helpers (create_record, apply_quantity_delta, mark_payment,
  maybe_complete) only flush; they never commit
- Orchestrated operations (dispatch, report_sale, record_payment,
  cancel_record) run through run_in_transaction: one commit, full rollback
  on any error, bounded retry on concurrent writers
- Lock order is FrontedRecord -> ProductStock -> ClientBalance
- OVERDUE is derived at read time, never stored

LIFECYCLE:
1. dispatch -> ACTIVE
2. sales / reconciliation batches / payments while ACTIVE
3. ACTIVE -> COMPLETED once every unit is accounted for and the record is PAID
4. ACTIVE -> CANCELLED only if nothing has happened to the record yet
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import and_

from ..extensions import db
from ..models import FrontedRecord, FrontedPayment
from ..time_utils import utcnow
from ..validation import (
    ValidationError,
    coerce_int,
    require_cents,
    require_quantity,
    require_datetime,
    optional_str,
    MAX_PRICE_CENTS,
)
from . import stock_service, balance_service, ledger_service
from .concurrency import lock_for_update, run_in_transaction
from .errors import InvalidState, InvariantViolation, NotFound
from .tenant_service import require_product_in_tenant, require_client_in_tenant


# =============================================================================
# STATUS CONSTANTS
# =============================================================================

STATUS_ACTIVE = "ACTIVE"
STATUS_COMPLETED = "COMPLETED"
STATUS_CANCELLED = "CANCELLED"

VALID_STATUSES = [STATUS_ACTIVE, STATUS_COMPLETED, STATUS_CANCELLED]

PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PARTIAL = "PARTIAL"
PAYMENT_STATUS_PAID = "PAID"

PAYMENT_METHODS = ["CASH", "CARD", "CHECK", "TRANSFER", "OTHER"]


# =============================================================================
# RECORD STORE
# =============================================================================

def create_record(
    tenant_id: int,
    product_id: int,
    client_id: int,
    qty: int,
    price_per_unit_cents: int,
    due_date: datetime,
    notes: str | None = None,
) -> FrontedRecord:
    """Insert a new ACTIVE record. Stock and balance effects are the caller's job."""
    qty = require_quantity("quantity", qty)
    price_per_unit_cents = require_cents("price_per_unit_cents", price_per_unit_cents)
    if price_per_unit_cents > MAX_PRICE_CENTS:
        raise ValidationError(f"price_per_unit_cents cannot exceed {MAX_PRICE_CENTS}")

    record = FrontedRecord(
        tenant_id=tenant_id,
        product_id=product_id,
        client_id=client_id,
        quantity_fronted=qty,
        quantity_sold=0,
        quantity_returned=0,
        quantity_damaged=0,
        price_per_unit_cents=price_per_unit_cents,
        payment_received_cents=0,
        payment_status=PAYMENT_STATUS_PENDING,
        status=STATUS_ACTIVE,
        dispatched_at=utcnow(),
        payment_due_date=due_date,
        notes=notes,
    )
    record.recompute_expected_revenue()
    # A zero-priced record owes nothing and is PAID from the start
    refresh_payment_status(record)
    db.session.add(record)
    db.session.flush()
    return record


def get_record(tenant_id: int, record_id: int) -> FrontedRecord:
    """Tenant-scoped lookup; a record of another tenant is NotFound."""
    record = db.session.query(FrontedRecord).filter_by(id=record_id, tenant_id=tenant_id).first()
    if not record:
        raise NotFound(f"Fronted record {record_id} not found")
    return record


def get_record_for_update(tenant_id: int, record_id: int) -> FrontedRecord:
    record = lock_for_update(
        db.session.query(FrontedRecord).filter_by(id=record_id, tenant_id=tenant_id)
    ).first()
    if not record:
        raise NotFound(f"Fronted record {record_id} not found")
    return record


def require_active(record: FrontedRecord) -> None:
    if record.status != STATUS_ACTIVE:
        raise InvalidState(
            f"Fronted record {record.id} has status {record.status}; only ACTIVE records can change"
        )


def apply_quantity_delta(
    record: FrontedRecord,
    sold_delta: int = 0,
    returned_delta: int = 0,
    damaged_delta: int = 0,
) -> FrontedRecord:
    """
    Apply quantity deltas under the sum invariant.

    Deltas may be negative (compensating writes), but no resulting quantity
    may go negative and sold + returned + damaged may never exceed fronted.
    """
    sold_delta = coerce_int("sold_delta", sold_delta)
    returned_delta = coerce_int("returned_delta", returned_delta)
    damaged_delta = coerce_int("damaged_delta", damaged_delta)

    new_sold = record.quantity_sold + sold_delta
    new_returned = record.quantity_returned + returned_delta
    new_damaged = record.quantity_damaged + damaged_delta

    if min(new_sold, new_returned, new_damaged) < 0:
        raise InvariantViolation(f"Fronted record {record.id}: quantities cannot go negative")

    if new_sold + new_returned + new_damaged > record.quantity_fronted:
        raise InvariantViolation(
            f"Fronted record {record.id}: sold ({new_sold}) + returned ({new_returned}) + "
            f"damaged ({new_damaged}) would exceed fronted ({record.quantity_fronted})"
        )

    record.quantity_sold = new_sold
    record.quantity_returned = new_returned
    record.quantity_damaged = new_damaged
    record.recompute_expected_revenue()
    refresh_payment_status(record)
    db.session.flush()
    return record


def compute_payment_status(received_cents: int, net_due_cents: int) -> str:
    """PAID when received covers the net due, PARTIAL when something was paid, else PENDING."""
    if received_cents >= net_due_cents:
        return PAYMENT_STATUS_PAID
    if received_cents > 0:
        return PAYMENT_STATUS_PARTIAL
    return PAYMENT_STATUS_PENDING


def refresh_payment_status(record: FrontedRecord) -> str:
    record.payment_status = compute_payment_status(record.payment_received_cents, record.net_due_cents)
    return record.payment_status


def mark_payment(record: FrontedRecord, amount_cents: int) -> FrontedRecord:
    """Add to payment_received and recompute payment_status."""
    amount_cents = require_cents("amount_cents", amount_cents, allow_zero=False)
    record.payment_received_cents += amount_cents
    refresh_payment_status(record)
    db.session.flush()
    return record


def maybe_complete(record: FrontedRecord) -> bool:
    """ACTIVE -> COMPLETED when every unit is accounted for and the record is PAID."""
    if record.status != STATUS_ACTIVE:
        return False
    if record.accounted_quantity != record.quantity_fronted:
        return False
    if record.payment_status != PAYMENT_STATUS_PAID:
        return False

    record.status = STATUS_COMPLETED
    record.completed_at = utcnow()
    ledger_service.append_ledger_event(
        tenant_id=record.tenant_id,
        event_type=ledger_service.EVENT_COMPLETED,
        entity_type="fronted_record",
        entity_id=record.id,
        fronted_record_id=record.id,
    )
    db.session.flush()
    return True


# =============================================================================
# DISPATCH
# =============================================================================

def dispatch(
    tenant_id: int,
    client_id: int,
    product_id: int,
    quantity: int,
    price_per_unit_cents: int,
    payment_due_date,
    notes: str | None = None,
) -> FrontedRecord:
    """
    Front stock to a client.

    One transaction: reserve stock (available -> fronted), add the expected
    revenue to the client's balance (credit-limit checked), create the record,
    append a ledger event.

    Raises:
        ValidationError, NotFound, InvalidState, InsufficientStock,
        CreditLimitExceeded, TransactionConflict
    """
    quantity = require_quantity("quantity", quantity)
    price_per_unit_cents = require_cents("price_per_unit_cents", price_per_unit_cents)
    due_date = require_datetime("payment_due_date", payment_due_date)
    notes = optional_str("notes", notes, max_length=2000)

    def _op():
        product = require_product_in_tenant(product_id, tenant_id)
        client = require_client_in_tenant(client_id, tenant_id)
        if not product.is_active:
            raise InvalidState(f"Product {product_id} is inactive")
        if not client.is_active:
            raise InvalidState(f"Client {client_id} is inactive")

        stock_service.reserve_for_dispatch(tenant_id, product_id, quantity)

        expected_revenue_cents = quantity * price_per_unit_cents
        balance_service.credit(tenant_id, client_id, expected_revenue_cents)

        record = create_record(
            tenant_id, product_id, client_id, quantity, price_per_unit_cents, due_date, notes
        )

        ledger_service.append_ledger_event(
            tenant_id=tenant_id,
            event_type=ledger_service.EVENT_DISPATCHED,
            entity_type="fronted_record",
            entity_id=record.id,
            fronted_record_id=record.id,
            payload={
                "client_id": client_id,
                "product_id": product_id,
                "quantity": quantity,
                "expected_revenue_cents": expected_revenue_cents,
            },
        )
        return record

    record = run_in_transaction(_op)
    current_app.logger.info(
        "Fronted %s units of product %s to client %s (record %s)",
        quantity, product_id, client_id, record.id,
    )
    return record


# =============================================================================
# SALES REPORTED BY THE CLIENT
# =============================================================================

def report_sale(tenant_id: int, record_id: int, quantity: int) -> FrontedRecord:
    """
    Record units the client has sold.

    Sold units leave fronted stock for good. The client balance is untouched:
    the debt was booked at dispatch and is settled by payments.
    """
    quantity = require_quantity("quantity", quantity)

    def _op():
        record = get_record_for_update(tenant_id, record_id)
        require_active(record)
        apply_quantity_delta(record, sold_delta=quantity)
        stock_service.record_sold(tenant_id, record.product_id, quantity)
        ledger_service.append_ledger_event(
            tenant_id=tenant_id,
            event_type=ledger_service.EVENT_SALE_REPORTED,
            entity_type="fronted_record",
            entity_id=record.id,
            fronted_record_id=record.id,
            payload={"quantity": quantity},
        )
        maybe_complete(record)
        return record

    return run_in_transaction(_op)


# =============================================================================
# PAYMENTS
# =============================================================================

def record_payment(
    tenant_id: int,
    record_id: int,
    amount_cents: int,
    payment_method: str = "CASH",
    reference: str | None = None,
    notes: str | None = None,
    received_at: datetime | None = None,
) -> dict:
    """
    Record a client payment against a fronted record.

    Appends to the payment log, updates payment_received/payment_status,
    reduces the client balance by the amount, and completes the record when
    it is fully accounted for and paid.

    Returns:
        dict with payment_status, payment_received_cents, remaining_cents, payment
    """
    amount_cents = require_cents("amount_cents", amount_cents, allow_zero=False)
    payment_method = (payment_method or "CASH").strip().upper()
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"Invalid payment_method: {payment_method}. Must be one of {PAYMENT_METHODS}")
    reference = optional_str("reference", reference, max_length=128)
    notes = optional_str("notes", notes, max_length=2000)

    def _op():
        record = get_record_for_update(tenant_id, record_id)
        require_active(record)

        if record.remaining_cents <= 0:
            raise InvalidState(f"Fronted record {record_id} has no remaining balance due")
        if amount_cents > record.remaining_cents:
            raise ValidationError(
                f"Payment of {amount_cents} exceeds remaining balance due ({record.remaining_cents})"
            )

        paid_at = require_datetime("received_at", received_at) if received_at is not None else utcnow()
        payment = FrontedPayment(
            tenant_id=tenant_id,
            fronted_record_id=record.id,
            client_id=record.client_id,
            amount_cents=amount_cents,
            payment_method=payment_method,
            reference=reference,
            notes=notes,
            on_time=paid_at <= record.payment_due_date,
            received_at=paid_at,
        )
        db.session.add(payment)
        db.session.flush()

        mark_payment(record, amount_cents)
        balance = balance_service.debit(tenant_id, record.client_id, amount_cents)

        ledger_service.append_ledger_event(
            tenant_id=tenant_id,
            event_type=ledger_service.EVENT_PAYMENT_RECORDED,
            entity_type="fronted_payment",
            entity_id=payment.id,
            fronted_record_id=record.id,
            payload={"amount_cents": amount_cents, "payment_method": payment_method},
        )
        maybe_complete(record)

        return {
            "payment_status": record.payment_status,
            "payment_received_cents": record.payment_received_cents,
            "remaining_cents": record.remaining_cents,
            "outstanding_balance_cents": balance.outstanding_balance_cents,
            "record_status": record.status,
            "payment": payment.to_dict(),
        }

    return run_in_transaction(_op)


def get_record_payments(tenant_id: int, record_id: int) -> list[FrontedPayment]:
    get_record(tenant_id, record_id)
    return db.session.query(FrontedPayment).filter_by(
        tenant_id=tenant_id, fronted_record_id=record_id
    ).order_by(FrontedPayment.received_at.asc(), FrontedPayment.id.asc()).all()


def get_client_payments(tenant_id: int, client_id: int, limit: int = 20) -> list[FrontedPayment]:
    """Payment history for a client across all of its records, newest first."""
    require_client_in_tenant(client_id, tenant_id)
    limit = max(1, min(limit, 500))
    return db.session.query(FrontedPayment).filter_by(
        tenant_id=tenant_id, client_id=client_id
    ).order_by(FrontedPayment.received_at.desc(), FrontedPayment.id.desc()).limit(limit).all()


# =============================================================================
# CANCELLATION
# =============================================================================

def cancel_record(tenant_id: int, record_id: int, reason: str | None = None) -> FrontedRecord:
    """
    Reverse a dispatch that nothing has happened to yet.

    All fronted units go back to available stock and the expected revenue is
    taken off the client's balance.
    """
    reason = optional_str("reason", reason)

    def _op():
        record = get_record_for_update(tenant_id, record_id)
        require_active(record)
        if record.accounted_quantity > 0 or record.payment_received_cents > 0:
            raise InvalidState(
                f"Fronted record {record_id} already has sales, returns or payments; reconcile it instead"
            )

        stock_service.return_to_stock(tenant_id, record.product_id, record.quantity_fronted)
        balance_service.debit(tenant_id, record.client_id, record.expected_revenue_cents)

        record.status = STATUS_CANCELLED
        record.cancelled_at = utcnow()
        ledger_service.append_ledger_event(
            tenant_id=tenant_id,
            event_type=ledger_service.EVENT_CANCELLED,
            entity_type="fronted_record",
            entity_id=record.id,
            fronted_record_id=record.id,
            note=reason,
        )
        db.session.flush()
        return record

    return run_in_transaction(_op)


# =============================================================================
# QUERIES
# =============================================================================

def list_records(
    tenant_id: int,
    status: str | None = None,
    overdue: bool | None = None,
    client_id: int | None = None,
    product_id: int | None = None,
    limit: int = 100,
    now: datetime | None = None,
) -> list[FrontedRecord]:
    """List records for a tenant, newest dispatch first."""
    now = now or utcnow()
    q = db.session.query(FrontedRecord).filter(FrontedRecord.tenant_id == tenant_id)

    if status:
        status = status.upper()
        if status not in VALID_STATUSES:
            raise ValidationError(f"Invalid status: {status}. Must be one of {VALID_STATUSES}")
        q = q.filter(FrontedRecord.status == status)
    if client_id is not None:
        q = q.filter(FrontedRecord.client_id == client_id)
    if product_id is not None:
        q = q.filter(FrontedRecord.product_id == product_id)
    if overdue is True:
        q = q.filter(overdue_clause(now))
    elif overdue is False:
        q = q.filter(~overdue_clause(now))

    limit = max(1, min(limit, 500))
    return q.order_by(FrontedRecord.dispatched_at.desc(), FrontedRecord.id.desc()).limit(limit).all()


def overdue_clause(now: datetime):
    """SQL predicate mirroring is_overdue()."""
    return and_(
        FrontedRecord.payment_due_date < now,
        FrontedRecord.payment_status != PAYMENT_STATUS_PAID,
        FrontedRecord.status != STATUS_CANCELLED,
    )


def is_overdue(record: FrontedRecord, now: datetime | None = None) -> bool:
    """Past due and not fully paid. Cancelled records are never overdue."""
    now = now or utcnow()
    return (
        record.status != STATUS_CANCELLED
        and record.payment_status != PAYMENT_STATUS_PAID
        and now > record.payment_due_date
    )
