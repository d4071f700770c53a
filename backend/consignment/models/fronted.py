from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class FrontedRecord(db.Model):
    """
    Consignment ledger entry: stock handed to a client on credit.

    LIFECYCLE:
    1. ACTIVE: Created on dispatch; quantities move through sales and
       reconciliation batches, payments accumulate
    2. COMPLETED: Every unit accounted for (sold/returned/damaged) and PAID
    3. CANCELLED: Dispatch reversed before anything happened to it

    INVARIANTS:
    - quantity_sold + quantity_returned + quantity_damaged <= quantity_fronted
    - expected_revenue_cents == quantity_fronted * price_per_unit_cents
    - payment_status == PAID implies payment_received_cents >= net_due_cents

    OVERDUE is never stored: it is derived at read time from payment_due_date
    and payment_status (see fronted_service.is_overdue).

    Records are never deleted.
    """
    __tablename__ = "fronted_records"
    __table_args__ = (
        db.Index("ix_fronted_tenant_status", "tenant_id", "status"),
        db.Index("ix_fronted_tenant_client", "tenant_id", "client_id"),
        db.Index("ix_fronted_tenant_product_status", "tenant_id", "product_id", "status"),
        db.CheckConstraint(
            "quantity_sold + quantity_returned + quantity_damaged <= quantity_fronted",
            name="ck_fronted_accounted_le_fronted",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    quantity_fronted = db.Column(db.Integer, nullable=False)
    quantity_sold = db.Column(db.Integer, nullable=False, default=0)
    quantity_returned = db.Column(db.Integer, nullable=False, default=0)
    quantity_damaged = db.Column(db.Integer, nullable=False, default=0)

    # Authoritative storage in cents
    price_per_unit_cents = db.Column(db.BigInteger, nullable=False)
    expected_revenue_cents = db.Column(db.BigInteger, nullable=False)

    payment_received_cents = db.Column(db.BigInteger, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)  # PENDING, PARTIAL, PAID

    status = db.Column(db.String(16), nullable=False, default="ACTIVE", index=True)  # ACTIVE, COMPLETED, CANCELLED

    dispatched_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    payment_due_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    notes = db.Column(db.Text, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("fronted_records", lazy=True))
    client = db.relationship("Client", backref=db.backref("fronted_records", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def accounted_quantity(self) -> int:
        return self.quantity_sold + self.quantity_returned + self.quantity_damaged

    @property
    def outstanding_quantity(self) -> int:
        """Units still physically with the client."""
        return self.quantity_fronted - self.accounted_quantity

    @property
    def returned_value_cents(self) -> int:
        return self.quantity_returned * self.price_per_unit_cents

    @property
    def net_due_cents(self) -> int:
        """Expected revenue after good returns are credited back."""
        return max(0, self.expected_revenue_cents - self.returned_value_cents)

    @property
    def remaining_cents(self) -> int:
        return max(0, self.net_due_cents - self.payment_received_cents)

    def recompute_expected_revenue(self) -> None:
        self.expected_revenue_cents = self.quantity_fronted * self.price_per_unit_cents

    def __repr__(self) -> str:
        return (
            f"<FrontedRecord id={self.id} fronted={self.quantity_fronted} sold={self.quantity_sold} "
            f"returned={self.quantity_returned} damaged={self.quantity_damaged} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "client_id": self.client_id,
            "quantity_fronted": self.quantity_fronted,
            "quantity_sold": self.quantity_sold,
            "quantity_returned": self.quantity_returned,
            "quantity_damaged": self.quantity_damaged,
            "outstanding_quantity": self.outstanding_quantity,
            "price_per_unit_cents": self.price_per_unit_cents,
            "expected_revenue_cents": self.expected_revenue_cents,
            "net_due_cents": self.net_due_cents,
            "payment_received_cents": self.payment_received_cents,
            "remaining_cents": self.remaining_cents,
            "payment_status": self.payment_status,
            "status": self.status,
            "dispatched_at": to_utc_z(self.dispatched_at),
            "payment_due_date": to_utc_z(self.payment_due_date),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class ReconciliationBatch(db.Model):
    """
    One accepted reconciliation submission (a finished scan session).

    consistency records which path applied it: ATOMIC (single transaction)
    or DEGRADED (locked compensating fallback).
    """
    __tablename__ = "reconciliation_batches"
    __table_args__ = (
        db.Index("ix_recon_batches_record_created", "fronted_record_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    fronted_record_id = db.Column(db.Integer, db.ForeignKey("fronted_records.id"), nullable=False, index=True)

    good_count = db.Column(db.Integer, nullable=False)
    damaged_count = db.Column(db.Integer, nullable=False)
    returned_value_cents = db.Column(db.BigInteger, nullable=False)

    consistency = db.Column(db.String(16), nullable=False, default="ATOMIC")
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    fronted_record = db.relationship("FrontedRecord", backref=db.backref("batches", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "fronted_record_id": self.fronted_record_id,
            "good_count": self.good_count,
            "damaged_count": self.damaged_count,
            "returned_value_cents": self.returned_value_cents,
            "consistency": self.consistency,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class ReturnScanEntry(db.Model):
    """
    Append-only log of individually scanned returned units.

    IDEMPOTENCY: (fronted_record_id, barcode) is unique. A barcode that has
    been reconciled against a record can never be applied to it again, so
    resubmitting a batch fails instead of double-counting.
    """
    __tablename__ = "return_scan_entries"
    __table_args__ = (
        db.UniqueConstraint("fronted_record_id", "barcode", name="uq_return_scans_record_barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    fronted_record_id = db.Column(db.Integer, db.ForeignKey("fronted_records.id"), nullable=False, index=True)
    batch_id = db.Column(db.Integer, db.ForeignKey("reconciliation_batches.id"), nullable=False, index=True)

    barcode = db.Column(db.String(128), nullable=False)
    condition = db.Column(db.String(16), nullable=False)  # GOOD, DAMAGED
    reason = db.Column(db.String(255), nullable=True)

    scanned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    batch = db.relationship("ReconciliationBatch", backref=db.backref("entries", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fronted_record_id": self.fronted_record_id,
            "batch_id": self.batch_id,
            "barcode": self.barcode,
            "condition": self.condition,
            "reason": self.reason,
            "scanned_at": to_utc_z(self.scanned_at),
        }


class FrontedPayment(db.Model):
    """
    Append-only payment log for fronted records.

    on_time is fixed when the payment is recorded (received_at <= due date)
    and feeds the client reliability score.
    """
    __tablename__ = "fronted_payments"
    __table_args__ = (
        db.Index("ix_fronted_payments_client_received", "tenant_id", "client_id", "received_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    fronted_record_id = db.Column(db.Integer, db.ForeignKey("fronted_records.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    amount_cents = db.Column(db.BigInteger, nullable=False)
    payment_method = db.Column(db.String(16), nullable=False, default="CASH")
    reference = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    on_time = db.Column(db.Boolean, nullable=False, default=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    fronted_record = db.relationship("FrontedRecord", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "fronted_record_id": self.fronted_record_id,
            "client_id": self.client_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "reference": self.reference,
            "notes": self.notes,
            "on_time": self.on_time,
            "received_at": to_utc_z(self.received_at),
        }


class LedgerLock(db.Model):
    """
    Explicit per-record lock used only by the degraded reconciliation path.

    The row's existence is the lock; the unique constraint makes acquisition
    a single INSERT that works across service instances. expires_at bounds
    how long a crashed holder can block the record.
    """
    __tablename__ = "ledger_locks"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "fronted_record_id", name="uq_ledger_locks_record"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    fronted_record_id = db.Column(db.Integer, db.ForeignKey("fronted_records.id"), nullable=False)

    owner_token = db.Column(db.String(64), nullable=False)
    acquired_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
