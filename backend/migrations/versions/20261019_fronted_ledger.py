"""Fronted inventory ledger schema

Revision ID: 20261019_fronted_ledger
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_fronted_ledger"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=nullable)


def upgrade():
    op.create_table(
        "tenants",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("code", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("tenants", schema=None) as batch_op:
        batch_op.create_index("ix_tenants_code", ["code"], unique=False)
        batch_op.create_index("ix_tenants_is_active", ["is_active"], unique=False)

    op.create_table(
        "products",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("sku", sa.String(64), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("price_cents", sa.BigInteger(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("products", schema=None) as batch_op:
        batch_op.create_index("ix_products_tenant_id", ["tenant_id"], unique=False)

    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("contact_name", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("clients", schema=None) as batch_op:
        batch_op.create_index("ix_clients_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_clients_tenant_active", ["tenant_id", "is_active"], unique=False)

    op.create_table(
        "product_stock",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("available_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("fronted_quantity", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _timestamp("updated_at"),
        sa.CheckConstraint("available_quantity >= 0", name="ck_product_stock_available_nonneg"),
        sa.CheckConstraint("fronted_quantity >= 0", name="ck_product_stock_fronted_nonneg"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "product_id", name="uq_product_stock_tenant_product"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("product_stock", schema=None) as batch_op:
        batch_op.create_index("ix_product_stock_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_product_stock_product_id", ["product_id"], unique=False)

    op.create_table(
        "client_balances",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("outstanding_balance_cents", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("credit_limit_cents", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _timestamp("updated_at"),
        sa.CheckConstraint("outstanding_balance_cents >= 0", name="ck_client_balances_nonneg"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "client_id", name="uq_client_balances_tenant_client"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("client_balances", schema=None) as batch_op:
        batch_op.create_index("ix_client_balances_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_client_balances_client_id", ["client_id"], unique=False)

    op.create_table(
        "fronted_records",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("quantity_fronted", sa.Integer(), nullable=False),
        sa.Column("quantity_sold", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_returned", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("quantity_damaged", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("price_per_unit_cents", sa.BigInteger(), nullable=False),
        sa.Column("expected_revenue_cents", sa.BigInteger(), nullable=False),
        sa.Column("payment_received_cents", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("payment_status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("status", sa.String(16), nullable=False, server_default="ACTIVE"),
        _timestamp("dispatched_at"),
        sa.Column("payment_due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False, server_default=sa.text("1")),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "quantity_sold + quantity_returned + quantity_damaged <= quantity_fronted",
            name="ck_fronted_accounted_le_fronted",
        ),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["product_id"], ["products.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("fronted_records", schema=None) as batch_op:
        batch_op.create_index("ix_fronted_records_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_fronted_records_product_id", ["product_id"], unique=False)
        batch_op.create_index("ix_fronted_records_client_id", ["client_id"], unique=False)
        batch_op.create_index("ix_fronted_records_payment_status", ["payment_status"], unique=False)
        batch_op.create_index("ix_fronted_records_status", ["status"], unique=False)
        batch_op.create_index("ix_fronted_records_payment_due_date", ["payment_due_date"], unique=False)
        batch_op.create_index("ix_fronted_tenant_status", ["tenant_id", "status"], unique=False)
        batch_op.create_index("ix_fronted_tenant_client", ["tenant_id", "client_id"], unique=False)
        batch_op.create_index("ix_fronted_tenant_product_status", ["tenant_id", "product_id", "status"], unique=False)

    op.create_table(
        "reconciliation_batches",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("fronted_record_id", sa.Integer(), nullable=False),
        sa.Column("good_count", sa.Integer(), nullable=False),
        sa.Column("damaged_count", sa.Integer(), nullable=False),
        sa.Column("returned_value_cents", sa.BigInteger(), nullable=False),
        sa.Column("consistency", sa.String(16), nullable=False, server_default="ATOMIC"),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["fronted_record_id"], ["fronted_records.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("reconciliation_batches", schema=None) as batch_op:
        batch_op.create_index("ix_reconciliation_batches_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_reconciliation_batches_fronted_record_id", ["fronted_record_id"], unique=False)
        batch_op.create_index("ix_recon_batches_record_created", ["fronted_record_id", "created_at"], unique=False)

    op.create_table(
        "return_scan_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("fronted_record_id", sa.Integer(), nullable=False),
        sa.Column("batch_id", sa.Integer(), nullable=False),
        sa.Column("barcode", sa.String(128), nullable=False),
        sa.Column("condition", sa.String(16), nullable=False),
        sa.Column("reason", sa.String(255), nullable=True),
        _timestamp("scanned_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["fronted_record_id"], ["fronted_records.id"]),
        sa.ForeignKeyConstraint(["batch_id"], ["reconciliation_batches.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("fronted_record_id", "barcode", name="uq_return_scans_record_barcode"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("return_scan_entries", schema=None) as batch_op:
        batch_op.create_index("ix_return_scan_entries_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_return_scan_entries_fronted_record_id", ["fronted_record_id"], unique=False)
        batch_op.create_index("ix_return_scan_entries_batch_id", ["batch_id"], unique=False)

    op.create_table(
        "fronted_payments",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("fronted_record_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("payment_method", sa.String(16), nullable=False, server_default="CASH"),
        sa.Column("reference", sa.String(128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("on_time", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        _timestamp("received_at"),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["fronted_record_id"], ["fronted_records.id"]),
        sa.ForeignKeyConstraint(["client_id"], ["clients.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("fronted_payments", schema=None) as batch_op:
        batch_op.create_index("ix_fronted_payments_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_fronted_payments_fronted_record_id", ["fronted_record_id"], unique=False)
        batch_op.create_index("ix_fronted_payments_client_id", ["client_id"], unique=False)
        batch_op.create_index("ix_fronted_payments_client_received", ["tenant_id", "client_id", "received_at"], unique=False)

    op.create_table(
        "ledger_locks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("fronted_record_id", sa.Integer(), nullable=False),
        sa.Column("owner_token", sa.String(64), nullable=False),
        sa.Column("acquired_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["fronted_record_id"], ["fronted_records.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "fronted_record_id", name="uq_ledger_locks_record"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ledger_locks", schema=None) as batch_op:
        batch_op.create_index("ix_ledger_locks_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_ledger_locks_expires_at", ["expires_at"], unique=False)

    op.create_table(
        "ledger_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("tenant_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("entity_type", sa.String(64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("fronted_record_id", sa.Integer(), nullable=True),
        _timestamp("occurred_at"),
        sa.Column("note", sa.String(255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["tenant_id"], ["tenants.id"]),
        sa.ForeignKeyConstraint(["fronted_record_id"], ["fronted_records.id"]),
        sa.PrimaryKeyConstraint("id"),
        sqlite_autoincrement=True,
    )
    with op.batch_alter_table("ledger_events", schema=None) as batch_op:
        batch_op.create_index("ix_ledger_events_tenant_id", ["tenant_id"], unique=False)
        batch_op.create_index("ix_ledger_events_event_type", ["event_type"], unique=False)
        batch_op.create_index("ix_ledger_events_fronted_record_id", ["fronted_record_id"], unique=False)
        batch_op.create_index("ix_ledger_events_occurred_at", ["occurred_at"], unique=False)
        batch_op.create_index("ix_ledger_events_tenant_occurred", ["tenant_id", "occurred_at"], unique=False)


def downgrade():
    op.drop_table("ledger_events")
    op.drop_table("ledger_locks")
    op.drop_table("fronted_payments")
    op.drop_table("return_scan_entries")
    op.drop_table("reconciliation_batches")
    op.drop_table("fronted_records")
    op.drop_table("client_balances")
    op.drop_table("product_stock")
    op.drop_table("clients")
    op.drop_table("products")
    op.drop_table("tenants")
