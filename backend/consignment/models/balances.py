from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class ProductStock(db.Model):
    """
    Per tenant+product stock counters.

    INVARIANTS:
    - available_quantity >= 0 and fronted_quantity >= 0
    - fronted_quantity == sum(fronted - sold - returned - damaged) over ACTIVE
      fronted records for the product

    CONCURRENCY: This is the hot row shared by every fronted record of the
    product. Writers lock it (SELECT ... FOR UPDATE) and version_id provides
    compare-and-swap on backends that ignore row locks.
    """
    __tablename__ = "product_stock"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "product_id", name="uq_product_stock_tenant_product"),
        db.CheckConstraint("available_quantity >= 0", name="ck_product_stock_available_nonneg"),
        db.CheckConstraint("fronted_quantity >= 0", name="ck_product_stock_fronted_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    available_quantity = db.Column(db.Integer, nullable=False, default=0)
    fronted_quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("stock", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<ProductStock product_id={self.product_id} available={self.available_quantity} "
            f"fronted={self.fronted_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "available_quantity": self.available_quantity,
            "fronted_quantity": self.fronted_quantity,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }


class ClientBalance(db.Model):
    """
    Outstanding receivable for one client.

    - outstanding_balance_cents is clamped at 0 (never negative)
    - credit_limit_cents == 0 means "no limit"
    """
    __tablename__ = "client_balances"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "client_id", name="uq_client_balances_tenant_client"),
        db.CheckConstraint("outstanding_balance_cents >= 0", name="ck_client_balances_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)

    outstanding_balance_cents = db.Column(db.BigInteger, nullable=False, default=0)
    credit_limit_cents = db.Column(db.BigInteger, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    client = db.relationship("Client", backref=db.backref("balance", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "outstanding_balance_cents": self.outstanding_balance_cents,
            "credit_limit_cents": self.credit_limit_cents,
            "version_id": self.version_id,
            "updated_at": to_utc_z(self.updated_at),
        }
