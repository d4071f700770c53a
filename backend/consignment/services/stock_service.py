# Overview: Product Stock Store; moves units between available and fronted under row locks.

"""
Product Stock Store

All mutations take the ProductStock row with SELECT ... FOR UPDATE and rely on
its version_id column for compare-and-swap. Functions here only flush: the
calling operation owns the transaction and commits (or rolls back) once.

Movements:
- reserve_for_dispatch: available -> fronted
- return_to_stock:      fronted -> available   (good returns, cancellations)
- write_off_damaged:    fronted -> gone         (damaged returns)
- record_sold:          fronted -> gone         (reseller sold the units)
- receive_stock:        nothing -> available    (maintenance / receiving)
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import ProductStock, FrontedRecord
from ..validation import require_quantity
from .concurrency import lock_for_update
from .errors import InsufficientStock, InvariantViolation, NotFound


def get_stock(tenant_id: int, product_id: int) -> ProductStock | None:
    return db.session.query(ProductStock).filter_by(tenant_id=tenant_id, product_id=product_id).first()


def ensure_stock_row(tenant_id: int, product_id: int) -> ProductStock:
    """Get or create the (locked) stock row for a product."""
    stock = lock_for_update(
        db.session.query(ProductStock).filter_by(tenant_id=tenant_id, product_id=product_id)
    ).first()
    if stock:
        return stock

    stock = ProductStock(tenant_id=tenant_id, product_id=product_id, available_quantity=0, fronted_quantity=0)
    db.session.add(stock)
    db.session.flush()
    return stock


def _locked_stock(tenant_id: int, product_id: int) -> ProductStock:
    stock = lock_for_update(
        db.session.query(ProductStock).filter_by(tenant_id=tenant_id, product_id=product_id)
    ).first()
    if not stock:
        raise NotFound(f"No stock row for product {product_id}")
    return stock


def reserve_for_dispatch(tenant_id: int, product_id: int, qty: int) -> ProductStock:
    """Move qty from available to fronted; InsufficientStock if available < qty."""
    qty = require_quantity("quantity", qty)
    stock = lock_for_update(
        db.session.query(ProductStock).filter_by(tenant_id=tenant_id, product_id=product_id)
    ).first()
    available = stock.available_quantity if stock else 0
    if available < qty:
        raise InsufficientStock(
            f"Cannot front {qty} units of product {product_id}: only {available} available"
        )

    stock.available_quantity -= qty
    stock.fronted_quantity += qty
    db.session.flush()
    return stock


def _remove_from_fronted(stock: ProductStock, qty: int, action: str) -> None:
    if stock.fronted_quantity < qty:
        raise InvariantViolation(
            f"Cannot {action} {qty} units of product {stock.product_id}: "
            f"only {stock.fronted_quantity} are fronted"
        )
    stock.fronted_quantity -= qty


def return_to_stock(tenant_id: int, product_id: int, qty: int) -> ProductStock:
    """Move qty from fronted back to available (good returns only)."""
    qty = require_quantity("quantity", qty, allow_zero=True)
    stock = _locked_stock(tenant_id, product_id)
    if qty == 0:
        return stock
    _remove_from_fronted(stock, qty, "return")
    stock.available_quantity += qty
    db.session.flush()
    return stock


def write_off_damaged(tenant_id: int, product_id: int, qty: int) -> ProductStock:
    """Remove qty from fronted permanently; damaged units never re-enter available."""
    qty = require_quantity("quantity", qty, allow_zero=True)
    stock = _locked_stock(tenant_id, product_id)
    if qty == 0:
        return stock
    _remove_from_fronted(stock, qty, "write off")
    db.session.flush()
    return stock


def record_sold(tenant_id: int, product_id: int, qty: int) -> ProductStock:
    """Remove units the client reports as sold from fronted."""
    qty = require_quantity("quantity", qty, allow_zero=True)
    stock = _locked_stock(tenant_id, product_id)
    if qty == 0:
        return stock
    _remove_from_fronted(stock, qty, "mark sold")
    db.session.flush()
    return stock


def undo_reconciliation_movement(tenant_id: int, product_id: int, good_qty: int, damaged_qty: int) -> ProductStock:
    """
    Compensating write for a reconciliation applied outside a transaction.

    Puts good units back from available into fronted and restores written-off
    damaged units to fronted.
    """
    good_qty = require_quantity("good_qty", good_qty, allow_zero=True)
    damaged_qty = require_quantity("damaged_qty", damaged_qty, allow_zero=True)
    stock = _locked_stock(tenant_id, product_id)
    if stock.available_quantity < good_qty:
        raise InvariantViolation(
            f"Cannot undo return of {good_qty} units of product {product_id}: "
            f"only {stock.available_quantity} available"
        )
    stock.available_quantity -= good_qty
    stock.fronted_quantity += good_qty + damaged_qty
    db.session.flush()
    return stock


def receive_stock(tenant_id: int, product_id: int, qty: int) -> ProductStock:
    """Add received units to available stock."""
    qty = require_quantity("quantity", qty)
    stock = ensure_stock_row(tenant_id, product_id)
    stock.available_quantity += qty
    db.session.flush()
    return stock


# =============================================================================
# INVARIANT AUDIT
# =============================================================================

def expected_fronted_quantity(tenant_id: int, product_id: int) -> int:
    """Sum of units still out across ACTIVE records for the product."""
    total = db.session.query(
        func.coalesce(
            func.sum(
                FrontedRecord.quantity_fronted
                - FrontedRecord.quantity_sold
                - FrontedRecord.quantity_returned
                - FrontedRecord.quantity_damaged
            ),
            0,
        )
    ).filter(
        FrontedRecord.tenant_id == tenant_id,
        FrontedRecord.product_id == product_id,
        FrontedRecord.status == "ACTIVE",
    ).scalar()
    return int(total or 0)


def verify_fronted_invariant(tenant_id: int, product_id: int) -> dict:
    """
    Compare ProductStock.fronted_quantity with the ledger.

    Read-only: drift is reported, never auto-corrected.
    """
    stock = get_stock(tenant_id, product_id)
    recorded = stock.fronted_quantity if stock else 0
    expected = expected_fronted_quantity(tenant_id, product_id)
    return {
        "product_id": product_id,
        "fronted_quantity": recorded,
        "expected_fronted_quantity": expected,
        "drift": recorded - expected,
        "ok": recorded == expected,
    }
