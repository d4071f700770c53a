# Overview: Client Balance Store; outstanding receivable with credit-limit checks and clamp-at-zero debits.

from __future__ import annotations

from ..extensions import db
from ..models import ClientBalance
from ..validation import require_cents
from .concurrency import lock_for_update
from .errors import CreditLimitExceeded


def get_balance(tenant_id: int, client_id: int) -> ClientBalance | None:
    return db.session.query(ClientBalance).filter_by(tenant_id=tenant_id, client_id=client_id).first()


def ensure_balance_row(tenant_id: int, client_id: int) -> ClientBalance:
    """Get or create the (locked) balance row for a client."""
    balance = lock_for_update(
        db.session.query(ClientBalance).filter_by(tenant_id=tenant_id, client_id=client_id)
    ).first()
    if balance:
        return balance

    balance = ClientBalance(
        tenant_id=tenant_id,
        client_id=client_id,
        outstanding_balance_cents=0,
        credit_limit_cents=0,
    )
    db.session.add(balance)
    db.session.flush()
    return balance


def credit(tenant_id: int, client_id: int, amount_cents: int) -> ClientBalance:
    """
    Increase what the client owes (dispatch).

    Raises CreditLimitExceeded when a limit is set (> 0) and the new balance
    would exceed it.
    """
    amount_cents = require_cents("amount_cents", amount_cents)
    balance = ensure_balance_row(tenant_id, client_id)

    new_balance = balance.outstanding_balance_cents + amount_cents
    if balance.credit_limit_cents > 0 and new_balance > balance.credit_limit_cents:
        raise CreditLimitExceeded(
            f"Client {client_id} credit limit {balance.credit_limit_cents} would be exceeded "
            f"(outstanding {balance.outstanding_balance_cents} + {amount_cents})"
        )

    balance.outstanding_balance_cents = new_balance
    db.session.flush()
    return balance


def debit(tenant_id: int, client_id: int, amount_cents: int) -> ClientBalance:
    """Reduce what the client owes (returns, payments, cancellations); clamps at 0."""
    amount_cents = require_cents("amount_cents", amount_cents)
    balance = ensure_balance_row(tenant_id, client_id)
    balance.outstanding_balance_cents = max(0, balance.outstanding_balance_cents - amount_cents)
    db.session.flush()
    return balance


def set_credit_limit(tenant_id: int, client_id: int, credit_limit_cents: int) -> ClientBalance:
    credit_limit_cents = require_cents("credit_limit_cents", credit_limit_cents)
    balance = ensure_balance_row(tenant_id, client_id)
    balance.credit_limit_cents = credit_limit_cents
    db.session.flush()
    return balance


def reverse_debit(tenant_id: int, client_id: int, amount_cents: int) -> ClientBalance:
    """
    Compensating write: add back exactly what an earlier debit removed.

    Bypasses the credit-limit check; the amount was already owed.
    """
    amount_cents = require_cents("amount_cents", amount_cents)
    balance = ensure_balance_row(tenant_id, client_id)
    balance.outstanding_balance_cents += amount_cents
    db.session.flush()
    return balance
