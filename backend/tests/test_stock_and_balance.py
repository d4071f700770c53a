# Overview: Pytest coverage for the product stock and client balance stores.

import pytest

from consignment.models import ProductStock
from consignment.services import stock_service, balance_service
from consignment.services.errors import InsufficientStock, InvariantViolation, CreditLimitExceeded, NotFound
from consignment.validation import ValidationError


class TestProductStock:
    """Movements between available and fronted."""

    def test_receive_creates_row(self, db_session, product_a, tenant_a):
        stock = stock_service.get_stock(tenant_a.id, product_a.id)
        assert stock.available_quantity == 500
        assert stock.fronted_quantity == 0

    def test_reserve_moves_available_to_fronted(self, db_session, product_a, tenant_a):
        stock = stock_service.reserve_for_dispatch(tenant_a.id, product_a.id, 120)
        db_session.commit()

        assert stock.available_quantity == 380
        assert stock.fronted_quantity == 120

    def test_reserve_more_than_available_rejected(self, db_session, product_a, tenant_a):
        with pytest.raises(InsufficientStock):
            stock_service.reserve_for_dispatch(tenant_a.id, product_a.id, 501)

    def test_reserve_without_stock_row_is_insufficient(self, db_session, tenant_a):
        from consignment.models import Product
        product = Product(tenant_id=tenant_a.id, sku="EMPTY", name="Never received")
        db_session.add(product)
        db_session.commit()

        with pytest.raises(InsufficientStock):
            stock_service.reserve_for_dispatch(tenant_a.id, product.id, 1)

    def test_return_and_write_off(self, db_session, product_a, tenant_a):
        stock_service.reserve_for_dispatch(tenant_a.id, product_a.id, 100)
        stock_service.return_to_stock(tenant_a.id, product_a.id, 80)
        stock = stock_service.write_off_damaged(tenant_a.id, product_a.id, 10)
        db_session.commit()

        assert stock.available_quantity == 480
        assert stock.fronted_quantity == 10

    def test_cannot_remove_more_than_fronted(self, db_session, product_a, tenant_a):
        stock_service.reserve_for_dispatch(tenant_a.id, product_a.id, 5)
        with pytest.raises(InvariantViolation):
            stock_service.return_to_stock(tenant_a.id, product_a.id, 6)
        with pytest.raises(InvariantViolation):
            stock_service.write_off_damaged(tenant_a.id, product_a.id, 6)
        with pytest.raises(InvariantViolation):
            stock_service.record_sold(tenant_a.id, product_a.id, 6)

    def test_zero_write_off_is_noop(self, db_session, product_a, tenant_a):
        before = stock_service.get_stock(tenant_a.id, product_a.id).fronted_quantity
        stock = stock_service.write_off_damaged(tenant_a.id, product_a.id, 0)
        assert stock.fronted_quantity == before

    def test_negative_quantity_rejected_before_arithmetic(self, db_session, product_a, tenant_a):
        with pytest.raises(ValidationError):
            stock_service.reserve_for_dispatch(tenant_a.id, product_a.id, -3)
        with pytest.raises(ValidationError):
            stock_service.return_to_stock(tenant_a.id, product_a.id, -1)

    def test_missing_stock_row_not_found(self, db_session, tenant_a):
        with pytest.raises(NotFound):
            stock_service.return_to_stock(tenant_a.id, 99999, 1)

    def test_undo_reconciliation_movement(self, db_session, product_a, tenant_a):
        stock_service.reserve_for_dispatch(tenant_a.id, product_a.id, 100)
        stock_service.return_to_stock(tenant_a.id, product_a.id, 80)
        stock_service.write_off_damaged(tenant_a.id, product_a.id, 10)

        stock = stock_service.undo_reconciliation_movement(tenant_a.id, product_a.id, 80, 10)
        db_session.commit()

        assert stock.available_quantity == 400
        assert stock.fronted_quantity == 100

    def test_version_increments_on_update(self, db_session, product_a, tenant_a):
        stock = stock_service.get_stock(tenant_a.id, product_a.id)
        version = stock.version_id
        stock_service.reserve_for_dispatch(tenant_a.id, product_a.id, 1)
        db_session.commit()
        assert db_session.get(ProductStock, stock.id).version_id == version + 1


class TestFrontedInvariantAudit:

    def test_verify_reports_drift(self, db_session, product_a, tenant_a):
        # Counter moved without a fronted record behind it
        stock_service.reserve_for_dispatch(tenant_a.id, product_a.id, 7)
        db_session.commit()

        check = stock_service.verify_fronted_invariant(tenant_a.id, product_a.id)
        assert check["ok"] is False
        assert check["drift"] == 7
        assert check["expected_fronted_quantity"] == 0

    def test_verify_ok_with_no_activity(self, db_session, product_a, tenant_a):
        check = stock_service.verify_fronted_invariant(tenant_a.id, product_a.id)
        assert check == {
            "product_id": product_a.id,
            "fronted_quantity": 0,
            "expected_fronted_quantity": 0,
            "drift": 0,
            "ok": True,
        }


class TestClientBalance:
    """Outstanding balance, credit limit, clamp at zero."""

    def test_credit_without_limit(self, db_session, reseller_a, tenant_a):
        balance = balance_service.credit(tenant_a.id, reseller_a.id, 200_000)
        db_session.commit()
        assert balance.outstanding_balance_cents == 200_000

    def test_credit_over_limit_rejected(self, db_session, limited_reseller, tenant_a):
        balance_service.credit(tenant_a.id, limited_reseller.id, 60_000)
        with pytest.raises(CreditLimitExceeded):
            balance_service.credit(tenant_a.id, limited_reseller.id, 40_001)

    def test_credit_up_to_limit_allowed(self, db_session, limited_reseller, tenant_a):
        balance = balance_service.credit(tenant_a.id, limited_reseller.id, 100_000)
        assert balance.outstanding_balance_cents == 100_000

    def test_debit_clamps_at_zero(self, db_session, reseller_a, tenant_a):
        balance_service.credit(tenant_a.id, reseller_a.id, 1_000)
        balance = balance_service.debit(tenant_a.id, reseller_a.id, 5_000)
        assert balance.outstanding_balance_cents == 0

    def test_reverse_debit_ignores_limit(self, db_session, limited_reseller, tenant_a):
        balance_service.credit(tenant_a.id, limited_reseller.id, 100_000)
        balance = balance_service.reverse_debit(tenant_a.id, limited_reseller.id, 10_000)
        assert balance.outstanding_balance_cents == 110_000

    def test_negative_amount_rejected(self, db_session, reseller_a, tenant_a):
        with pytest.raises(ValidationError):
            balance_service.credit(tenant_a.id, reseller_a.id, -1)
