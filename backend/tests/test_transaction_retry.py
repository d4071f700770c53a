# Overview: Pytest coverage for bounded retry of conflicting ledger transactions.

"""
Transaction Retry Tests

A version conflict (StaleDataError) rolls the unit of work back and runs it
again, up to LEDGER_RETRY_ATTEMPTS times with exponential backoff. When every
attempt conflicts the caller gets a retryable TransactionConflict and no
store has changed.
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from conftest import due_in, scan_batch, tenant_headers
from consignment.models import FrontedRecord, LedgerEvent, ReturnScanEntry
from consignment.services import balance_service, concurrency, fronted_service, reconciliation_service, stock_service
from consignment.services.errors import TransactionConflict


def _conflicting(real, failures):
    """Wrap a store call so its first `failures` invocations hit a version conflict."""
    calls = {"count": 0}

    def wrapper(*args, **kwargs):
        calls["count"] += 1
        if calls["count"] <= failures:
            raise StaleDataError("version mismatch")
        return real(*args, **kwargs)

    wrapper.calls = calls
    return wrapper


def _dispatch(tenant, product, reseller, qty=10):
    return fronted_service.dispatch(
        tenant_id=tenant.id,
        client_id=reseller.id,
        product_id=product.id,
        quantity=qty,
        price_per_unit_cents=1000,
        payment_due_date=due_in(14),
    )


@pytest.fixture
def sleeps(monkeypatch):
    recorded = []
    monkeypatch.setattr(concurrency.time, "sleep", recorded.append)
    return recorded


class TestRetrySucceeds:

    @pytest.mark.parametrize("failures", [1, 2])
    def test_dispatch_survives_transient_conflicts(
        self, db_session, monkeypatch, sleeps, tenant_a, product_a, reseller_a, failures
    ):
        flaky = _conflicting(stock_service.reserve_for_dispatch, failures)
        monkeypatch.setattr(stock_service, "reserve_for_dispatch", flaky)

        record = _dispatch(tenant_a, product_a, reseller_a)

        assert flaky.calls["count"] == failures + 1
        assert len(sleeps) == failures
        stock = stock_service.get_stock(tenant_a.id, product_a.id)
        assert (stock.available_quantity, stock.fronted_quantity) == (490, 10)
        assert balance_service.get_balance(tenant_a.id, reseller_a.id).outstanding_balance_cents == 10_000
        assert db_session.query(FrontedRecord).filter_by(id=record.id).count() == 1

    def test_backoff_doubles_each_attempt(
        self, app, db_session, monkeypatch, sleeps, tenant_a, product_a, reseller_a
    ):
        monkeypatch.setitem(app.config, "LEDGER_RETRY_BACKOFF_SECONDS", 0.1)
        flaky = _conflicting(stock_service.reserve_for_dispatch, 2)
        monkeypatch.setattr(stock_service, "reserve_for_dispatch", flaky)

        _dispatch(tenant_a, product_a, reseller_a)

        assert sleeps == pytest.approx([0.1, 0.2])

    def test_reconcile_survives_transient_conflict(
        self, db_session, monkeypatch, sleeps, tenant_a, product_a, reseller_a
    ):
        record = _dispatch(tenant_a, product_a, reseller_a)
        flaky = _conflicting(balance_service.debit, 1)
        monkeypatch.setattr(balance_service, "debit", flaky)

        result = reconciliation_service.reconcile(tenant_a.id, record.id, scan_batch("RT", good=4))

        assert result.good_returns == 4
        assert result.new_outstanding_balance_cents == 6_000
        assert db_session.query(ReturnScanEntry).filter_by(fronted_record_id=record.id).count() == 4


class TestRetryExhausted:

    def test_dispatch_gives_up_with_conflict(
        self, app, db_session, monkeypatch, sleeps, tenant_a, product_a, reseller_a
    ):
        flaky = _conflicting(stock_service.reserve_for_dispatch, 10_000)
        monkeypatch.setattr(stock_service, "reserve_for_dispatch", flaky)

        with pytest.raises(TransactionConflict) as exc_info:
            _dispatch(tenant_a, product_a, reseller_a)

        assert exc_info.value.retryable is True
        assert exc_info.value.to_dict()["retryable"] is True
        assert flaky.calls["count"] == app.config["LEDGER_RETRY_ATTEMPTS"]
        assert len(sleeps) == app.config["LEDGER_RETRY_ATTEMPTS"] - 1

        stock = stock_service.get_stock(tenant_a.id, product_a.id)
        assert (stock.available_quantity, stock.fronted_quantity) == (500, 0)
        assert balance_service.get_balance(tenant_a.id, reseller_a.id) is None
        assert db_session.query(FrontedRecord).count() == 0
        assert db_session.query(LedgerEvent).count() == 0

    def test_reconcile_gives_up_without_writing(
        self, db_session, monkeypatch, sleeps, tenant_a, product_a, reseller_a
    ):
        record = _dispatch(tenant_a, product_a, reseller_a)
        monkeypatch.setattr(balance_service, "debit", _conflicting(balance_service.debit, 10_000))

        with pytest.raises(TransactionConflict):
            reconciliation_service.reconcile(tenant_a.id, record.id, scan_batch("RX", good=4))

        db_session.expire_all()
        assert fronted_service.get_record(tenant_a.id, record.id).quantity_returned == 0
        assert stock_service.get_stock(tenant_a.id, product_a.id).fronted_quantity == 10
        assert balance_service.get_balance(tenant_a.id, reseller_a.id).outstanding_balance_cents == 10_000
        assert db_session.query(ReturnScanEntry).count() == 0

    def test_route_reports_retryable_409(
        self, client, db_session, monkeypatch, sleeps, tenant_a, product_a, reseller_a
    ):
        monkeypatch.setattr(
            stock_service, "reserve_for_dispatch", _conflicting(stock_service.reserve_for_dispatch, 10_000)
        )

        response = client.post(
            "/api/fronted/",
            json={
                "client_id": reseller_a.id,
                "product_id": product_a.id,
                "quantity": 5,
                "price_per_unit_cents": 1000,
                "payment_due_date": "2030-01-01T00:00:00Z",
            },
            headers=tenant_headers(tenant_a),
        )

        assert response.status_code == 409
        body = response.get_json()
        assert body["code"] == "TRANSACTION_CONFLICT"
        assert body["retryable"] is True
        assert db_session.query(FrontedRecord).count() == 0
        assert stock_service.get_stock(tenant_a.id, product_a.id).available_quantity == 500
