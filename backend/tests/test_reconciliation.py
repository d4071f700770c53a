# Overview: Pytest coverage for the reconciliation engine's atomic path.

"""
Reconciliation Engine Tests

A batch either lands everywhere (record, stock, balance, scan log) or
nowhere. Covered:
- Scenario B: 80 good + 10 damaged on 100 fronted @ $20.00
- Scenario C: over-return rejected with no state change
- Resubmitting a batch is a DuplicateScan
- A failure injected mid-write leaves every store untouched
- Completion once fully accounted and paid
"""

import pytest

from conftest import due_in, scan_batch
from consignment.extensions import db
from consignment.models import ReconciliationBatch, ReturnScanEntry, LedgerEvent
from consignment.services import fronted_service, reconciliation_service, stock_service, balance_service
from consignment.services.errors import DuplicateScan, InvalidState, NotFound, OverReturn
from consignment.validation import ValidationError


@pytest.fixture
def fronted_100(db_session, tenant_a, product_a, reseller_a):
    """Scenario A: 100 units @ $20.00 fronted, balance $2,000.00."""
    return fronted_service.dispatch(
        tenant_id=tenant_a.id,
        client_id=reseller_a.id,
        product_id=product_a.id,
        quantity=100,
        price_per_unit_cents=2000,
        payment_due_date=due_in(14),
    )


def _snapshot(tenant, product, reseller, record_id):
    record = fronted_service.get_record(tenant.id, record_id)
    stock = stock_service.get_stock(tenant.id, product.id)
    balance = balance_service.get_balance(tenant.id, reseller.id)
    return {
        "record": (record.quantity_sold, record.quantity_returned, record.quantity_damaged, record.status),
        "stock": (stock.available_quantity, stock.fronted_quantity),
        "balance": balance.outstanding_balance_cents,
        "scans": db.session.query(ReturnScanEntry).filter_by(fronted_record_id=record_id).count(),
        "batches": db.session.query(ReconciliationBatch).filter_by(fronted_record_id=record_id).count(),
    }


class TestScenarios:

    def test_scenario_b_good_and_damaged(self, db_session, tenant_a, product_a, reseller_a, fronted_100):
        result = reconciliation_service.reconcile(
            tenant_a.id, fronted_100.id, scan_batch("B", good=80, damaged=10)
        )

        assert result.good_returns == 80
        assert result.damaged_returns == 10
        assert result.returned_value_cents == 160_000
        assert result.new_outstanding_balance_cents == 40_000
        assert result.degraded is False
        assert result.record["status"] == "ACTIVE"
        assert result.record["quantity_returned"] == 80
        assert result.record["quantity_damaged"] == 10
        assert result.record["outstanding_quantity"] == 10

        stock = stock_service.get_stock(tenant_a.id, product_a.id)
        assert stock.available_quantity == 480
        assert stock.fronted_quantity == 10
        assert stock_service.verify_fronted_invariant(tenant_a.id, product_a.id)["ok"] is True

        batch = db_session.get(ReconciliationBatch, result.batch_id)
        assert batch.consistency == "ATOMIC"
        assert db.session.query(ReturnScanEntry).filter_by(batch_id=batch.id).count() == 90

    def test_scenario_c_over_return_changes_nothing(self, db_session, tenant_a, product_a, reseller_a, fronted_100):
        reconciliation_service.reconcile(tenant_a.id, fronted_100.id, scan_batch("B", good=80, damaged=10))
        before = _snapshot(tenant_a, product_a, reseller_a, fronted_100.id)

        with pytest.raises(OverReturn):
            reconciliation_service.reconcile(tenant_a.id, fronted_100.id, scan_batch("C", good=15))

        assert _snapshot(tenant_a, product_a, reseller_a, fronted_100.id) == before

    def test_sold_units_count_toward_over_return(self, db_session, tenant_a, fronted_100):
        fronted_service.report_sale(tenant_a.id, fronted_100.id, 95)
        with pytest.raises(OverReturn):
            reconciliation_service.reconcile(tenant_a.id, fronted_100.id, scan_batch("X", good=6))

    def test_damaged_units_are_not_credited(self, db_session, tenant_a, reseller_a, fronted_100):
        result = reconciliation_service.reconcile(tenant_a.id, fronted_100.id, scan_batch("D", damaged=10))
        assert result.returned_value_cents == 0
        assert balance_service.get_balance(tenant_a.id, reseller_a.id).outstanding_balance_cents == 200_000


class TestIdempotency:

    def test_resubmitted_batch_is_duplicate(self, db_session, tenant_a, product_a, reseller_a, fronted_100):
        batch = scan_batch("R", good=5)
        reconciliation_service.reconcile(tenant_a.id, fronted_100.id, batch)
        before = _snapshot(tenant_a, product_a, reseller_a, fronted_100.id)

        with pytest.raises(DuplicateScan) as exc_info:
            reconciliation_service.reconcile(tenant_a.id, fronted_100.id, batch)

        assert sorted(exc_info.value.barcodes) == sorted(e["barcode"] for e in batch)
        assert _snapshot(tenant_a, product_a, reseller_a, fronted_100.id) == before

    def test_barcode_repeated_within_batch(self, db_session, tenant_a, fronted_100):
        batch = scan_batch("W", good=3) + [{"barcode": "W-G0001", "condition": "GOOD"}]
        with pytest.raises(DuplicateScan) as exc_info:
            reconciliation_service.reconcile(tenant_a.id, fronted_100.id, batch)
        assert exc_info.value.barcodes == ["W-G0001"]

    def test_partial_overlap_rejects_whole_batch(self, db_session, tenant_a, product_a, reseller_a, fronted_100):
        reconciliation_service.reconcile(tenant_a.id, fronted_100.id, scan_batch("P", good=2))
        before = _snapshot(tenant_a, product_a, reseller_a, fronted_100.id)

        overlap = [{"barcode": "P-G0001", "condition": "GOOD"}, {"barcode": "NEW-1", "condition": "GOOD"}]
        with pytest.raises(DuplicateScan):
            reconciliation_service.reconcile(tenant_a.id, fronted_100.id, overlap)

        assert _snapshot(tenant_a, product_a, reseller_a, fronted_100.id) == before


class TestValidation:

    @pytest.mark.parametrize("entries", [
        [],
        "not-a-list",
        [{"barcode": "", "condition": "GOOD"}],
        [{"barcode": "A1", "condition": "LOST"}],
        [{"barcode": "A1", "condition": "DAMAGED"}],
        [42],
    ])
    def test_malformed_batches_rejected(self, db_session, tenant_a, fronted_100, entries):
        with pytest.raises(ValidationError):
            reconciliation_service.reconcile(tenant_a.id, fronted_100.id, entries)

    def test_condition_is_case_insensitive(self, db_session, tenant_a, fronted_100):
        result = reconciliation_service.reconcile(
            tenant_a.id, fronted_100.id, [{"barcode": "lc-1", "condition": "good"}]
        )
        assert result.good_returns == 1

    def test_unknown_record(self, db_session, tenant_a):
        with pytest.raises(NotFound):
            reconciliation_service.reconcile(tenant_a.id, 99999, scan_batch("N", good=1))


class TestAtomicity:
    """A failure after the first write must leave every store unchanged."""

    def test_failure_between_stock_writes_rolls_back(
        self, db_session, monkeypatch, tenant_a, product_a, reseller_a, fronted_100
    ):
        before = _snapshot(tenant_a, product_a, reseller_a, fronted_100.id)

        def boom(*args, **kwargs):
            raise RuntimeError("storage went away")

        monkeypatch.setattr(stock_service, "write_off_damaged", boom)

        with pytest.raises(RuntimeError):
            reconciliation_service.reconcile(
                tenant_a.id, fronted_100.id, scan_batch("F", good=80, damaged=10)
            )

        assert _snapshot(tenant_a, product_a, reseller_a, fronted_100.id) == before

    def test_failure_after_balance_debit_rolls_back(
        self, db_session, monkeypatch, tenant_a, product_a, reseller_a, fronted_100
    ):
        before = _snapshot(tenant_a, product_a, reseller_a, fronted_100.id)

        def boom(*args, **kwargs):
            raise RuntimeError("scan log unavailable")

        monkeypatch.setattr(reconciliation_service.scan_log_service, "append_entries", boom)

        with pytest.raises(RuntimeError):
            reconciliation_service.reconcile(tenant_a.id, fronted_100.id, scan_batch("G", good=30))

        assert _snapshot(tenant_a, product_a, reseller_a, fronted_100.id) == before
        assert db.session.query(LedgerEvent).filter_by(event_type="FRONTED_RECONCILED").count() == 0


class TestCompletion:

    def test_full_return_completes_record(self, db_session, tenant_a, product_a, reseller_a):
        record = fronted_service.dispatch(
            tenant_id=tenant_a.id, client_id=reseller_a.id, product_id=product_a.id,
            quantity=5, price_per_unit_cents=1000, payment_due_date=due_in(7),
        )
        result = reconciliation_service.reconcile(tenant_a.id, record.id, scan_batch("FULL", good=5))

        assert result.record["status"] == "COMPLETED"
        assert result.record["payment_status"] == "PAID"
        assert result.new_outstanding_balance_cents == 0

    def test_sold_paid_and_returned_completes(self, db_session, tenant_a, product_a, reseller_a):
        record = fronted_service.dispatch(
            tenant_id=tenant_a.id, client_id=reseller_a.id, product_id=product_a.id,
            quantity=10, price_per_unit_cents=1000, payment_due_date=due_in(7),
        )
        fronted_service.report_sale(tenant_a.id, record.id, 4)
        fronted_service.record_payment(tenant_a.id, record.id, 4_000)

        result = reconciliation_service.reconcile(tenant_a.id, record.id, scan_batch("MIX", good=6))

        assert result.record["status"] == "COMPLETED"
        assert result.record["net_due_cents"] == 4_000
        assert result.new_outstanding_balance_cents == 0
        assert stock_service.verify_fronted_invariant(tenant_a.id, product_a.id)["ok"] is True

    def test_completed_record_rejects_further_batches(self, db_session, tenant_a, product_a, reseller_a):
        record = fronted_service.dispatch(
            tenant_id=tenant_a.id, client_id=reseller_a.id, product_id=product_a.id,
            quantity=1, price_per_unit_cents=1000, payment_due_date=due_in(7),
        )
        reconciliation_service.reconcile(tenant_a.id, record.id, scan_batch("ONE", good=1))

        with pytest.raises(InvalidState):
            reconciliation_service.reconcile(tenant_a.id, record.id, scan_batch("TWO", good=1))

    def test_reconcile_writes_ledger_events(self, db_session, tenant_a, fronted_100):
        reconciliation_service.reconcile(tenant_a.id, fronted_100.id, scan_batch("EV", good=1))
        types = [e.event_type for e in db.session.query(LedgerEvent).filter_by(fronted_record_id=fronted_100.id).all()]
        assert "FRONTED_DISPATCHED" in types
        assert "FRONTED_RECONCILED" in types
