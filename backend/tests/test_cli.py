# Overview: Pytest coverage for the Flask CLI command groups.

from datetime import timedelta

import pytest

from conftest import due_in
from consignment.models import Tenant, Product, Client, ClientBalance, LedgerLock
from consignment.services import fronted_service, stock_service
from consignment.time_utils import utcnow


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestBootstrapCommands:

    def test_create_and_list_tenants(self, runner, db_session):
        result = runner.invoke(args=["tenants", "create", "--name", "Gamma Goods", "--code", "GAMMA"])
        assert result.exit_code == 0
        assert "PASS Created tenant" in result.output
        assert db_session.query(Tenant).filter_by(code="GAMMA").count() == 1

        listing = runner.invoke(args=["tenants", "list"])
        assert "Gamma Goods" in listing.output

    def test_duplicate_tenant_code(self, runner, db_session, tenant_a):
        result = runner.invoke(args=["tenants", "create", "--name", "Other", "--code", tenant_a.code])
        assert "FAIL" in result.output
        assert db_session.query(Tenant).count() == 1

    def test_create_product_and_receive_stock(self, runner, db_session, tenant_a):
        result = runner.invoke(args=[
            "products", "create", "--tenant-id", str(tenant_a.id),
            "--sku", "MUG-1", "--name", "Mug", "--price-cents", "900",
        ])
        assert "PASS" in result.output
        product = db_session.query(Product).filter_by(tenant_id=tenant_a.id, sku="MUG-1").one()

        result = runner.invoke(args=[
            "stock", "receive", "--tenant-id", str(tenant_a.id),
            "--product-id", str(product.id), "--quantity", "40",
        ])
        assert "available=40, fronted=0" in result.output

    def test_receive_rejects_bad_quantity(self, runner, db_session, tenant_a, product_a):
        result = runner.invoke(args=[
            "stock", "receive", "--tenant-id", str(tenant_a.id),
            "--product-id", str(product_a.id), "--quantity", "0",
        ])
        assert "FAIL" in result.output
        assert stock_service.get_stock(tenant_a.id, product_a.id).available_quantity == 500

    def test_receive_into_other_tenant_product(self, runner, db_session, tenant_a, product_b):
        result = runner.invoke(args=[
            "stock", "receive", "--tenant-id", str(tenant_a.id),
            "--product-id", str(product_b.id), "--quantity", "5",
        ])
        assert "FAIL" in result.output

    def test_create_client_with_limit(self, runner, db_session, tenant_a):
        result = runner.invoke(args=[
            "clients", "create", "--tenant-id", str(tenant_a.id),
            "--business-name", "Night Market", "--credit-limit-cents", "250000",
        ])
        assert "PASS" in result.output
        reseller = db_session.query(Client).filter_by(business_name="Night Market").one()
        balance = db_session.query(ClientBalance).filter_by(client_id=reseller.id).one()
        assert balance.credit_limit_cents == 250_000
        assert balance.outstanding_balance_cents == 0


class TestLedgerCommands:

    def test_verify_clean(self, runner, db_session, tenant_a, product_a, reseller_a):
        fronted_service.dispatch(
            tenant_id=tenant_a.id, client_id=reseller_a.id, product_id=product_a.id,
            quantity=12, price_per_unit_cents=500, payment_due_date=due_in(7),
        )
        result = runner.invoke(args=["ledger", "verify", "--tenant-id", str(tenant_a.id)])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_verify_reports_drift(self, runner, db_session, tenant_a, product_a):
        stock = stock_service.get_stock(tenant_a.id, product_a.id)
        stock.fronted_quantity += 5
        db_session.commit()

        result = runner.invoke(args=["ledger", "verify", "--tenant-id", str(tenant_a.id)])
        assert result.exit_code == 1
        assert "DRIFT" in result.output

    def test_release_stale_locks(self, runner, db_session, tenant_a, product_a, reseller_a):
        record = fronted_service.dispatch(
            tenant_id=tenant_a.id, client_id=reseller_a.id, product_id=product_a.id,
            quantity=1, price_per_unit_cents=500, payment_due_date=due_in(7),
        )
        now = utcnow()
        db_session.add(LedgerLock(
            tenant_id=tenant_a.id, fronted_record_id=record.id, owner_token="gone",
            acquired_at=now - timedelta(minutes=5), expires_at=now - timedelta(minutes=4),
        ))
        db_session.commit()

        result = runner.invoke(args=["ledger", "release-stale-locks"])
        assert "Released 1" in result.output
        assert db_session.query(LedgerLock).count() == 0
