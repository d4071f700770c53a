"""
Pytest fixtures for consignment ledger tests.

Provides test database setup, tenant fixtures, and test client.
"""

from datetime import timedelta

import pytest
from consignment import create_app
from consignment.extensions import db
from consignment.models import Tenant, Product, Client
from consignment.services import stock_service, balance_service
from consignment.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'SQLALCHEMY_ENGINE_OPTIONS': {},
        'LEDGER_RETRY_BACKOFF_SECONDS': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Create Tenant A (first tenant)."""
    tenant = Tenant(name="Tenant A - Acme Wholesale", code="ACME", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Create Tenant B (second tenant)."""
    tenant = Tenant(name="Tenant B - Beta Supply", code="BETA", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def product_a(db_session, tenant_a):
    """Product in Tenant A with 500 units available."""
    product = Product(tenant_id=tenant_a.id, sku="TEE-BLK-M", name="Black tee M", price_cents=2000)
    db_session.add(product)
    db_session.flush()
    stock_service.receive_stock(tenant_a.id, product.id, 500)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def product_b(db_session, tenant_b):
    """Product in Tenant B with 100 units available."""
    product = Product(tenant_id=tenant_b.id, sku="CAP-RED", name="Red cap", price_cents=1500)
    db_session.add(product)
    db_session.flush()
    stock_service.receive_stock(tenant_b.id, product.id, 100)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def reseller_a(db_session, tenant_a):
    """Client in Tenant A with no credit limit."""
    reseller = Client(tenant_id=tenant_a.id, business_name="Corner Shop", contact_name="Sam")
    db_session.add(reseller)
    db_session.commit()
    return reseller


@pytest.fixture(scope='function')
def reseller_b(db_session, tenant_b):
    """Client in Tenant B."""
    reseller = Client(tenant_id=tenant_b.id, business_name="Market Stall")
    db_session.add(reseller)
    db_session.commit()
    return reseller


@pytest.fixture(scope='function')
def limited_reseller(db_session, tenant_a):
    """Client in Tenant A with a $1,000.00 credit limit."""
    reseller = Client(tenant_id=tenant_a.id, business_name="Careful Co")
    db_session.add(reseller)
    db_session.flush()
    balance_service.set_credit_limit(tenant_a.id, reseller.id, 100_000)
    db_session.commit()
    return reseller


def due_in(days: int):
    """Payment due date relative to now."""
    return utcnow() + timedelta(days=days)


def scan_batch(prefix: str, good: int = 0, damaged: int = 0) -> list[dict]:
    """Finished scan batch with unique barcodes."""
    entries = [{"barcode": f"{prefix}-G{i:04d}", "condition": "GOOD"} for i in range(good)]
    entries += [
        {"barcode": f"{prefix}-D{i:04d}", "condition": "DAMAGED", "reason": "Crushed packaging"}
        for i in range(damaged)
    ]
    return entries


def tenant_headers(tenant) -> dict:
    """Helper to create tenant context headers."""
    return {'X-Tenant-ID': str(tenant.id)}
