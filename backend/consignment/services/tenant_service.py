"""
Multi-Tenant Service: tenant validation and scoping helpers.

SECURITY INVARIANTS:
1. Every request handled by a ledger route has g.tenant_id set
2. Ids from client input are resolved within g.tenant_id only
3. A row belonging to another tenant is reported as "not found" so its
   existence is never revealed
"""

from ..extensions import db
from ..models import Tenant, Product, Client
from .errors import NotFound


class TenantAccessError(Exception):
    """Raised when the tenant context is missing or unusable."""
    pass


def resolve_active_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.get(Tenant, tenant_id)
    if not tenant or not tenant.is_active:
        raise TenantAccessError("Unknown or inactive tenant")
    return tenant


def require_product_in_tenant(product_id: int, tenant_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, tenant_id=tenant_id).first()
    if not product:
        raise NotFound(f"Product {product_id} not found")
    return product


def require_client_in_tenant(client_id: int, tenant_id: int) -> Client:
    client = db.session.query(Client).filter_by(id=client_id, tenant_id=tenant_id).first()
    if not client:
        raise NotFound(f"Client {client_id} not found")
    return client
