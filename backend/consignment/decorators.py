# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import tenant_service
from .services.tenant_service import TenantAccessError


TENANT_HEADER = "X-Tenant-ID"


def require_tenant(f):
    """
    Establish tenant context from the X-Tenant-ID header.

    MULTI-TENANT: Sets g.tenant_id. Authentication itself happens upstream;
    this service only trusts the tenant id the auth collaborator forwards.

    SECURITY: Returns 401 if:
    - No X-Tenant-ID header
    - Header is not a positive integer
    - Tenant does not exist or is deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(TENANT_HEADER, "").strip()

        if not raw:
            return jsonify({"error": "Tenant context required", "code": "TENANT_REQUIRED"}), 401

        if not raw.isdigit() or int(raw) <= 0:
            return jsonify({"error": "Invalid tenant id", "code": "TENANT_INVALID"}), 401

        try:
            tenant = tenant_service.resolve_active_tenant(int(raw))
        except TenantAccessError as e:
            return jsonify({"error": str(e), "code": "TENANT_INVALID"}), 401

        g.tenant_id = tenant.id
        return f(*args, **kwargs)

    return decorated_function
