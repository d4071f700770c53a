# Overview: Flask API routes for product stock counters and the fronted-quantity audit.

from flask import Blueprint, jsonify, g, current_app

from ..decorators import require_tenant
from ..services import stock_service
from ..services.errors import LedgerError, NotFound
from ..services.tenant_service import require_product_in_tenant


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("/<int:product_id>")
@require_tenant
def get_stock_route(product_id: int):
    try:
        require_product_in_tenant(product_id, g.tenant_id)
        stock = stock_service.get_stock(g.tenant_id, product_id)
        if stock is None:
            raise NotFound(f"No stock row for product {product_id}")
        return jsonify({"stock": stock.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/<int:product_id>/verify")
@require_tenant
def verify_stock_route(product_id: int):
    """
    Compare fronted_quantity with the sum of units out on ACTIVE records.

    Read-only. ok=false means the counters have drifted from the ledger.
    """
    try:
        require_product_in_tenant(product_id, g.tenant_id)
        return jsonify(stock_service.verify_fronted_invariant(g.tenant_id, product_id)), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to verify stock")
        return jsonify({"error": "Internal server error"}), 500
