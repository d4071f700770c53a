# Overview: Flask API routes for client balance, risk, receivables aging and payment history; read-only JSON views.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant
from ..services import balance_service, fronted_service, risk_service
from ..services.errors import LedgerError
from ..services.tenant_service import require_client_in_tenant
from ..validation import ValidationError, coerce_int


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.get("/<int:client_id>/balance")
@require_tenant
def get_balance_route(client_id: int):
    """Outstanding balance and credit limit; zeros if the client was never fronted."""
    try:
        require_client_in_tenant(client_id, g.tenant_id)
        balance = balance_service.get_balance(g.tenant_id, client_id)
        if balance is None:
            return jsonify({"balance": {
                "tenant_id": g.tenant_id,
                "client_id": client_id,
                "outstanding_balance_cents": 0,
                "credit_limit_cents": 0,
            }}), 200
        return jsonify({"balance": balance.to_dict()}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get client balance")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<int:client_id>/risk")
@require_tenant
def get_risk_route(client_id: int):
    """
    Client risk summary.

    Returns outstanding balance, credit utilisation, overdue exposure,
    reliability score (0-100) and risk level (LOW / MEDIUM / HIGH).
    """
    try:
        return jsonify({"risk": risk_service.client_risk_summary(g.tenant_id, client_id)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build client risk summary")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<int:client_id>/aging")
@require_tenant
def get_receivables_aging_route(client_id: int):
    """Unpaid amounts by days past due: CURRENT, DAYS_1_30, DAYS_31_60, DAYS_61_90, OVER_90."""
    try:
        return jsonify({"aging": risk_service.client_receivables_aging(g.tenant_id, client_id)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to build receivables aging")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<int:client_id>/payments")
@require_tenant
def list_client_payments_route(client_id: int):
    """
    Payment history across all of a client's records, newest first.

    Query params:
        limit: 1-500 (default 20)
    """
    try:
        raw_limit = request.args.get("limit")
        limit = coerce_int("limit", raw_limit) if raw_limit else 20
        payments = fronted_service.get_client_payments(g.tenant_id, client_id, limit=limit)
        return jsonify({
            "payments": [p.to_dict() for p in payments],
            "count": len(payments),
            "total_cents": sum(p.amount_cents for p in payments),
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list client payments")
        return jsonify({"error": "Internal server error"}), 500
