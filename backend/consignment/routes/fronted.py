# Overview: Flask API routes for fronted (consignment) records; parses input and returns JSON responses.

# backend/consignment/routes/fronted.py
"""
Fronted Inventory API Routes

WHY: Let staff front stock to resellers, scan back returns, and record what
the resellers sell and pay, all against one consistent ledger.

DESIGN:
- Dispatch creates an ACTIVE record and moves stock/balance in one transaction
- Reconcile applies a finished scan batch (good + damaged units)
- Sales and payments are narrow updates of a single record
- Overdue / days overdue are computed on read

SECURITY:
- Every route requires X-Tenant-ID (require_tenant)
- Records of other tenants are reported as 404
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_tenant
from ..services import fronted_service, ledger_service, reconciliation_service, risk_service, scan_log_service
from ..services.errors import LedgerError
from ..validation import ValidationError, coerce_int, parse_bool_arg, require_json_object


fronted_bp = Blueprint("fronted", __name__, url_prefix="/api/fronted")


def _validation_error(e: ValidationError):
    return jsonify({"error": str(e), "code": "VALIDATION_ERROR"}), 400


def _optional_int_arg(name: str) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return coerce_int(name, raw)


# =============================================================================
# DISPATCH
# =============================================================================

@fronted_bp.post("/")
@require_tenant
def dispatch_route():
    """
    Front stock to a client.

    Request body:
    {
        "client_id": 1,
        "product_id": 2,
        "quantity": 100,
        "price_per_unit_cents": 2000,
        "payment_due_date": "2026-02-01T00:00:00Z",
        "notes": "Weekend market"  (optional)
    }

    Returns:
        201: {fronted_record_id, record}
        400: Invalid input
        404: Client or product not found
        409: Insufficient stock / credit limit exceeded
    """
    try:
        data = require_json_object(request.get_json(silent=True))

        missing = [
            key for key in ("client_id", "product_id", "quantity", "price_per_unit_cents", "payment_due_date")
            if data.get(key) is None
        ]
        if missing:
            return jsonify({"error": f"Missing required fields: {', '.join(missing)}", "code": "VALIDATION_ERROR"}), 400

        record = fronted_service.dispatch(
            tenant_id=g.tenant_id,
            client_id=coerce_int("client_id", data["client_id"]),
            product_id=coerce_int("product_id", data["product_id"]),
            quantity=data["quantity"],
            price_per_unit_cents=data["price_per_unit_cents"],
            payment_due_date=data["payment_due_date"],
            notes=data.get("notes"),
        )

        return jsonify({
            "fronted_record_id": record.id,
            "record": risk_service.record_with_risk(record),
        }), 201

    except ValidationError as e:
        return _validation_error(e)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to dispatch fronted stock")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# QUERIES
# =============================================================================

@fronted_bp.get("/")
@require_tenant
def list_records_route():
    """
    List fronted records.

    Query params:
        status: ACTIVE | COMPLETED | CANCELLED
        overdue: true | false
        client_id, product_id: filters
        limit: 1-500 (default 100)
    """
    try:
        limit = _optional_int_arg("limit")
        records = fronted_service.list_records(
            tenant_id=g.tenant_id,
            status=request.args.get("status"),
            overdue=parse_bool_arg("overdue", request.args.get("overdue")),
            client_id=_optional_int_arg("client_id"),
            product_id=_optional_int_arg("product_id"),
            limit=limit if limit is not None else 100,
        )
        return jsonify({
            "records": [risk_service.record_with_risk(r) for r in records],
            "count": len(records),
        }), 200

    except ValidationError as e:
        return _validation_error(e)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list fronted records")
        return jsonify({"error": "Internal server error"}), 500


@fronted_bp.get("/aging")
@require_tenant
def aging_route():
    """Portfolio aging: units and value out per bucket, health score."""
    try:
        return jsonify(risk_service.aging_summary(g.tenant_id)), 200
    except Exception:
        current_app.logger.exception("Failed to build aging summary")
        return jsonify({"error": "Internal server error"}), 500


@fronted_bp.get("/<int:record_id>")
@require_tenant
def get_record_route(record_id: int):
    """Get one record with computed is_overdue / days_overdue."""
    try:
        record = fronted_service.get_record(g.tenant_id, record_id)
        data = risk_service.record_with_risk(record)
        data["batches"] = [b.to_dict() for b in reconciliation_service.list_batches(g.tenant_id, record_id)]
        return jsonify({"record": data}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to get fronted record")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RECONCILIATION
# =============================================================================

@fronted_bp.post("/<int:record_id>/reconcile")
@require_tenant
def reconcile_route(record_id: int):
    """
    Apply a finished scan batch.

    Request body:
    {
        "entries": [
            {"barcode": "A-0001", "condition": "GOOD"},
            {"barcode": "A-0002", "condition": "DAMAGED", "reason": "Crushed box"}
        ],
        "notes": "End of week return"  (optional)
    }

    Returns:
        200: {good_returns, damaged_returns, returned_value_cents,
              new_outstanding_balance_cents, degraded, record}
        400: Invalid entries
        404: Record not found
        409: Over-return, duplicate scan, not ACTIVE, conflict
        503: Atomic reconciliation unavailable
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        if "entries" not in data:
            return jsonify({"error": "entries required", "code": "VALIDATION_ERROR"}), 400

        result = reconciliation_service.reconcile(
            tenant_id=g.tenant_id,
            fronted_record_id=record_id,
            entries=data["entries"],
            notes=data.get("notes"),
        )
        return jsonify(result.to_dict()), 200

    except ValidationError as e:
        return _validation_error(e)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to reconcile fronted record")
        return jsonify({"error": "Internal server error"}), 500


@fronted_bp.get("/<int:record_id>/scans")
@require_tenant
def list_scans_route(record_id: int):
    try:
        fronted_service.get_record(g.tenant_id, record_id)
        entries = scan_log_service.list_entries(g.tenant_id, record_id)
        return jsonify({"scans": [e.to_dict() for e in entries], "count": len(entries)}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list scans")
        return jsonify({"error": "Internal server error"}), 500


@fronted_bp.get("/<int:record_id>/events")
@require_tenant
def list_events_route(record_id: int):
    """Audit trail for a record, newest first. Query param: limit (1-500)."""
    try:
        fronted_service.get_record(g.tenant_id, record_id)
        limit = _optional_int_arg("limit")
        limit = max(1, min(limit if limit is not None else 100, 500))
        events = ledger_service.list_ledger_events(g.tenant_id, fronted_record_id=record_id, limit=limit)
        return jsonify({"events": [e.to_dict() for e in events], "count": len(events)}), 200

    except ValidationError as e:
        return _validation_error(e)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list ledger events")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# SALES AND PAYMENTS
# =============================================================================

@fronted_bp.post("/<int:record_id>/sales")
@require_tenant
def report_sale_route(record_id: int):
    """
    Record units the client reports as sold.

    Request body: {"quantity": 5}
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        if data.get("quantity") is None:
            return jsonify({"error": "quantity required", "code": "VALIDATION_ERROR"}), 400

        record = fronted_service.report_sale(g.tenant_id, record_id, data["quantity"])
        return jsonify({"record": risk_service.record_with_risk(record)}), 200

    except ValidationError as e:
        return _validation_error(e)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to report sale")
        return jsonify({"error": "Internal server error"}), 500


@fronted_bp.post("/<int:record_id>/payments")
@require_tenant
def record_payment_route(record_id: int):
    """
    Record a client payment.

    Request body:
    {
        "amount_cents": 50000,
        "payment_method": "CASH",  (optional: CASH, CARD, CHECK, TRANSFER, OTHER)
        "reference": "CHK-1042",  (optional)
        "notes": "Partial"  (optional)
    }

    Returns:
        201: {payment_status, payment_received_cents, remaining_cents, payment}
        400: Invalid amount or amount exceeds remaining due
        409: Record not ACTIVE or nothing due
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        if data.get("amount_cents") is None:
            return jsonify({"error": "amount_cents required", "code": "VALIDATION_ERROR"}), 400

        result = fronted_service.record_payment(
            tenant_id=g.tenant_id,
            record_id=record_id,
            amount_cents=data["amount_cents"],
            payment_method=data.get("payment_method") or "CASH",
            reference=data.get("reference"),
            notes=data.get("notes"),
        )
        return jsonify(result), 201

    except ValidationError as e:
        return _validation_error(e)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


@fronted_bp.get("/<int:record_id>/payments")
@require_tenant
def list_payments_route(record_id: int):
    try:
        payments = fronted_service.get_record_payments(g.tenant_id, record_id)
        return jsonify({
            "payments": [p.to_dict() for p in payments],
            "total_cents": sum(p.amount_cents for p in payments),
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# CANCELLATION
# =============================================================================

@fronted_bp.post("/<int:record_id>/cancel")
@require_tenant
def cancel_route(record_id: int):
    """
    Cancel a dispatch nothing has happened to yet.

    Request body (optional): {"reason": "Client no-show"}
    """
    try:
        data = request.get_json(silent=True) or {}
        data = require_json_object(data)

        record = fronted_service.cancel_record(g.tenant_id, record_id, reason=data.get("reason"))
        return jsonify({"record": risk_service.record_with_risk(record)}), 200

    except ValidationError as e:
        return _validation_error(e)
    except LedgerError as e:
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception("Failed to cancel fronted record")
        return jsonify({"error": "Internal server error"}), 500
