# Overview: Flask API routes for consignments and settlements; parses input and returns JSON responses.

# backend/unitledger/routes/consignments.py
"""
Consignment API Routes

DESIGN:
- Create allocates AVAILABLE units; sales/returns act on line ids
- Payments may target one consignment or only the consignee aggregate
- Dashboard and receivables are read-only views
"""

from flask import Blueprint, current_app, request

from ..services import balance_service, consignment_service, settlement_service
from ..validation import (
    ValidationError,
    optional_int,
    optional_int_list,
    optional_str,
    require_cents,
    require_int,
    require_int_list,
    require_str,
    status_for,
)


consignments_bp = Blueprint("consignments", __name__, url_prefix="/api/consignments")


def _parse_lines(payload: dict) -> list[dict]:
    lines = payload.get("lines")
    if not isinstance(lines, list) or not lines:
        raise ValidationError("lines must be a non-empty list")
    parsed = []
    for line in lines:
        if not isinstance(line, dict):
            raise ValidationError("each line must be an object")
        parsed.append({
            "product_id": require_int(line, "product_id"),
            "unit_id": require_int(line, "unit_id"),
            "price_cents": require_cents(line, "price_cents"),
        })
    return parsed


# =============================================================================
# CONSIGNMENTS
# =============================================================================

@consignments_bp.post("")
def create_consignment_route():
    """
    Create a consignment.

    Request body:
    {
        "consignee_id": 1,
        "lines": [{"product_id": 1, "unit_id": 10, "price_cents": 5000}],
        "delivery_date": "...",   (optional)
        "due_date": "...",        (optional)
        "notes": "..."            (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        consignment = consignment_service.create_consignment(
            consignee_id=require_int(payload, "consignee_id"),
            lines=_parse_lines(payload),
            delivery_date=payload.get("delivery_date"),
            due_date=payload.get("due_date"),
            notes=optional_str(payload, "notes"),
        )
        return {"consignment": consignment.to_dict()}, 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to create consignment")
        return {"error": "Internal server error"}, 500


@consignments_bp.get("")
def list_consignments_route():
    try:
        result = consignment_service.list_consignments(
            consignee_id=optional_int(request.args, "consignee_id"),
            status=request.args.get("status"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 50, type=int),
        )
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    return {
        "items": [c.to_dict(include_lines=False) for c in result["items"]],
        "pagination": result["pagination"],
    }, 200


@consignments_bp.get("/<int:consignment_id>")
def get_consignment_route(consignment_id: int):
    try:
        return {"consignment": consignment_service.get_consignment(consignment_id).to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)


@consignments_bp.post("/<int:consignment_id>/sales")
def report_sale_route(consignment_id: int):
    """Request body: {"line_ids": [1, 2], "sale_date": "..."}"""
    payload = request.get_json(silent=True) or {}
    try:
        consignment = consignment_service.report_sale(
            consignment_id=consignment_id,
            line_ids=require_int_list(payload, "line_ids"),
            sale_date=payload.get("sale_date"),
        )
        return {"consignment": consignment.to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to report consignment sale")
        return {"error": "Internal server error"}, 500


@consignments_bp.post("/<int:consignment_id>/returns")
def report_return_route(consignment_id: int):
    """Request body: {"line_ids": [1], "defective_line_ids": [], "return_date": "..."}"""
    payload = request.get_json(silent=True) or {}
    try:
        consignment = consignment_service.report_return(
            consignment_id=consignment_id,
            line_ids=require_int_list(payload, "line_ids"),
            return_date=payload.get("return_date"),
            defective_line_ids=optional_int_list(payload, "defective_line_ids"),
        )
        return {"consignment": consignment.to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to report consignment return")
        return {"error": "Internal server error"}, 500


@consignments_bp.post("/<int:consignment_id>/recompute")
def recompute_route(consignment_id: int):
    try:
        consignment = consignment_service.recompute_status(consignment_id)
        return {"consignment": consignment.to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)


# =============================================================================
# PAYMENTS
# =============================================================================

@consignments_bp.post("/payments")
def register_payment_route():
    """
    Register a consignee payment.

    Request body:
    {
        "consignee_id": 1,
        "amount_cents": 5000,
        "method": "ZELLE",
        "consignment_id": 4,      (optional)
        "currency": "USD",        (optional)
        "currency_rate": "36.5",  (optional)
        "reference": "...",       (optional)
        "notes": "...",           (optional)
        "paid_at": "..."          (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        payment = settlement_service.register_payment(
            consignee_id=require_int(payload, "consignee_id"),
            amount_cents=require_cents(payload, "amount_cents"),
            method=require_str(payload, "method"),
            consignment_id=optional_int(payload, "consignment_id"),
            currency=optional_str(payload, "currency"),
            currency_rate=payload.get("currency_rate"),
            reference=optional_str(payload, "reference"),
            notes=optional_str(payload, "notes"),
            paid_at=payload.get("paid_at"),
        )
        return {"payment": payment.to_dict()}, 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to register payment")
        return {"error": "Internal server error"}, 500


@consignments_bp.get("/payments")
def list_payments_route():
    try:
        result = settlement_service.list_payments(
            consignee_id=optional_int(request.args, "consignee_id"),
            consignment_id=optional_int(request.args, "consignment_id"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 50, type=int),
        )
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    return {
        "items": [p.to_dict() for p in result["items"]],
        "pagination": result["pagination"],
    }, 200


@consignments_bp.get("/payments/<int:payment_id>")
def get_payment_route(payment_id: int):
    try:
        return {"payment": settlement_service.get_payment(payment_id).to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)


# =============================================================================
# BALANCE VIEWS
# =============================================================================

@consignments_bp.get("/dashboard")
def dashboard_route():
    return balance_service.dashboard(), 200


@consignments_bp.get("/receivables")
def receivables_route():
    return {"items": balance_service.receivables()}, 200
