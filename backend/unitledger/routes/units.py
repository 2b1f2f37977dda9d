# Overview: Flask API routes for serialized units; parses input and returns JSON responses.

# backend/unitledger/routes/units.py
"""
Serialized Unit API Routes

DESIGN:
- Serials in URLs are normalized (uppercase, trimmed) by the service
- Sales go through POST /<serial>/sell; PATCH cannot mark a unit SOLD
- Warranty lookups never fail for a known serial, expired or not
"""

from flask import Blueprint, current_app, request

from ..services import unit_service
from ..validation import (
    ValidationError,
    optional_cents,
    optional_int,
    optional_str,
    require_cents,
    require_int,
    require_str,
    status_for,
)


units_bp = Blueprint("units", __name__, url_prefix="/api/units")


def _registration_options(payload: dict) -> dict:
    return {
        "cost_cents": optional_cents(payload, "cost_cents"),
        "origin": optional_str(payload, "origin"),
        "lot": optional_str(payload, "lot"),
        "warranty_months": optional_int(payload, "warranty_months", minimum=0),
        "entry_date": payload.get("entry_date"),
        "notes": optional_str(payload, "notes"),
    }


# =============================================================================
# REGISTRATION
# =============================================================================

@units_bp.post("")
def register_unit_route():
    """
    Register one serialized unit.

    Request body:
    {
        "product_id": 1,
        "serial": "sn-001",
        "cost_cents": 10000,
        "origin": "PURCHASE",        (optional)
        "lot": "L-1",                (optional)
        "warranty_months": 12,       (optional, default from config)
        "entry_date": "2024-01-31",  (optional)
        "notes": "..."               (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        unit = unit_service.register_unit(
            product_id=require_int(payload, "product_id"),
            serial=require_str(payload, "serial"),
            **_registration_options(payload),
        )
        return {"unit": unit.to_dict()}, 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to register unit")
        return {"error": "Internal server error"}, 500


@units_bp.post("/batch")
def register_units_route():
    """Register many serials for one product; nothing is created if any serial conflicts."""
    payload = request.get_json(silent=True) or {}
    try:
        serials = payload.get("serials")
        if not isinstance(serials, list) or not serials:
            raise ValidationError("serials must be a non-empty list")
        units = unit_service.register_units(
            product_id=require_int(payload, "product_id"),
            serials=serials,
            **_registration_options(payload),
        )
        return {"units": [u.to_dict() for u in units], "count": len(units)}, 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to register unit batch")
        return {"error": "Internal server error"}, 500


# =============================================================================
# SALE / PATCH
# =============================================================================

@units_bp.post("/<serial>/sell")
def sell_unit_route(serial: str):
    """
    Sell an AVAILABLE unit.

    Request body:
    {
        "customer_id": 3,
        "sale_price_cents": 15000,
        "payment_method": "CASH",
        "sale_date": "...",   (optional)
        "notes": "..."        (optional, appended)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        unit = unit_service.sell_unit(
            serial=serial,
            customer_id=require_int(payload, "customer_id"),
            sale_price_cents=require_cents(payload, "sale_price_cents"),
            payment_method=require_str(payload, "payment_method"),
            sale_date=payload.get("sale_date"),
            notes=optional_str(payload, "notes"),
        )
        return {"unit": unit.to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to sell unit")
        return {"error": "Internal server error"}, 500


@units_bp.patch("/<serial>")
def update_unit_route(serial: str):
    payload = request.get_json(silent=True) or {}
    try:
        fields = dict(payload)
        if "cost_cents" in fields:
            fields["cost_cents"] = optional_cents(payload, "cost_cents")
        if "warranty_months" in fields:
            fields["warranty_months"] = optional_int(payload, "warranty_months", minimum=0)
        unit = unit_service.update_unit(serial, fields)
        return {"unit": unit.to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to update unit")
        return {"error": "Internal server error"}, 500


# =============================================================================
# QUERIES
# =============================================================================

@units_bp.get("")
def list_units_route():
    try:
        result = unit_service.list_units(
            product_id=optional_int(request.args, "product_id"),
            state=request.args.get("state"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 50, type=int),
        )
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    return {
        "items": [u.to_dict() for u in result["items"]],
        "pagination": result["pagination"],
    }, 200


@units_bp.get("/stats")
def unit_statistics_route():
    try:
        return unit_service.unit_statistics(optional_int(request.args, "product_id")), 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)


@units_bp.get("/<serial>")
def get_unit_route(serial: str):
    try:
        return {"unit": unit_service.get_unit(serial).to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)


@units_bp.get("/<serial>/warranty")
def warranty_route(serial: str):
    try:
        return unit_service.lookup_warranty(serial).to_dict(), 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
