# Overview: Flask API routes for consignees; parses input and returns JSON responses.

from flask import Blueprint, current_app, request

from ..services import balance_service, consignment_service
from ..validation import optional_bool, optional_str, require_str, status_for


consignees_bp = Blueprint("consignees", __name__, url_prefix="/api/consignees")


@consignees_bp.post("")
def create_consignee_route():
    payload = request.get_json(silent=True) or {}
    try:
        consignee = consignment_service.create_consignee(
            name=require_str(payload, "name"),
            phone=optional_str(payload, "phone"),
            email=optional_str(payload, "email"),
            address=optional_str(payload, "address"),
            tax_id=optional_str(payload, "tax_id"),
            notes=optional_str(payload, "notes"),
        )
        return {"consignee": consignee.to_dict()}, 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to create consignee")
        return {"error": "Internal server error"}, 500


@consignees_bp.get("")
def list_consignees_route():
    result = consignment_service.list_consignees(
        search=request.args.get("search"),
        active=optional_bool(request.args, "active"),
        page=request.args.get("page", 1, type=int),
        limit=request.args.get("limit", 50, type=int),
    )
    return {
        "items": [c.to_dict() for c in result["items"]],
        "pagination": result["pagination"],
    }, 200


@consignees_bp.get("/<int:consignee_id>")
def get_consignee_route(consignee_id: int):
    try:
        return {"consignee": consignment_service.get_consignee(consignee_id).to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)


@consignees_bp.patch("/<int:consignee_id>")
def update_consignee_route(consignee_id: int):
    """Contact fields only; balances are rejected."""
    payload = request.get_json(silent=True) or {}
    try:
        consignee = consignment_service.update_consignee(consignee_id, payload)
        return {"consignee": consignee.to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to update consignee")
        return {"error": "Internal server error"}, 500


@consignees_bp.post("/<int:consignee_id>/deactivate")
def deactivate_consignee_route(consignee_id: int):
    try:
        consignee = consignment_service.deactivate_consignee(consignee_id)
        return {"consignee": consignee.to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)


@consignees_bp.get("/<int:consignee_id>/statement")
def statement_route(consignee_id: int):
    try:
        return balance_service.consignee_statement(consignee_id), 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)


@consignees_bp.get("/<int:consignee_id>/reconcile")
def reconcile_route(consignee_id: int):
    try:
        violations = balance_service.reconcile(consignee_id)
        return {"consistent": not violations, "violations": violations}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
