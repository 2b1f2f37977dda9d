# backend/unitledger/routes/inventory.py
"""
Stock ledger routes.

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- date_to filtering is inclusive: occurred_at <= date_to.
"""
from flask import Blueprint, current_app, request

from ..services import notification_service, stock_ledger_service
from ..validation import optional_int, optional_str, require_int, require_str, status_for


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/movements")
def record_movement_route():
    """
    Record a stock movement.

    Request body:
    {
        "product_id": 1,
        "kind": "ENTRY" | "EXIT" | "ADJUST" | "RETURN",
        "quantity": 5,
        "reference": "PO-1",     (optional)
        "reason": "restock",     (optional)
        "occurred_at": "..."     (optional)
    }

    ADJUST sets the stock to exactly `quantity`; the other kinds are deltas.
    """
    payload = request.get_json(silent=True) or {}
    try:
        movement, product = stock_ledger_service.record_movement(
            product_id=require_int(payload, "product_id"),
            kind=require_str(payload, "kind"),
            quantity=require_int(payload, "quantity"),
            reference=optional_str(payload, "reference"),
            reason=optional_str(payload, "reason"),
            occurred_at=payload.get("occurred_at"),
        )
        return {"movement": movement.to_dict(), "product": product.to_dict()}, 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to record stock movement")
        return {"error": "Internal server error"}, 500


@inventory_bp.get("/movements")
def list_movements_route():
    try:
        result = stock_ledger_service.list_movements(
            product_id=optional_int(request.args, "product_id"),
            kind=request.args.get("kind"),
            date_from=request.args.get("date_from"),
            date_to=request.args.get("date_to"),
            page=request.args.get("page", 1, type=int),
            limit=request.args.get("limit", 50, type=int),
        )
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    return {
        "items": [m.to_dict() for m in result["items"]],
        "pagination": result["pagination"],
    }, 200


@inventory_bp.get("/alerts")
def list_alerts_route():
    alerts = notification_service.list_open_alerts()
    return {"items": [a.to_dict() for a in alerts]}, 200


@inventory_bp.post("/alerts/<int:alert_id>/resolve")
def resolve_alert_route(alert_id: int):
    try:
        alert = notification_service.resolve_alert(alert_id)
        return {"alert": alert.to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
