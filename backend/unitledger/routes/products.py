# Overview: Flask API routes for products; parses input and returns JSON responses.

from flask import Blueprint, current_app, request

from ..services import products_service
from ..validation import optional_cents, optional_int, optional_str, require_str, status_for


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.post("")
def create_product_route():
    """
    Create a product.

    Request body:
    {
        "code": "RTR-100",
        "name": "Router 100",
        "min_stock": 2,
        "warning_stock": 5,
        "base_cost_cents": 4500,   (optional)
        "initial_stock": 0         (optional)
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        product = products_service.create_product(
            code=require_str(payload, "code"),
            name=require_str(payload, "name"),
            min_stock=optional_int(payload, "min_stock", minimum=0) or 0,
            warning_stock=optional_int(payload, "warning_stock", minimum=0) or 0,
            base_cost_cents=optional_cents(payload, "base_cost_cents"),
            description=optional_str(payload, "description"),
            initial_stock=optional_int(payload, "initial_stock", minimum=0) or 0,
        )
        return {"product": product.to_dict()}, 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return {"error": "Internal server error"}, 500


@products_bp.get("")
def list_products_route():
    status = request.args.get("status")
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    products = products_service.list_products(status=status, active_only=not include_inactive)
    return {"items": [p.to_dict() for p in products]}, 200


@products_bp.get("/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return {"product": products_service.get_product(product_id).to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)


@products_bp.get("/code/<code>")
def get_product_by_code_route(code: str):
    try:
        return {"product": products_service.get_product_by_code(code).to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
