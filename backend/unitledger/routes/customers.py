# Overview: Flask API routes for customers; parses input and returns JSON responses.

from flask import Blueprint, request

from ..services import customer_service
from ..validation import optional_str, require_str, status_for


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        customer = customer_service.create_customer(
            name=require_str(payload, "name"),
            email=optional_str(payload, "email"),
            phone=optional_str(payload, "phone"),
        )
        return {"customer": customer.to_dict()}, 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)


@customers_bp.get("/<int:customer_id>")
def get_customer_route(customer_id: int):
    try:
        return {"customer": customer_service.get_customer(customer_id).to_dict()}, 200
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
