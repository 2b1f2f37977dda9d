# Overview: Service-layer operations for customers (buyers of directly sold units).

from __future__ import annotations

from ..extensions import db
from ..models import Customer
from ..validation import NotFoundError, ValidationError


def create_customer(*, name: str, email: str | None = None, phone: str | None = None) -> Customer:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    customer = Customer(name=name, email=email, phone=phone)
    db.session.add(customer)
    db.session.commit()
    return customer


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer
