# backend/unitledger/routes/system.py
"""
System health endpoint.

Checks database connectivity and reports basic table counts for
deployment debugging.
"""

import time

from flask import Blueprint, current_app

from ..extensions import db
from ..models import Consignment, InventoryUnit, Product
from unitledger.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        details = {
            "products": db.session.query(Product).count(),
            "units": db.session.query(InventoryUnit).count(),
            "consignments": db.session.query(Consignment).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {"status": "healthy", "latency_ms": round(elapsed_ms, 2), "details": details}
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": round(elapsed_ms, 2), "error": "Database error"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unavailable
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503
    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, http_status
