# Overview: Flask API routes for bulk unit intake; parses input and returns JSON responses.

"""
Bulk Intake Routes

Structured groups, flat rows, and CSV / Excel (.xlsx) uploads.
Per-unit failures are reported in the result with HTTP 201; only
whole-batch rejections (repeated serials, malformed input) return an error.
"""

import io

from flask import Blueprint, current_app, request

from ..services import intake_service
from ..validation import ValidationError, optional_int, optional_str, status_for


imports_bp = Blueprint("imports", __name__, url_prefix="/api/imports")


def _batch_options(payload) -> dict:
    return {
        "origin": optional_str(payload, "origin") or "IMPORT",
        "entry_date": payload.get("entry_date") or None,
        "reference": optional_str(payload, "reference"),
        "warranty_months": optional_int(payload, "warranty_months", minimum=0),
        "notes": optional_str(payload, "notes"),
    }


@imports_bp.post("")
def import_units_route():
    """
    Import units grouped by product.

    Request body:
    {
        "origin": "PURCHASE",
        "reference": "INV-778",        (optional, default IMP-<date>)
        "warranty_months": 12,         (optional)
        "groups": [
            {"product_code": "RTR-100", "cost_cents": 4000, "lot": "L1",
             "units": [{"serial": "A1"}, {"serial": "A2", "cost_cents": 4200}]}
        ]
    }
    """
    payload = request.get_json(silent=True) or {}
    try:
        groups = payload.get("groups")
        if not isinstance(groups, list) or not groups:
            raise ValidationError("groups must be a non-empty list")
        result = intake_service.import_units(groups=groups, **_batch_options(payload))
        return result.to_dict(), 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to import units")
        return {"error": "Internal server error"}, 500


@imports_bp.post("/rows")
def import_rows_route():
    """Import flat rows: [{product_code, serial, cost_cents?, lot?, notes?}]."""
    payload = request.get_json(silent=True) or {}
    try:
        rows = payload.get("rows")
        if not isinstance(rows, list) or not rows:
            raise ValidationError("rows must be a non-empty list")
        result = intake_service.import_rows(rows=rows, **_batch_options(payload))
        return result.to_dict(), 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to import rows")
        return {"error": "Internal server error"}, 500


@imports_bp.post("/upload")
def upload_route():
    """Multipart upload of a .csv or .xlsx file; other form fields are batch options."""
    if "file" not in request.files:
        return {"error": "file is required"}, 400

    file = request.files["file"]
    filename = file.filename or ""
    ext = filename.split(".")[-1].lower()

    try:
        if ext == "csv":
            rows = intake_service.read_csv_rows(file.stream.read().decode("utf-8-sig"))
        elif ext in {"xlsx", "xlsm", "xltx", "xltm"}:
            rows = intake_service.read_xlsx_rows(io.BytesIO(file.stream.read()))
        else:
            return {"error": "Unsupported file format"}, 400

        result = intake_service.import_rows(rows=rows, **_batch_options(request.form))
        return result.to_dict(), 201
    except ValueError as e:
        return {"error": str(e)}, status_for(e)
    except Exception:
        current_app.logger.exception("Failed to import upload %s", filename)
        return {"error": "Failed to parse upload"}, 400
