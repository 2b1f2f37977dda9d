# Overview: Service-layer operations for bulk unit intake; grouped imports, flat rows and spreadsheet uploads.

"""
Bulk Intake Invariants & Semantics (authoritative)

Batch:
- A serial repeated anywhere in the input rejects the WHOLE call before any
  read or write (InvalidOperationError listing the repeats).
- Everything else is classified per unit: missing serial, unknown product,
  serial already registered, invalid cost. Failures are reported in the
  result; the rest of the batch is applied.

Per product group:
- All new units are inserted, the product stock is incremented once by the
  number of units added, and ONE ENTRY movement summarizes the group.

Defaults:
- cost:  unit cost -> group default -> product base cost -> 0
- lot:   unit lot  -> group default -> batch reference
- notes: unit notes -> batch notes
- reference: IMP-<entry date YYYY-MM-DD>
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation as DecimalInvalidOperation
from typing import Any

from ..extensions import db
from ..models import InventoryUnit
from ..models.inventory import ORIGIN_IMPORT
from ..validation import InvalidOperationError, ValidationError, as_cents, normalize_serial
from unitledger.time_utils import normalize_datetime, utcnow
from .concurrency import run_with_retry
from .notification_service import dispatch_low_stock
from .products_service import resolve_product
from .stock_ledger_service import StockMovementKind, post_stock_change
from .unit_service import validate_warranty_months, build_unit, normalize_origin


CHUNK_SIZE_DEFAULT = 200

STATUS_OK = "ok"
STATUS_ERROR = "error"


@dataclass
class UnitOutcome:
    serial: str
    product_ref: Any
    status: str
    unit_id: int | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "serial": self.serial,
            "product_ref": self.product_ref,
            "status": self.status,
            "unit_id": self.unit_id,
            "error": self.error,
        }


@dataclass
class ProductSummary:
    product_ref: Any
    product_id: int | None
    code: str | None
    added: int = 0
    failed: int = 0
    stock_after: int | None = None

    def to_dict(self) -> dict:
        return {
            "product_ref": self.product_ref,
            "product_id": self.product_id,
            "code": self.code,
            "added": self.added,
            "failed": self.failed,
            "stock_after": self.stock_after,
        }


@dataclass
class ImportResult:
    reference: str
    details: list[UnitOutcome] = field(default_factory=list)
    products: list[ProductSummary] = field(default_factory=list)

    @property
    def total_processed(self) -> int:
        return len(self.details)

    @property
    def succeeded(self) -> int:
        return sum(1 for d in self.details if d.status == STATUS_OK)

    @property
    def failed(self) -> int:
        return self.total_processed - self.succeeded

    def to_dict(self) -> dict:
        return {
            "reference": self.reference,
            "total_processed": self.total_processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "details": [d.to_dict() for d in self.details],
            "products": [p.to_dict() for p in self.products],
        }


def resolve_unit_cost(
    unit_cost: int | None,
    group_default: int | None,
    product_base_cost: int | None,
) -> int:
    """First non-None of unit cost, group default and product base cost; else 0."""
    for candidate in (unit_cost, group_default, product_base_cost):
        if candidate is not None:
            return candidate
    return 0


def _first_present(*values):
    for value in values:
        if value not in (None, ""):
            return value
    return None


def _group_product_ref(group: dict):
    ref = group.get("product_id")
    if ref is None:
        ref = group.get("product_code")
    if ref is None:
        ref = group.get("product")
    return ref


def _item_serial(item: dict) -> str | None:
    """Normalized serial, or None when the row has none."""
    try:
        return normalize_serial(item.get("serial"))
    except ValidationError:
        return None


def find_repeated_serials(groups: list[dict]) -> list[str]:
    seen = set()
    repeated = []
    for group in groups:
        for item in group.get("units") or []:
            serial = _item_serial(item)
            if serial is None:
                continue
            if serial in seen and serial not in repeated:
                repeated.append(serial)
            seen.add(serial)
    return repeated


def fetch_existing_serials(serials: list[str], chunk_size: int = CHUNK_SIZE_DEFAULT) -> set[str]:
    """Serials already stored, looked up in chunks (one query per chunk)."""
    existing: set[str] = set()
    for start in range(0, len(serials), chunk_size):
        chunk = serials[start:start + chunk_size]
        rows = db.session.query(InventoryUnit.serial).filter(InventoryUnit.serial.in_(chunk)).all()
        existing.update(row[0] for row in rows)
    return existing


def import_units(
    *,
    groups: list[dict],
    origin: str = ORIGIN_IMPORT,
    entry_date=None,
    reference: str | None = None,
    warranty_months: int | None = None,
    notes: str | None = None,
) -> ImportResult:
    """
    Register units for several products in one transaction.

    Each group is a dict with a product reference (product_id or
    product_code), a list of units ({serial, cost_cents?, lot?, notes?}) and
    optional cost_cents / lot defaults.

    Raises:
        InvalidOperationError: a serial appears more than once in the input
        ValidationError: malformed input (no groups, bad origin)
    """
    if not groups:
        raise ValidationError("groups must be a non-empty list")
    origin = normalize_origin(origin) or ORIGIN_IMPORT
    warranty_months = validate_warranty_months(warranty_months)
    entry_dt = normalize_datetime(entry_date, field="entry_date") or utcnow()
    reference = reference or f"IMP-{entry_dt.strftime('%Y-%m-%d')}"
    reason = f"Bulk import: {origin}" + (f" - {notes}" if notes else "")

    repeated = find_repeated_serials(groups)
    if repeated:
        raise InvalidOperationError(f"Duplicate serials in import: {', '.join(repeated)}")

    all_serials = [
        serial
        for group in groups
        for serial in (_item_serial(item) for item in group.get("units") or [])
        if serial is not None
    ]

    def _op():
        result = ImportResult(reference=reference)
        events = []
        existing = fetch_existing_serials(all_serials)

        for group in groups:
            ref = _group_product_ref(group)
            units_in = group.get("units") or []
            product = resolve_product(ref) if ref is not None else None
            summary = ProductSummary(
                product_ref=ref,
                product_id=product.id if product else None,
                code=product.code if product else None,
            )
            result.products.append(summary)

            if product is None:
                for item in units_in:
                    result.details.append(UnitOutcome(
                        serial=_item_serial(item) or "",
                        product_ref=ref,
                        status=STATUS_ERROR,
                        error=f"Product {ref} not found",
                    ))
                    summary.failed += 1
                continue

            created = []
            for item in units_in:
                serial = _item_serial(item)
                if serial is None:
                    result.details.append(UnitOutcome(
                        serial="", product_ref=ref, status=STATUS_ERROR, error="serial is required",
                    ))
                    summary.failed += 1
                    continue
                if serial in existing:
                    result.details.append(UnitOutcome(
                        serial=serial, product_ref=ref, status=STATUS_ERROR,
                        error=f"Serial {serial} already exists",
                    ))
                    summary.failed += 1
                    continue

                try:
                    cost = as_cents("cost_cents", resolve_unit_cost(
                        item.get("cost_cents"), group.get("cost_cents"), product.base_cost_cents
                    ))
                except ValidationError as e:
                    result.details.append(UnitOutcome(
                        serial=serial, product_ref=ref, status=STATUS_ERROR, error=str(e),
                    ))
                    summary.failed += 1
                    continue

                unit = build_unit(
                    product,
                    serial=serial,
                    cost_cents=cost,
                    origin=origin,
                    lot=_first_present(item.get("lot"), group.get("lot"), reference),
                    warranty_months=warranty_months,
                    entry_date=entry_dt,
                    notes=_first_present(item.get("notes"), notes),
                )
                db.session.add(unit)
                created.append(unit)

            if created:
                db.session.flush()
                for unit in created:
                    result.details.append(UnitOutcome(
                        serial=unit.serial, product_ref=ref, status=STATUS_OK, unit_id=unit.id,
                    ))
                _, event = post_stock_change(
                    product,
                    delta=len(created),
                    kind=StockMovementKind.ENTRY,
                    reference=reference,
                    reason=reason,
                    occurred_at=entry_dt,
                )
                events.append(event)
                summary.added = len(created)
            summary.stock_after = product.current_stock

        db.session.commit()
        return result, events

    result, events = run_with_retry(_op)
    dispatch_low_stock(events)
    return result


def group_rows(rows: list[dict]) -> list[dict]:
    """Group flat rows by product code, keeping first-appearance order."""
    groups: dict[str, dict] = {}
    for row in rows:
        code = str(row.get("product_code") or "").strip().upper()
        group = groups.get(code)
        if group is None:
            group = {"product_code": code, "units": []}
            groups[code] = group
        group["units"].append({
            "serial": row.get("serial"),
            "cost_cents": row.get("cost_cents"),
            "lot": row.get("lot"),
            "notes": row.get("notes"),
        })
    return list(groups.values())


def import_rows(*, rows: list[dict], **options) -> ImportResult:
    """Spreadsheet-style intake: one row per unit, grouped by product code."""
    if not rows:
        raise ValidationError("rows must be a non-empty list")
    return import_units(groups=group_rows(rows), **options)


# =============================================================================
# FILE PARSING (CSV / XLSX)
# =============================================================================

def _cents_from_text(value, row_number: int) -> int | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        amount = Decimal(text)
    except DecimalInvalidOperation:
        raise ValidationError(f"Row {row_number}: invalid cost {value!r}")
    return int((amount * 100).quantize(Decimal("1")))


def normalize_file_rows(raw_rows: list[dict]) -> list[dict]:
    """
    Convert raw spreadsheet rows into import rows.

    Columns: product_code, serial, cost (currency units) or cost_cents, lot, notes.
    Blank rows are skipped.
    """
    rows = []
    for index, raw in enumerate(raw_rows, start=2):
        data = {str(k).strip().lower(): v for k, v in raw.items() if k is not None}
        if not any(v not in (None, "") for v in data.values()):
            continue
        if data.get("cost_cents") not in (None, ""):
            try:
                cost_cents = int(str(data["cost_cents"]).strip())
            except ValueError:
                raise ValidationError(f"Row {index}: invalid cost_cents {data['cost_cents']!r}")
        else:
            cost_cents = _cents_from_text(data.get("cost"), index)
        rows.append({
            "product_code": data.get("product_code"),
            "serial": data.get("serial"),
            "cost_cents": cost_cents,
            "lot": _clean_text(data.get("lot")),
            "notes": _clean_text(data.get("notes")),
        })
    return rows


def _clean_text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def read_csv_rows(text: str) -> list[dict]:
    reader = csv.DictReader(io.StringIO(text))
    return normalize_file_rows([row for row in reader])


def read_xlsx_rows(stream) -> list[dict]:
    from openpyxl import load_workbook
    wb = load_workbook(stream, data_only=True)
    sheet = wb.active
    data = list(sheet.values)
    if not data:
        return []
    headers = [str(h) if h is not None else "" for h in data[0]]
    return normalize_file_rows([
        {headers[i]: row[i] for i in range(len(headers))}
        for row in data[1:]
    ])
