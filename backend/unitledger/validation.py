from __future__ import annotations

from typing import Any


# Maximum money amount: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level: a referenced entity does not exist."""


class ConflictError(ValueError):
    """409-level uniqueness conflict (e.g., duplicate serial or product code)."""


class InvalidOperationError(ValueError):
    """400-level business rule violation on otherwise valid entities."""


_STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ConflictError, 409),
    (InvalidOperationError, 400),
    (ValidationError, 400),
)

DOMAIN_ERRORS = tuple(cls for cls, _ in _STATUS_BY_ERROR)


def status_for(exc: Exception) -> int:
    """HTTP status code for a domain error; 500 for anything unexpected."""
    for cls, status in _STATUS_BY_ERROR:
        if isinstance(exc, cls):
            return status
    # Plain ValueError comes from input normalization (dates, numbers)
    if isinstance(exc, ValueError):
        return 400
    return 500


def normalize_serial(value: Any) -> str:
    """Serials are stored uppercase with surrounding whitespace removed."""
    if value is None:
        raise ValidationError("serial is required")
    serial = str(value).strip().upper()
    if not serial:
        raise ValidationError("serial is required")
    return serial


def normalize_code(value: Any) -> str:
    if value is None:
        raise ValidationError("code is required")
    code = str(value).strip().upper()
    if not code:
        raise ValidationError("code is required")
    return code


# =============================================================================
# PAYLOAD COERCION (request layer)
# =============================================================================

def _coerce_int(key: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def require_int(payload: dict, key: str, *, minimum: int | None = None) -> int:
    if payload.get(key) is None:
        raise ValidationError(f"{key} is required")
    return optional_int(payload, key, minimum=minimum)


def optional_int(payload: dict, key: str, *, minimum: int | None = None) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    result = _coerce_int(key, value)
    if minimum is not None and result < minimum:
        raise ValidationError(f"{key} must be >= {minimum}")
    return result


def require_cents(payload: dict, key: str) -> int:
    if payload.get(key) is None:
        raise ValidationError(f"{key} is required")
    return optional_cents(payload, key)


def optional_cents(payload: dict, key: str) -> int | None:
    value = optional_int(payload, key, minimum=0)
    if value is not None and value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} exceeds maximum allowed amount")
    return value


def as_cents(key: str, value: Any) -> int:
    """Coerce a single money value (already known to be present)."""
    result = _coerce_int(key, value)
    if result < 0:
        raise ValidationError(f"{key} must be >= 0")
    if result > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{key} exceeds maximum allowed amount")
    return result


def require_str(payload: dict, key: str) -> str:
    value = optional_str(payload, key)
    if value is None:
        raise ValidationError(f"{key} is required")
    return value


def optional_str(payload: dict, key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None



def require_int_list(payload: dict, key: str) -> list[int]:
    values = payload.get(key)
    if not isinstance(values, list) or not values:
        raise ValidationError(f"{key} must be a non-empty list")
    return [_coerce_int(key, v) for v in values]


def optional_int_list(payload: dict, key: str) -> list[int]:
    values = payload.get(key)
    if values is None:
        return []
    if not isinstance(values, list):
        raise ValidationError(f"{key} must be a list")
    return [_coerce_int(key, v) for v in values]


def optional_bool(payload: dict, key: str) -> bool | None:
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)
