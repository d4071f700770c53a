from __future__ import annotations
from datetime import datetime, timezone
from consignment.time_utils import parse_iso_datetime

from typing import Any


# Maximum price per unit: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# Largest single dispatch / batch the ledger accepts
MAX_QUANTITY = 1_000_000


class ValidationError(ValueError):
    """400-level input problem."""


def coerce_int(name: str, value: Any) -> int:
    """
    Strict integer coercion for JSON input.

    Rejects floats, scientific notation and booleans so that quantities and
    cents can never be silently truncated.
    """
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{name} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{name} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{name} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{name} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{name} must be an integer, not a decimal")
    raise ValidationError(f"{name} must be an integer")


def require_quantity(name: str, value: Any, *, allow_zero: bool = False) -> int:
    """Validate a unit count before any arithmetic touches it."""
    qty = coerce_int(name, value)
    if qty < 0 or (qty == 0 and not allow_zero):
        raise ValidationError(f"{name} must be {'non-negative' if allow_zero else 'positive'}")
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{name} cannot exceed {MAX_QUANTITY}")
    return qty


def require_cents(name: str, value: Any, *, allow_zero: bool = True) -> int:
    cents = coerce_int(name, value)
    if cents < 0 or (cents == 0 and not allow_zero):
        raise ValidationError(f"{name} must be {'non-negative' if allow_zero else 'positive'}")
    if cents > MAX_PRICE_CENTS * MAX_QUANTITY:
        raise ValidationError(f"{name} is too large")
    return cents


def require_datetime(name: str, value: Any) -> datetime:
    """Accept a datetime or an ISO-8601 string; normalize to UTC-naive."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if isinstance(value, str):
        try:
            dt = parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{name} must be an ISO-8601 datetime")
        if dt is None:
            raise ValidationError(f"{name} must be an ISO-8601 datetime")
        return dt
    raise ValidationError(f"{name} must be an ISO-8601 datetime")


def optional_str(name: str, value: Any, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{name} must be a string")
    stripped = value.strip()
    if not stripped:
        return None
    if len(stripped) > max_length:
        raise ValidationError(f"{name} exceeds max length {max_length}")
    return stripped


def parse_bool_arg(name: str, value: str | None) -> bool | None:
    """Query-string boolean: true/false/1/0, None when absent."""
    if value is None or value == "":
        return None
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes"}:
        return True
    if lowered in {"0", "false", "no"}:
        return False
    raise ValidationError(f"{name} must be true or false")


def require_json_object(payload: Any) -> dict:
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object")
    return payload
