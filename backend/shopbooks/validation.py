# Overview: Input coercion helpers used by routes and services; raise ValidationError on bad input.

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Iterable

from .errors import ValidationError
from .time_utils import parse_iso_date


# Numeric(15, 2) upper bound
MAX_AMOUNT = Decimal("9999999999999.99")
CENT = Decimal("0.01")


def to_money(value: Any) -> Decimal:
    """
    Normalize a stored or computed amount to a 2-place Decimal.

    Used on values read back from the database as well, since SQLite hands
    back floats for NUMERIC columns in aggregate queries.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_amount(value: Any, field: str, *, allow_zero: bool = True, allow_negative: bool = False) -> Decimal:
    """
    Parse a client-supplied monetary amount.

    Accepts ints, Decimals, floats and numeric strings. Booleans are rejected
    (bool is an int subclass and True would otherwise become 1.00).
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, str):
        value = value.strip()
        if not value:
            raise ValidationError(f"{field} must be a number")
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a finite number")

    amount = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if amount < 0 and not allow_negative:
        raise ValidationError(f"{field} must be >= 0")
    if amount == 0 and not allow_zero:
        raise ValidationError(f"{field} must be greater than 0")
    if abs(amount) > MAX_AMOUNT:
        raise ValidationError(f"{field} exceeds maximum amount {MAX_AMOUNT}")
    return amount


def parse_int(value: Any, field: str, *, required: bool = True) -> int | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{field} must be an integer")


def parse_date(value: Any, field: str, *, required: bool = True) -> date | None:
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return parse_iso_date(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


def clean_text(value: Any, field: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    if value is None:
        if required:
            raise ValidationError(f"{field} is required")
        return None
    text = str(value).strip()
    if not text:
        if required:
            raise ValidationError(f"{field} cannot be blank")
        return None
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text


def require_fields(payload: dict | None, fields: Iterable[str]) -> dict:
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [f for f in fields if payload.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return payload
