from __future__ import annotations
from datetime import datetime
from decimal import Decimal, InvalidOperation
from stockcore.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import InvalidArgument
from .models.catalog import PRODUCT_UNITS


# Maximum price: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

MAX_TAX_RATE = Decimal(100)


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion: rejects bools, floats, decimals and scientific notation.
    """
    if isinstance(value, bool):
        raise InvalidArgument(f"{field} must be an integer", field=field)
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise InvalidArgument(f"{field} must be an integer", field=field)
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise InvalidArgument(f"{field} must be a plain integer (scientific notation not allowed)", field=field)
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise InvalidArgument(f"{field} must be an integer (no decimals)", field=field)
        try:
            result = int(stripped)
        except ValueError:
            raise InvalidArgument(f"{field} must be an integer", field=field)
    elif isinstance(value, float):
        raise InvalidArgument(f"{field} must be an integer, not a decimal", field=field)
    else:
        raise InvalidArgument(f"{field} must be an integer", field=field)

    if minimum is not None and result < minimum:
        raise InvalidArgument(f"{field} must be >= {minimum}", field=field)
    if maximum is not None and result > maximum:
        raise InvalidArgument(f"{field} cannot exceed {maximum}", field=field)
    return result


def coerce_money_cents(value: Any, field: str, *, default: int = 0) -> int:
    """Non-negative integer cents; None means default."""
    if value is None:
        return default
    return coerce_int(value, field, minimum=0, maximum=MAX_PRICE_CENTS)


def coerce_percent(value: Any, field: str = "tax_rate") -> Decimal:
    """Percentage in [0, 100] as Decimal; None means 0."""
    if value is None:
        return Decimal(0)
    if isinstance(value, bool):
        raise InvalidArgument(f"{field} must be a number", field=field)
    try:
        rate = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidArgument(f"{field} must be a number", field=field)
    if not rate.is_finite():
        raise InvalidArgument(f"{field} must be a number", field=field)
    if rate < 0:
        raise InvalidArgument(f"{field} must be >= 0", field=field)
    if rate > MAX_TAX_RATE:
        raise InvalidArgument(f"{field} cannot exceed {MAX_TAX_RATE}", field=field)
    return rate.quantize(Decimal("0.001"))


def coerce_datetime(value: Any, field: str) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise InvalidArgument(f"{field} must be an ISO-8601 datetime", field=field)
    raise InvalidArgument(f"{field} must be an ISO-8601 datetime", field=field)


def coerce_choice(value: Any, field: str, choices, *, default: str | None = None) -> str:
    if value is None:
        if default is None:
            raise InvalidArgument(f"{field} is required", field=field)
        return default
    if not isinstance(value, str) or value.strip().lower() not in choices:
        raise InvalidArgument(
            f"{field} must be one of: {', '.join(choices)}",
            field=field,
        )
    return value.strip().lower()


def coerce_decimal(value: Any, field: str, *, minimum: Decimal | None = None) -> Decimal:
    """Finite decimal; bools and non-numeric strings rejected."""
    if isinstance(value, bool):
        raise InvalidArgument(f"{field} must be a number", field=field)
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidArgument(f"{field} must be a number", field=field)
    if not result.is_finite():
        raise InvalidArgument(f"{field} must be a number", field=field)
    if minimum is not None and result < minimum:
        raise InvalidArgument(f"{field} must be >= {minimum}", field=field)
    return result


def coerce_text(value: Any, field: str, *, required: bool = False, max_length: int | None = None) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise InvalidArgument(f"{field} is required", field=field)
        return None
    if not isinstance(value, str):
        raise InvalidArgument(f"{field} must be a string", field=field)
    value = value.strip()
    if max_length is not None and len(value) > max_length:
        raise InvalidArgument(f"{field} exceeds max length {max_length}", field=field)
    return value


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise InvalidArgument(f"{col.key} must be a boolean", field=col.key)

    if isinstance(coltype, DateTime):
        return coerce_datetime(value, col.key)

    if isinstance(coltype, Numeric):
        return coerce_decimal(value, col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int)):
            raise InvalidArgument(f"{col.key} must be a string", field=col.key)
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise InvalidArgument("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise InvalidArgument(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise InvalidArgument(f"Field not allowed: {k}", field=k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols.get(k)
        if col is None:
            # Writable but not a column (e.g. opening quantity); caller validates it
            patch[k] = raw
            continue

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise InvalidArgument(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise InvalidArgument(f"{k} cannot be blank", field=k)

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise InvalidArgument(f"{k} exceeds max length {col.type.length}", field=k)

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("purchase_price_cents", "selling_price_cents"):
        if patch.get(key) is not None:
            coerce_int(patch[key], key, minimum=0, maximum=MAX_PRICE_CENTS)
    if patch.get("min_quantity") is not None:
        coerce_int(patch["min_quantity"], "min_quantity", minimum=0)
    if "barcode" in patch and patch["barcode"] == "":
        patch["barcode"] = None
    if patch.get("unit") is not None:
        patch["unit"] = coerce_choice(patch["unit"], "unit", PRODUCT_UNITS)
    if patch.get("unit_value") is not None:
        patch["unit_value"] = coerce_decimal(patch["unit_value"], "unit_value")
        if patch["unit_value"] <= 0:
            raise InvalidArgument("unit_value must be > 0", field="unit_value")
    for key in ("manufacturing_date", "expiry_date"):
        if patch.get(key) is not None:
            patch[key] = coerce_datetime(patch[key], key)
    made, expires = patch.get("manufacturing_date"), patch.get("expiry_date")
    if made is not None and expires is not None and expires < made:
        raise InvalidArgument("expiry_date cannot be before manufacturing_date", field="expiry_date")
