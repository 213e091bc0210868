from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Maximum price that fits DECIMAL(12,2)
MAX_PRICE = Decimal("9999999999.99")

# Maximum conversion factor that fits DECIMAL(12,4)
MAX_CONVERSION_FACTOR = Decimal("99999999.9999")

# Column scales: DECIMAL(12,2) prices, DECIMAL(12,4) factors and quantities
PRICE_PLACES = 2
QUANTITY_PLACES = 4


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level unique-key violation (duplicate unit name, SKU, configuration pair)."""


class NotFoundError(LookupError):
    """404-level missing row."""


class DuplicateConfigurationError(ConflictError):
    """The (product, unit) pair is already configured."""


class DuplicateSkuError(ConflictError):
    """A SKU appears twice in one variation batch or is already taken."""

    def __init__(self, sku: str, message: str | None = None):
        self.sku = sku
        super().__init__(message or f'Duplicate SKU found in variations: "{sku}". SKUs must be unique.')


class ReferentialIntegrityError(ValueError):
    """409-level attempt to delete a row that is still referenced."""


class MissingBaseUnitConfigurationError(ValidationError):
    """Product save without a conversion_factor = 1 unit configuration."""


class BaseUnitRemovalForbiddenError(ConflictError):
    """Removing the configuration would leave the product without its base unit."""


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


def parse_decimal(value: Any, field: str) -> Decimal:
    """
    Strict decimal parsing for prices, quantities and conversion factors.

    Accepts int, Decimal, float and numeric strings. Rejects booleans, blanks,
    NaN and infinities.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be a number")
        try:
            result = Decimal(stripped)
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number")
    return result


def check_scale(value: Decimal, places: int, field: str) -> Decimal:
    """Reject values the Numeric column would round on write."""
    if value.normalize().as_tuple().exponent < -places:
        raise ValidationError(f"{field} allows at most {places} decimal places")
    return value


def parse_int(value: Any, field: str) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def parse_bool(value: Any) -> bool:
    # Dashboard forms post "true"/"false" strings for checkboxes
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "on"}
    return bool(value)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Booleans
    if isinstance(coltype, Boolean):
        return parse_bool(value)

    # Integers
    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    # Decimals (prices, factors, quantities)
    if isinstance(coltype, Numeric):
        return parse_decimal(value, col.key)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
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
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # Dashboard forms send "" for cleared optional inputs
        if raw == "" and col.nullable and not isinstance(col.type, (String, Text)):
            raw = None

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Optional text fields store NULL rather than ""
        if isinstance(col.type, (String, Text)) and col.nullable and val == "":
            val = None

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_prices(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for field in ("cost_price", "retail_price", "wholesale_price"):
        price = patch.get(field)
        if price is None:
            continue
        if price < 0:
            raise ValidationError(f"{field} must be >= 0")
        if price > MAX_PRICE:
            raise ValidationError(f"{field} cannot exceed {MAX_PRICE}")
        check_scale(price, PRICE_PLACES, field)


def enforce_rules_unit_config(unit_id: Any, conversion_factor: Any) -> tuple[int, Decimal]:
    """
    Shared check for a product-unit configuration.

    Returns the parsed (unit_id, conversion_factor).
    """
    if unit_id in (None, "") or conversion_factor in (None, ""):
        raise ValidationError("Unit and Conversion Factor are required.")

    parsed_unit_id = parse_int(unit_id, "unit_id")
    factor = parse_decimal(conversion_factor, "conversion_factor")

    if factor <= 0:
        raise ValidationError("Conversion factor must be a positive number.")
    if factor > MAX_CONVERSION_FACTOR:
        raise ValidationError(f"conversion_factor cannot exceed {MAX_CONVERSION_FACTOR}")
    check_scale(factor, QUANTITY_PLACES, "conversion_factor")
    return parsed_unit_id, factor


def enforce_rules_stock_adjust(delta: Any) -> Decimal:
    # ADJUST requires a non-zero delta
    if delta is None or delta == "":
        raise ValidationError("quantity_delta is required")
    parsed = parse_decimal(delta, "quantity_delta")
    if parsed == 0:
        raise ValidationError("quantity_delta must be non-zero")
    check_scale(parsed, QUANTITY_PLACES, "quantity_delta")
    return parsed
