from __future__ import annotations
from datetime import date, datetime
from stockledger.time_utils import parse_iso_date, parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta


# Maximum unit cost: 9,999,999.99 (999,999,999 cents)
MAX_UNIT_COST_CENTS = 999_999_999

# Maximum quantity per receipt or movement
MAX_QUANTITY = 1_000_000_000


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(ValueError):
    """404-level unknown reference (product, batch)."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate name, not enough stock)."""


class StorageError(Exception):
    """
    500-level failure of the backing store.

    The underlying exception is chained as __cause__ for logging. Never
    retried automatically by the core.
    """


# -- Catalog ------------------------------------------------------------------

class DuplicateName(ConflictError):
    pass


class InvalidShelfLife(ValidationError):
    pass


class ProductNotFound(NotFoundError):
    pass


# -- Batch store / ledger -----------------------------------------------------

class MissingProductionDate(ValidationError):
    pass


class InvalidQuantity(ValidationError):
    pass


class InvalidUnitCost(ValidationError):
    pass


class BatchNotFound(NotFoundError):
    pass


class ZeroQuantityMovement(ValidationError):
    pass


class InsufficientStock(ConflictError):
    """Decrement larger than what remains; `available` tells the caller what is left."""

    def __init__(self, message: str, *, batch_id: int, available: int):
        super().__init__(message)
        self.batch_id = batch_id
        self.available = available


class ExceedsReceivedQuantity(ConflictError):
    """Correction increase would push a batch above its received quantity."""

    def __init__(self, message: str, *, batch_id: int, headroom: int):
        super().__init__(message)
        self.batch_id = batch_id
        self.headroom = headroom


class InconsistentLedgerWrite(StorageError):
    """
    The batch mutation and its ledger entry could not be applied together.

    The session has been rolled back; neither write is visible. Requires
    manual reconciliation, not a blind retry.
    """


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - extra_fields: accepted keys that are not model columns (name -> SQLAlchemy type)
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    extra_fields: dict[str, Any] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta, policy: ModelValidationPolicy) -> dict[str, Any]:
    mapper = model.__mapper__
    cols = {c.key: c for c in mapper.columns}
    for name, type_ in policy.extra_fields.items():
        cols[name] = Column(name, type_, nullable=True)
    return cols


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Whole floats from JSON clients (10.0) are accepted, fractions are not
        if isinstance(value, float):
            if value.is_integer():
                return int(value)
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Calendar dates ("YYYY-MM-DD" or a full ISO datetime)
    if isinstance(coltype, Date):
        if isinstance(value, (date, str)):
            try:
                d = parse_iso_date(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            if d is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 date")
            return d
        raise ValidationError(f"{col.key} must be a date")

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
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model, policy)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

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

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def coerce_enum(enum_cls, value, *, field_name: str):
    """Resolve a member or its string value; anything else is a ValidationError."""
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        try:
            return enum_cls(value.strip().upper())
        except ValueError:
            pass
    allowed = ", ".join(m.value for m in enum_cls)
    raise ValidationError(f"{field_name} must be one of: {allowed}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "low_stock_threshold" in patch:
        threshold = patch["low_stock_threshold"]
        if threshold is None or threshold < 0:
            raise ValidationError("low_stock_threshold must be >= 0")

    if "shelf_life_days" in patch and patch["shelf_life_days"] is not None:
        if patch["shelf_life_days"] <= 0:
            raise InvalidShelfLife("shelf_life_days must be > 0")


def enforce_quantity(value, *, field_name: str = "initial_quantity") -> int:
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantity(f"{field_name} must be an integer")
    if value <= 0:
        raise InvalidQuantity(f"{field_name} must be > 0")
    if value > MAX_QUANTITY:
        raise InvalidQuantity(f"{field_name} cannot exceed {MAX_QUANTITY}")
    return value


def enforce_unit_cost(value) -> int:
    if value is None or isinstance(value, bool) or not isinstance(value, int):
        raise InvalidUnitCost("unit_cost_cents must be an integer")
    if value < 0:
        raise InvalidUnitCost("unit_cost_cents must be >= 0")
    if value > MAX_UNIT_COST_CENTS:
        raise InvalidUnitCost(f"unit_cost_cents cannot exceed {MAX_UNIT_COST_CENTS} ({MAX_UNIT_COST_CENTS / 100:,.2f})")
    return value


def enforce_rules_batch_receive(patch: dict) -> None:
    # RECEIVE requires qty > 0 and unit_cost_cents present and >= 0
    enforce_quantity(patch.get("initial_quantity"))
    enforce_unit_cost(patch.get("unit_cost_cents"))


def enforce_rules_movement(patch: dict) -> None:
    # Movement requires a signed, non-zero quantity and a known reason
    qty = patch.get("quantity")
    if qty is None:
        raise ValidationError("quantity is required")
    if qty == 0:
        raise ZeroQuantityMovement("quantity must be non-zero")
    if abs(qty) > MAX_QUANTITY:
        raise InvalidQuantity(f"quantity cannot exceed {MAX_QUANTITY}")

    reason = patch.get("reason")
    if reason is None or str(reason).strip() == "":
        raise ValidationError("reason is required")
