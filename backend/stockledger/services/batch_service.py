# Overview: Batch store; receives batches and applies stock movements together with their ledger entries.

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Batch, Product, ProductCategory, StockTransaction, TransactionType, OutflowReason
from ..validation import (
    BatchNotFound,
    ExceedsReceivedQuantity,
    InconsistentLedgerWrite,
    InsufficientStock,
    InvalidQuantity,
    MissingProductionDate,
    ProductNotFound,
    ValidationError,
    ZeroQuantityMovement,
    coerce_enum,
    enforce_quantity,
    enforce_unit_cost,
    MAX_QUANTITY,
)
from .concurrency import lock_for_update, run_write
from .ledger_service import append_transaction, derived_quantity_by_batch
from stockledger.time_utils import normalize_datetime, parse_iso_date, utcnow
"""
Batch Store Invariants (authoritative)

- A batch is created with current_quantity == initial_quantity together with
  one IN ledger entry (full quantity, batch created_at, batch unit cost).
- Every change of current_quantity is paired with exactly one OUT ledger entry
  in the same DB transaction:
    negative movement -> OUT, quantity=|q|, is_correction_increase=False
    positive movement -> OUT, quantity=q,   is_correction_increase=True
- 0 <= current_quantity <= initial_quantity at all times.
  Consumption larger than what remains -> InsufficientStock.
  A correction larger than what was consumed -> ExceedsReceivedQuantity.
- unit_cost_cents never changes after receipt.
- If the pair cannot be written together the session is rolled back and
  InconsistentLedgerWrite is raised; nothing is applied.
"""


def _future_tolerance() -> timedelta:
    return timedelta(minutes=current_app.config.get("FUTURE_TOLERANCE_MINUTES", 2))


def _parse_business_time(value, *, field_name: str) -> datetime:
    if value is None:
        return utcnow()
    try:
        dt = normalize_datetime(value)
    except ValueError:
        raise ValidationError(f"{field_name} must be an ISO-8601 datetime")
    if dt is None:
        raise ValidationError(f"{field_name} must be an ISO-8601 datetime")
    if dt > utcnow() + _future_tolerance():
        raise ValidationError(f"{field_name} cannot be in the future")
    return dt


def _require_active_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None or product.is_archived:
        raise ProductNotFound(f"product {product_id} not found or archived")
    return product


def _check_pair(batch: Batch) -> None:
    """Verify the flushed batch still agrees with its ledger; run_write commits."""
    derived = derived_quantity_by_batch([batch.id]).get(batch.id, 0)
    if derived != batch.current_quantity:
        stored = batch.current_quantity
        batch_id = batch.id
        db.session.rollback()
        current_app.logger.error(
            "ledger mismatch after write: batch=%s stored=%s derived=%s (rolled back)",
            batch_id, stored, derived,
        )
        raise InconsistentLedgerWrite(
            f"batch {batch_id} would not match its ledger (stored={stored}, derived={derived})"
        )


def _run_pair(op, *, what: str):
    """
    Run a batch+ledger write through run_write.

    Conflicts before the commit are retried from a fresh read. A storage
    failure after the first flush surfaces as InconsistentLedgerWrite; the
    commit itself is never retried.
    """
    return run_write(op, what=what, partial_error=InconsistentLedgerWrite)


def _resolve_production_date(product: Product, production_date, received_at: datetime):
    try:
        prod = parse_iso_date(production_date)
    except ValueError:
        raise ValidationError("production_date must be an ISO-8601 date")

    if product.category == ProductCategory.INGREDIENT:
        if prod is None:
            raise MissingProductionDate("production_date is required for INGREDIENT products")
        return prod, prod + timedelta(days=product.shelf_life_days)

    # NON_INGREDIENT: no expiry; production date defaults to the receipt date
    return (prod or received_at.date()), None


def receive_batch(
    *,
    product_id: int,
    initial_quantity: int,
    unit_cost_cents: int,
    production_date=None,
    received_at=None,
    notes: str | None = None,
) -> Batch:
    """
    Create a batch and its IN ledger entry in one DB transaction.

    received_at defaults to now; a past value backfills the receipt.
    """
    qty = enforce_quantity(initial_quantity)
    cost = enforce_unit_cost(unit_cost_cents)
    created_at = _parse_business_time(received_at, field_name="received_at")

    def _op(attempt):
        product = _require_active_product(product_id)
        prod_date, expiry_date = _resolve_production_date(product, production_date, created_at)

        batch = Batch(
            product_id=product.id,
            product_name=product.name,
            production_date=prod_date,
            expiry_date=expiry_date,
            initial_quantity=qty,
            current_quantity=qty,
            unit_cost_cents=cost,
            created_at=created_at,
        )
        db.session.add(batch)
        attempt.flush()

        append_transaction(
            batch=batch,
            type=TransactionType.IN,
            quantity=qty,
            timestamp=batch.created_at,
            notes=notes,
            unit_cost_cents_at_transaction=cost,
        )

        _check_pair(batch)
        return batch

    batch = _run_pair(_op, what="receive_batch")
    current_app.logger.info(
        "batch received: batch=%s product=%s qty=%s cost=%s expiry=%s",
        batch.id, batch.product_id, qty, cost, batch.expiry_date,
    )
    return batch


def record_movement(
    *,
    product_id: int,
    batch_id: int,
    quantity: int,
    reason,
    notes: str | None = None,
    occurred_at=None,
) -> StockTransaction:
    """
    Apply a signed change to one batch and append the matching OUT entry.

    quantity < 0: consumption (sale, spoilage, internal use, adjustment).
    quantity > 0: correction increase, e.g. undoing an over-counted sale.
    """
    if quantity is None or isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity("quantity must be an integer")
    if quantity == 0:
        raise ZeroQuantityMovement("quantity must be non-zero")
    if abs(quantity) > MAX_QUANTITY:
        raise InvalidQuantity(f"quantity cannot exceed {MAX_QUANTITY}")
    if reason is None:
        raise ValidationError("reason is required")
    out_reason = coerce_enum(OutflowReason, reason, field_name="reason")
    occurred_dt = _parse_business_time(occurred_at, field_name="occurred_at")

    def _op(attempt):
        batch = lock_for_update(Batch.query.filter_by(id=batch_id)).first()
        if batch is None or batch.product_id != product_id:
            raise BatchNotFound(f"batch {batch_id} not found for product {product_id}")

        if occurred_dt < batch.created_at:
            raise ValidationError("occurred_at cannot be before the batch was received")

        if quantity < 0:
            if -quantity > batch.current_quantity:
                raise InsufficientStock(
                    f"batch {batch.id} has only {batch.current_quantity} available",
                    batch_id=batch.id,
                    available=batch.current_quantity,
                )
        else:
            headroom = batch.initial_quantity - batch.current_quantity
            if quantity > headroom:
                raise ExceedsReceivedQuantity(
                    f"correction of {quantity} would exceed the received quantity of batch {batch.id} "
                    f"(at most {headroom} can be restored)",
                    batch_id=batch.id,
                    headroom=headroom,
                )

        batch.current_quantity = batch.current_quantity + quantity
        attempt.flush()  # bumps version_id; a stale read gets StaleDataError here

        tx = append_transaction(
            batch=batch,
            type=TransactionType.OUT,
            quantity=abs(quantity),
            timestamp=occurred_dt,
            reason=out_reason,
            notes=notes,
            unit_cost_cents_at_transaction=batch.unit_cost_cents,
            is_correction_increase=quantity > 0,
        )

        _check_pair(batch)
        return tx

    return _run_pair(_op, what="record_movement")


def get_batch(batch_id: int) -> Batch:
    batch = db.session.get(Batch, batch_id)
    if batch is None:
        raise BatchNotFound(f"batch {batch_id} not found")
    return batch


def list_batches(product_id: int, *, include_depleted: bool = False) -> list[Batch]:
    """Batches of one product, oldest receipt first."""
    if db.session.get(Product, product_id) is None:
        raise ProductNotFound(f"product {product_id} not found")

    q = Batch.query.filter(Batch.product_id == product_id)
    if not include_depleted:
        q = q.filter(Batch.current_quantity > 0)
    return q.order_by(Batch.created_at.asc(), Batch.id.asc()).all()


def get_most_recent_unit_cost(product_id: int) -> int | None:
    """Unit cost of the most recently received batch, or None if never received."""
    batch = (
        Batch.query
        .filter(Batch.product_id == product_id)
        .order_by(Batch.created_at.desc(), Batch.id.desc())
        .first()
    )
    return batch.unit_cost_cents if batch else None
