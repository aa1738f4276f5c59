# Overview: Append-only stock transaction ledger; the single write path for StockTransaction rows.

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import Batch, StockTransaction, TransactionType, OutflowReason
from ..validation import ValidationError, coerce_enum
from stockledger.time_utils import utcnow
"""
Stock Ledger Invariants (authoritative)

- Append-only: rows are inserted here and nowhere else; there is no update or delete path.
- Entries are written inside the same DB transaction as the batch change they record.
  append_transaction() flushes but never commits; the caller owns the boundary.
- timestamp is business time (backfill allowed); created_at is system time (DB default).
- Signed quantity: IN -> +q, OUT -> -q, OUT with is_correction_increase -> +q.
- For every batch: current_quantity == sum(signed quantity of its transactions).
  The receipt IN carries the initial quantity, so this equals
  initial_quantity + sum(movements).
- As-of filtering is inclusive: timestamp <= as_of.
"""


def signed_quantity(tx: StockTransaction) -> int:
    return tx.signed_quantity


def append_transaction(
    *,
    batch: Batch,
    type,
    quantity: int,
    timestamp: Optional[datetime] = None,
    reason=None,
    notes: Optional[str] = None,
    unit_cost_cents_at_transaction: int | None = None,
    is_correction_increase: bool = False,
) -> StockTransaction:
    """
    Append one ledger entry for `batch`.

    - No quantity logic here; batch_service validates and mutates the batch.
    - product_id / product_name / cost snapshot are copied from the batch.
    - timestamp defaults to server time.
    """
    tx_type = coerce_enum(TransactionType, type, field_name="type")

    if quantity is None or quantity < 0:
        raise ValidationError("ledger quantity must be >= 0")

    if tx_type == TransactionType.OUT:
        if reason is None:
            raise ValidationError("reason is required for OUT transactions")
        tx_reason = coerce_enum(OutflowReason, reason, field_name="reason")
    else:
        if reason is not None:
            raise ValidationError("reason is only allowed on OUT transactions")
        if is_correction_increase:
            raise ValidationError("is_correction_increase is only allowed on OUT transactions")
        tx_reason = None

    tx = StockTransaction(
        product_id=batch.product_id,
        product_name=batch.product_name,
        batch_id=batch.id,
        type=tx_type,
        quantity=quantity,
        timestamp=timestamp or utcnow(),
        reason=tx_reason,
        notes=notes,
        unit_cost_cents_at_transaction=(
            unit_cost_cents_at_transaction
            if unit_cost_cents_at_transaction is not None
            else batch.unit_cost_cents
        ),
        is_correction_increase=bool(is_correction_increase),
    )
    db.session.add(tx)
    db.session.flush()  # ensures tx.id is assigned without committing

    current_app.logger.info(
        "ledger append: tx=%s batch=%s product=%s type=%s qty=%s reason=%s correction=%s",
        tx.id, tx.batch_id, tx.product_id, tx.type.value, tx.quantity,
        tx.reason.value if tx.reason else None, tx.is_correction_increase,
    )
    return tx


def list_transactions(
    *,
    product_id: int | None = None,
    batch_id: int | None = None,
    type=None,
    reason=None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 200,
) -> list[StockTransaction]:
    """Newest first. start/end are inclusive bounds on business time."""
    q = StockTransaction.query
    if product_id is not None:
        q = q.filter(StockTransaction.product_id == product_id)
    if batch_id is not None:
        q = q.filter(StockTransaction.batch_id == batch_id)
    if type is not None:
        q = q.filter(StockTransaction.type == coerce_enum(TransactionType, type, field_name="type"))
    if reason is not None:
        q = q.filter(StockTransaction.reason == coerce_enum(OutflowReason, reason, field_name="reason"))
    if start is not None:
        q = q.filter(StockTransaction.timestamp >= start)
    if end is not None:
        q = q.filter(StockTransaction.timestamp <= end)

    limit = max(1, min(int(limit), 1000))
    return q.order_by(
        StockTransaction.timestamp.desc(),
        StockTransaction.id.desc(),
    ).limit(limit).all()


def transactions_for_replay(batch_ids: Iterable[int], as_of: datetime) -> dict[int, list[StockTransaction]]:
    """
    Transactions of the given batches with timestamp <= as_of, oldest first,
    grouped by batch id. Batches with no qualifying rows map to [].
    """
    ids = list(batch_ids)
    grouped: dict[int, list[StockTransaction]] = {bid: [] for bid in ids}
    if not ids:
        return grouped

    rows = (
        StockTransaction.query
        .filter(
            StockTransaction.batch_id.in_(ids),
            StockTransaction.timestamp <= as_of,
        )
        .order_by(StockTransaction.timestamp.asc(), StockTransaction.id.asc())
        .all()
    )
    for tx in rows:
        grouped[tx.batch_id].append(tx)
    return grouped


def derived_quantity_by_batch(batch_ids: Iterable[int] | None = None) -> dict[int, int]:
    """SUM(signed quantity) per batch, computed in SQL."""
    signed = case(
        (StockTransaction.type == TransactionType.IN, StockTransaction.quantity),
        (StockTransaction.is_correction_increase.is_(True), StockTransaction.quantity),
        else_=-StockTransaction.quantity,
    )
    q = db.session.query(
        StockTransaction.batch_id,
        func.coalesce(func.sum(signed), 0),
    ).filter(StockTransaction.batch_id.isnot(None))
    if batch_ids is not None:
        q = q.filter(StockTransaction.batch_id.in_(list(batch_ids)))
    q = q.group_by(StockTransaction.batch_id)
    return {batch_id: int(total or 0) for batch_id, total in q.all()}


def verify_ledger_consistency(*, product_id: int | None = None) -> list[dict]:
    """
    Compare each batch's stored current_quantity with the ledger-derived one.

    Returns mismatches as {batch_id, product_id, stored, derived}; an empty
    list means the store and the ledger agree. Read-only: repairing a
    mismatch is an operator decision.
    """
    q = Batch.query
    if product_id is not None:
        q = q.filter(Batch.product_id == product_id)
    batches = q.order_by(Batch.id.asc()).all()

    derived = derived_quantity_by_batch([b.id for b in batches])

    mismatches = []
    for b in batches:
        d = derived.get(b.id, 0)
        if d != b.current_quantity:
            mismatches.append({
                "batch_id": b.id,
                "product_id": b.product_id,
                "stored": b.current_quantity,
                "derived": d,
            })

    if mismatches:
        current_app.logger.warning(
            "ledger reconciliation found %d mismatched batch(es): %s",
            len(mismatches), [m["batch_id"] for m in mismatches],
        )
    return mismatches
