# Overview: Historical stock reconstruction; replays the ledger to value a product at past dates.

from __future__ import annotations

import calendar
import enum
from datetime import date, datetime, timedelta

from ..extensions import db
from ..models import Batch, Product
from ..validation import ProductNotFound, ValidationError, coerce_enum
from .ledger_service import signed_quantity, transactions_for_replay
from stockledger.time_utils import end_of_day, start_of_day, start_of_week, to_utc_z, utcnow
"""
Replay rules (as-of R, inclusive)

- Batches received after R do not exist yet and are skipped.
- A batch's quantity at R is the signed sum of its transactions with
  timestamp <= R, in chronological order, clamped at zero.
- A batch with an expiry date contributes nothing once R has passed the
  start of its expiry day.
- Value is quantity * the batch's own unit cost.

Reads only; never writes.
"""

# Weekly and monthly series never return more points than this
MAX_REPORT_POINTS = 20


class TimeScale(str, enum.Enum):
    LAST_7_DAYS_DAILY = "LAST_7_DAYS_DAILY"
    LAST_30_DAYS_DAILY = "LAST_30_DAYS_DAILY"
    LAST_3_MONTHS_WEEKLY = "LAST_3_MONTHS_WEEKLY"
    LAST_12_MONTHS_MONTHLY = "LAST_12_MONTHS_MONTHLY"


def _add_months(d: date, months: int) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def report_dates(time_scale, *, now: datetime | None = None) -> list[datetime]:
    """
    End-of-day report points for a time scale, ascending and deduplicated,
    none later than the end of today.
    """
    scale = coerce_enum(TimeScale, time_scale, field_name="time_scale")
    today = (now or utcnow()).date()

    days: list[date] = []
    if scale == TimeScale.LAST_7_DAYS_DAILY:
        days = [today - timedelta(days=n) for n in range(6, -1, -1)]
    elif scale == TimeScale.LAST_30_DAYS_DAILY:
        days = [today - timedelta(days=n) for n in range(29, -1, -1)]
    elif scale == TimeScale.LAST_3_MONTHS_WEEKLY:
        cursor = start_of_week(_add_months(today, -3))
        while cursor <= today and len(days) < MAX_REPORT_POINTS:
            days.append(cursor)
            cursor = cursor + timedelta(days=7)
    elif scale == TimeScale.LAST_12_MONTHS_MONTHLY:
        first = _add_months(today, -11).replace(day=1)
        cursor = first
        step = 0
        while cursor <= today and len(days) < MAX_REPORT_POINTS:
            days.append(cursor)
            step += 1
            cursor = _add_months(first, step)

    limit = end_of_day(today)
    return sorted({end_of_day(d) for d in days if end_of_day(d) <= limit})


def _replay_batches(batches: list[Batch], as_of: datetime) -> tuple[int, int]:
    live = [b for b in batches if b.created_at <= as_of]
    history = transactions_for_replay([b.id for b in live], as_of)

    total_qty = 0
    total_value = 0
    for b in live:
        qty = 0
        for tx in history.get(b.id, []):
            qty += signed_quantity(tx)
        qty = max(0, qty)

        if b.expiry_date is not None and start_of_day(b.expiry_date) < as_of:
            continue

        total_qty += qty
        total_value += qty * b.unit_cost_cents
    return total_qty, total_value


def _product_batches(product_id: int) -> tuple[Product, list[Batch]]:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"product {product_id} not found")
    batches = Batch.query.filter(Batch.product_id == product.id).order_by(Batch.id.asc()).all()
    return product, batches


def stock_as_of(product_id: int, as_of: datetime) -> dict:
    if not isinstance(as_of, datetime):
        raise ValidationError("as_of must be a datetime")
    _, batches = _product_batches(product_id)
    qty, value = _replay_batches(batches, as_of)
    return {
        "report_date": to_utc_z(as_of),
        "total_quantity": qty,
        "total_value_cents": value,
    }


def get_historical_series(product_id: int, time_scale, *, now: datetime | None = None) -> dict:
    """Quantity and layered value of one product at each report date of the scale."""
    scale = coerce_enum(TimeScale, time_scale, field_name="time_scale")
    product, batches = _product_batches(product_id)

    points = []
    for as_of in report_dates(scale, now=now):
        qty, value = _replay_batches(batches, as_of)
        points.append({
            "report_date": to_utc_z(as_of),
            "total_quantity": qty,
            "total_value_cents": value,
        })

    return {
        "product_id": product.id,
        "product_name": product.name,
        "time_scale": scale.value,
        "points": points,
    }
