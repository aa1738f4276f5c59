# Overview: Depletion forecasting from recent consumption; per-product forecast and ranked list.

from __future__ import annotations

import math
from dataclasses import dataclass
from functools import lru_cache
from datetime import date, datetime, timedelta

from flask import current_app
from pyuca import Collator
from sqlalchemy import func

from ..extensions import db
from ..models import Batch, Product, StockTransaction, TransactionType
from ..validation import ProductNotFound, ValidationError
from stockledger.time_utils import end_of_day, start_of_day, start_of_week, to_iso_date, utcnow, utctoday
"""
Forecast rules

- Consumption = OUT transactions that are not correction increases, with
  timestamp inside the window (both ends inclusive, whole days).
  Correction increases never reduce measured consumption.
- avg_daily_consumption = consumption / window.days
- current_stock <= 0            -> ALREADY_DEPLETED, days_to_depletion = 0
- avg_daily_consumption <= 0    -> CANNOT_PREDICT,   days_to_depletion = inf
- otherwise                     -> PREDICTED, days = round-half-up(stock / avg)
  and the predicted date is today + days.
- A forecast is never an error for a product that exists.
"""

STATUS_PREDICTED = "PREDICTED"
STATUS_ALREADY_DEPLETED = "ALREADY_DEPLETED"
STATUS_CANNOT_PREDICT = "CANNOT_PREDICT"


def round_half_up(value: float) -> int:
    """9 / 2.0 -> 5; Python's round() would give 4."""
    return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ForecastWindow:
    start: date
    end: date

    @classmethod
    def last_full_week(cls, today: date | None = None) -> "ForecastWindow":
        """Monday..Sunday of the week before the one containing today."""
        today = today or utctoday()
        this_monday = start_of_week(today)
        start = this_monday - timedelta(days=7)
        return cls(start=start, end=start + timedelta(days=6))

    @classmethod
    def rolling(cls, days: int, today: date | None = None) -> "ForecastWindow":
        """The `days` whole days before today; today itself is excluded."""
        if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
            raise ValidationError("forecast window days must be a positive integer")
        today = today or utctoday()
        return cls(start=today - timedelta(days=days), end=today - timedelta(days=1))

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def bounds(self) -> tuple[datetime, datetime]:
        return start_of_day(self.start), end_of_day(self.end)


def default_window(today: date | None = None) -> ForecastWindow:
    days = int(current_app.config.get("FORECAST_WINDOW_DAYS", 0) or 0)
    if days > 0:
        return ForecastWindow.rolling(days, today)
    return ForecastWindow.last_full_week(today)


@dataclass
class DepletionForecast:
    product_id: int
    product_name: str
    unit: str
    current_stock: int
    consumed_quantity: int
    avg_daily_consumption: float
    status: str
    days_to_depletion: float
    predicted_depletion_date: date | None
    window: ForecastWindow

    @property
    def is_predictable(self) -> bool:
        return self.status != STATUS_CANNOT_PREDICT

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit": self.unit,
            "current_stock": self.current_stock,
            "consumed_quantity": self.consumed_quantity,
            "avg_daily_consumption": round(self.avg_daily_consumption, 2),
            "status": self.status,
            # JSON has no Infinity; CANNOT_PREDICT is carried by status
            "days_to_depletion": None if math.isinf(self.days_to_depletion) else int(self.days_to_depletion),
            "predicted_depletion_date": to_iso_date(self.predicted_depletion_date),
            "window_start": to_iso_date(self.window.start),
            "window_end": to_iso_date(self.window.end),
            "window_days": self.window.days,
        }


def _current_stock_by_product(product_ids: list[int]) -> dict[int, int]:
    if not product_ids:
        return {}
    rows = (
        db.session.query(Batch.product_id, func.coalesce(func.sum(Batch.current_quantity), 0))
        .filter(Batch.product_id.in_(product_ids))
        .group_by(Batch.product_id)
        .all()
    )
    return {pid: int(total or 0) for pid, total in rows}


def _consumption_by_product(product_ids: list[int], window: ForecastWindow) -> dict[int, int]:
    if not product_ids:
        return {}
    start, end = window.bounds()
    rows = (
        db.session.query(StockTransaction.product_id, func.coalesce(func.sum(StockTransaction.quantity), 0))
        .filter(
            StockTransaction.product_id.in_(product_ids),
            StockTransaction.type == TransactionType.OUT,
            StockTransaction.is_correction_increase.is_(False),
            StockTransaction.timestamp >= start,
            StockTransaction.timestamp <= end,
        )
        .group_by(StockTransaction.product_id)
        .all()
    )
    return {pid: int(total or 0) for pid, total in rows}


def _build_forecast(product: Product, *, stock: int, consumed: int, window: ForecastWindow, today: date) -> DepletionForecast:
    avg = consumed / window.days

    if stock <= 0:
        status, days, when = STATUS_ALREADY_DEPLETED, 0, today
    elif avg <= 0:
        status, days, when = STATUS_CANNOT_PREDICT, math.inf, None
    else:
        days = round_half_up(stock / avg)
        status, when = STATUS_PREDICTED, today + timedelta(days=days)

    return DepletionForecast(
        product_id=product.id,
        product_name=product.name,
        unit=product.unit,
        current_stock=stock,
        consumed_quantity=consumed,
        avg_daily_consumption=avg,
        status=status,
        days_to_depletion=days,
        predicted_depletion_date=when,
        window=window,
    )


def get_depletion_forecast(
    product_id: int,
    *,
    window: ForecastWindow | None = None,
    today: date | None = None,
) -> DepletionForecast:
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"product {product_id} not found")

    today = today or utctoday()
    window = window or default_window(today)

    stock = _current_stock_by_product([product.id]).get(product.id, 0)
    consumed = _consumption_by_product([product.id], window).get(product.id, 0)
    return _build_forecast(product, stock=stock, consumed=consumed, window=window, today=today)


@lru_cache(maxsize=1)
def _collator() -> Collator:
    # Loads the Unicode collation table once per process
    return Collator()


def _name_sort_key(name: str) -> tuple:
    """Unicode collation order: accents and case only break ties between equal letters."""
    return _collator().sort_key(name or "")


def rank_depletion(
    *,
    window: ForecastWindow | None = None,
    today: date | None = None,
) -> list[DepletionForecast]:
    """
    Forecasts for every active product, soonest depletion first.

    Unpredictable products sort last; ties are broken by collated name, then id.
    """
    today = today or utctoday()
    window = window or default_window(today)

    products = db.session.query(Product).filter(Product.is_archived.is_(False)).all()
    ids = [p.id for p in products]
    stock = _current_stock_by_product(ids)
    consumed = _consumption_by_product(ids, window)

    forecasts = [
        _build_forecast(p, stock=stock.get(p.id, 0), consumed=consumed.get(p.id, 0), window=window, today=today)
        for p in products
    ]
    forecasts.sort(key=lambda f: (
        math.isinf(f.days_to_depletion),
        f.days_to_depletion,
        _name_sort_key(f.product_name),
        f.product_id,
    ))
    return forecasts


def get_recent_outflow_value(*, days: int = 7, now: datetime | None = None) -> int:
    """
    Cost (cents) of consumption over the last `days` calendar days, today included.

    Valued at each transaction's own unit cost snapshot. Correction
    increases are not consumption and are excluded.
    """
    if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
        raise ValidationError("days must be a positive integer")
    now = now or utcnow()
    start = start_of_day(now.date() - timedelta(days=days - 1))

    total = (
        db.session.query(
            func.coalesce(
                func.sum(StockTransaction.quantity * func.coalesce(StockTransaction.unit_cost_cents_at_transaction, 0)),
                0,
            )
        )
        .filter(
            StockTransaction.type == TransactionType.OUT,
            StockTransaction.is_correction_increase.is_(False),
            StockTransaction.timestamp >= start,
            StockTransaction.timestamp <= now,
        )
        .scalar()
    )
    return int(total or 0)
