# Overview: Daily stock report; the day's receipts and outflows next to current stock levels.

from __future__ import annotations

from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..models import Batch, Product, StockTransaction, TransactionType
from stockledger.time_utils import end_of_day, start_of_day, to_iso_date, utctoday


def _day_transactions(day: date, tx_type: TransactionType) -> list[StockTransaction]:
    return (
        StockTransaction.query
        .filter(
            StockTransaction.type == tx_type,
            StockTransaction.timestamp >= start_of_day(day),
            StockTransaction.timestamp <= end_of_day(day),
        )
        .order_by(StockTransaction.timestamp.asc(), StockTransaction.id.asc())
        .all()
    )


def daily_report(*, day: date | None = None) -> dict:
    """
    Stock activity for one calendar day.

    stock_levels are current levels (not as of `day`); use the history
    service for past levels.
    """
    day = day or utctoday()

    inbound = _day_transactions(day, TransactionType.IN)
    outbound = _day_transactions(day, TransactionType.OUT)

    levels_q = (
        db.session.query(
            Product,
            func.coalesce(func.sum(Batch.current_quantity), 0).label("qty"),
            func.coalesce(func.sum(Batch.current_quantity * Batch.unit_cost_cents), 0).label("value"),
        )
        .outerjoin(Batch, Batch.product_id == Product.id)
        .filter(Product.is_archived.is_(False))
        .group_by(Product.id)
        .order_by(Product.name.asc(), Product.id.asc())
    )

    stock_levels = []
    for product, qty, value in levels_q.all():
        stock_levels.append({
            "product_id": product.id,
            "product_name": product.name,
            "unit": product.unit,
            "total_quantity": int(qty or 0),
            "total_value_cents": int(value or 0),
            "low_stock": int(qty or 0) < product.low_stock_threshold,
        })

    consumed = [t for t in outbound if t.is_consumption]

    return {
        "date": to_iso_date(day),
        "inbound": [t.to_dict() for t in inbound],
        "outbound": [t.to_dict() for t in outbound],
        "stock_levels": stock_levels,
        "summary": {
            "inbound_count": len(inbound),
            "inbound_quantity": sum(t.quantity for t in inbound),
            "inbound_value_cents": sum(t.quantity * (t.unit_cost_cents_at_transaction or 0) for t in inbound),
            "outbound_count": len(outbound),
            "consumed_quantity": sum(t.quantity for t in consumed),
            "consumed_value_cents": sum(t.quantity * (t.unit_cost_cents_at_transaction or 0) for t in consumed),
            "corrected_quantity": sum(t.quantity for t in outbound if t.is_correction_increase),
        },
    }
