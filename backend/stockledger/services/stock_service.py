# Overview: Read-only stock aggregation; per-product totals at batch cost and the dashboard overview.

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Batch, Product
from ..validation import ProductNotFound
from . import forecast_service, settings_service
from stockledger.time_utils import end_of_day, to_iso_date, utctoday


def _batch_row(b: Batch, today: date) -> dict:
    row = b.to_dict()
    row["days_to_expiry"] = (b.expiry_date - today).days if b.expiry_date else None
    return row


def get_stock_details(product_id: int, *, include_depleted: bool = False, today: date | None = None) -> dict:
    """
    Current quantity and value of one product.

    Value is layered: each batch counts at its own unit cost, never at an
    average. Pure read; no side effects.
    """
    product = db.session.get(Product, product_id)
    if product is None:
        raise ProductNotFound(f"product {product_id} not found")

    today = today or utctoday()

    q = Batch.query.filter(Batch.product_id == product.id)
    if not include_depleted:
        q = q.filter(Batch.current_quantity > 0)
    batches = q.order_by(Batch.created_at.asc(), Batch.id.asc()).all()

    total_quantity = sum(b.current_quantity for b in batches)
    total_value_cents = sum(b.current_quantity * b.unit_cost_cents for b in batches)

    return {
        "product_id": product.id,
        "product_name": product.name,
        "unit": product.unit,
        "total_quantity": total_quantity,
        "total_value_cents": total_value_cents,
        "batches": [_batch_row(b, today) for b in batches],
    }


def get_stock_overview(*, today: date | None = None) -> dict:
    """
    Dashboard view over every active product.

    Flags per product:
      low_stock          total_quantity < low_stock_threshold
      nearing_expiry     a batch with stock expires within expiry_warning_days (0..N days)
      expired            a batch with stock is past its expiry date
      depletion_warning  forecast days_to_depletion <= depletion_warning_days
    """
    outflow_until = end_of_day(today) if today else None
    today = today or utctoday()
    settings = settings_service.get_settings()
    expiry_days = settings[settings_service.KEY_EXPIRY_WARNING_DAYS]
    depletion_days = settings[settings_service.KEY_DEPLETION_WARNING_DAYS]

    products = (
        db.session.query(Product)
        .filter(Product.is_archived.is_(False))
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )
    forecasts = {f.product_id: f for f in forecast_service.rank_depletion(today=today)}

    batches_by_product: dict[int, list[Batch]] = {p.id: [] for p in products}
    if products:
        for b in (
            Batch.query
            .filter(Batch.product_id.in_(list(batches_by_product)), Batch.current_quantity > 0)
            .order_by(Batch.created_at.asc(), Batch.id.asc())
            .all()
        ):
            batches_by_product[b.product_id].append(b)

    items = []
    for p in products:
        batches = batches_by_product[p.id]
        qty = sum(b.current_quantity for b in batches)
        value = sum(b.current_quantity * b.unit_cost_cents for b in batches)

        nearing, expired = [], []
        for b in batches:
            if b.expiry_date is None:
                continue
            days_left = (b.expiry_date - today).days
            if days_left < 0:
                expired.append({"batch_id": b.id, "expiry_date": to_iso_date(b.expiry_date), "quantity": b.current_quantity})
            elif days_left <= expiry_days:
                nearing.append({
                    "batch_id": b.id,
                    "expiry_date": to_iso_date(b.expiry_date),
                    "days_to_expiry": days_left,
                    "quantity": b.current_quantity,
                })

        forecast = forecasts.get(p.id)
        depletion_warning = bool(
            forecast is not None
            and forecast.is_predictable
            and forecast.days_to_depletion <= depletion_days
        )

        items.append({
            "product_id": p.id,
            "product_name": p.name,
            "category": p.category.value,
            "unit": p.unit,
            "total_quantity": qty,
            "total_value_cents": value,
            "low_stock_threshold": p.low_stock_threshold,
            "low_stock": qty < p.low_stock_threshold,
            "nearing_expiry": nearing,
            "expired": expired,
            "depletion_warning": depletion_warning,
            "forecast": forecast.to_dict() if forecast is not None else None,
        })

    return {
        "as_of": to_iso_date(today),
        "settings": settings,
        "total_value_cents": sum(i["total_value_cents"] for i in items),
        "recent_outflow_value_cents": forecast_service.get_recent_outflow_value(days=7, now=outflow_until),
        "low_stock_count": sum(1 for i in items if i["low_stock"]),
        "nearing_expiry_count": sum(1 for i in items if i["nearing_expiry"]),
        "depletion_warning_count": sum(1 for i in items if i["depletion_warning"]),
        "products": items,
    }
