# Overview: Flask API routes for stock levels, valuation history and depletion forecasts.

from flask import Blueprint, request

from ..services import forecast_service, history_service, stock_service
from ..services.forecast_service import ForecastWindow
from ..validation import ValidationError
from .errors import error_response

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _forecast_window_arg():
    """
    ?window=last_full_week (default when omitted, unless FORECAST_WINDOW_DAYS is set)
    ?window=rolling&days=N
    """
    kind = (request.args.get("window") or "").strip().lower()
    if not kind:
        return None
    if kind == "last_full_week":
        return ForecastWindow.last_full_week()
    if kind == "rolling":
        days = request.args.get("days", type=int)
        if days is None:
            raise ValidationError("days is required for a rolling window")
        return ForecastWindow.rolling(days)
    raise ValidationError("window must be last_full_week or rolling")


@stock_bp.get("/overview")
def stock_overview_route():
    try:
        return stock_service.get_stock_overview()
    except Exception as e:
        return error_response(e)


@stock_bp.get("/forecast")
def rank_forecast_route():
    try:
        ranked = forecast_service.rank_depletion(window=_forecast_window_arg())
    except Exception as e:
        return error_response(e)
    return {"items": [f.to_dict() for f in ranked], "count": len(ranked)}


@stock_bp.get("/<int:product_id>")
def stock_details_route(product_id: int):
    include_depleted = request.args.get("include_depleted", "false").lower() in {"1", "true", "yes"}
    try:
        return stock_service.get_stock_details(product_id, include_depleted=include_depleted)
    except Exception as e:
        return error_response(e)


@stock_bp.get("/<int:product_id>/history")
def stock_history_route(product_id: int):
    """Query params: time_scale (default LAST_30_DAYS_DAILY)."""
    time_scale = request.args.get("time_scale") or history_service.TimeScale.LAST_30_DAYS_DAILY
    try:
        return history_service.get_historical_series(product_id, time_scale)
    except Exception as e:
        return error_response(e)


@stock_bp.get("/<int:product_id>/forecast")
def stock_forecast_route(product_id: int):
    try:
        forecast = forecast_service.get_depletion_forecast(product_id, window=_forecast_window_arg())
    except Exception as e:
        return error_response(e)
    return forecast.to_dict()
