# Overview: Pytest coverage for depletion forecasting and ranking.

import math
from datetime import date, datetime, timedelta

import pytest

from stockledger.services import batch_service, forecast_service, products_service
from stockledger.services.forecast_service import (
    STATUS_ALREADY_DEPLETED,
    STATUS_CANNOT_PREDICT,
    STATUS_PREDICTED,
    ForecastWindow,
    round_half_up,
)
from stockledger.time_utils import utcnow, utctoday
from stockledger.validation import ProductNotFound, ValidationError


def _window():
    return ForecastWindow.last_full_week(utctoday())


def _in_window(window, day_offset, hour=12):
    """A timestamp inside the window: window.start + day_offset days at `hour`:00."""
    return datetime.combine(window.start + timedelta(days=day_offset), datetime.min.time()) + timedelta(hours=hour)


def _stock_product(name, qty, *, window, received_days_before=3, cost=100):
    p = products_service.create_product(name=name, category="NON_INGREDIENT", unit="pcs")
    received = datetime.combine(window.start - timedelta(days=received_days_before), datetime.min.time())
    batch = batch_service.receive_batch(
        product_id=p.id, initial_quantity=qty, unit_cost_cents=cost, received_at=received
    )
    return p, batch


def _sell(product, batch, qty, when, reason="SALE"):
    batch_service.record_movement(product_id=product.id, batch_id=batch.id, quantity=-qty, reason=reason, occurred_at=when)


class TestForecastWindow:

    def test_last_full_week_is_previous_monday_to_sunday(self):
        w = ForecastWindow.last_full_week(date(2024, 5, 15))  # Wednesday
        assert w.start == date(2024, 5, 6)
        assert w.end == date(2024, 5, 12)
        assert w.days == 7

    def test_last_full_week_on_monday(self):
        w = ForecastWindow.last_full_week(date(2024, 5, 13))
        assert w.start == date(2024, 5, 6)
        assert w.end == date(2024, 5, 12)

    def test_rolling_excludes_today(self):
        w = ForecastWindow.rolling(14, date(2024, 5, 15))
        assert w.start == date(2024, 5, 1)
        assert w.end == date(2024, 5, 14)
        assert w.days == 14

    @pytest.mark.parametrize("days", [0, -1, 1.5])
    def test_rolling_rejects_bad_days(self, days):
        with pytest.raises(ValidationError):
            ForecastWindow.rolling(days, date(2024, 5, 15))


class TestRounding:

    @pytest.mark.parametrize("value,expected", [(4.5, 5), (4.49, 4), (2.5, 3), (0.5, 1), (7.0, 7)])
    def test_half_up(self, value, expected):
        assert round_half_up(value) == expected


class TestDepletionForecast:

    def test_predicted(self, db_session):
        window = _window()
        p, batch = _stock_product("Beans", 23, window=window)
        for day in range(7):
            _sell(p, batch, 2, _in_window(window, day))

        f = forecast_service.get_depletion_forecast(p.id, window=window)

        assert f.current_stock == 9
        assert f.consumed_quantity == 14
        assert f.avg_daily_consumption == 2.0
        assert f.status == STATUS_PREDICTED
        assert f.days_to_depletion == 5
        assert f.predicted_depletion_date == utctoday() + timedelta(days=5)

    def test_cannot_predict_without_consumption(self, db_session):
        window = _window()
        p, _ = _stock_product("Salt", 10, window=window)

        f = forecast_service.get_depletion_forecast(p.id, window=window)

        assert f.status == STATUS_CANNOT_PREDICT
        assert math.isinf(f.days_to_depletion)
        assert f.predicted_depletion_date is None
        assert f.to_dict()["days_to_depletion"] is None

    def test_already_depleted(self, db_session):
        window = _window()
        p, batch = _stock_product("Lids", 4, window=window)
        _sell(p, batch, 4, _in_window(window, 1))

        f = forecast_service.get_depletion_forecast(p.id, window=window)

        assert f.status == STATUS_ALREADY_DEPLETED
        assert f.days_to_depletion == 0

    def test_never_received_counts_as_depleted(self, db_session):
        p = products_service.create_product(name="Straws", category="NON_INGREDIENT", unit="pcs")
        f = forecast_service.get_depletion_forecast(p.id, window=_window())
        assert f.status == STATUS_ALREADY_DEPLETED

    def test_corrections_are_not_consumption(self, db_session):
        window = _window()
        p, batch = _stock_product("Syrup", 10, window=window)
        _sell(p, batch, 3, _in_window(window, 0))
        batch_service.record_movement(
            product_id=p.id, batch_id=batch.id, quantity=2, reason="ADJUSTMENT_DECREASE",
            occurred_at=_in_window(window, 1),
        )

        f = forecast_service.get_depletion_forecast(p.id, window=window)

        assert f.current_stock == 9
        assert f.consumed_quantity == 3

    def test_outside_window_ignored(self, db_session):
        window = _window()
        p, batch = _stock_product("Tea", 50, window=window, received_days_before=10)
        _sell(p, batch, 20, _in_window(window, -2))
        _sell(p, batch, 7, _in_window(window, 6, hour=23))

        f = forecast_service.get_depletion_forecast(p.id, window=window)

        assert f.consumed_quantity == 7
        assert f.avg_daily_consumption == 1.0
        assert f.days_to_depletion == 23

    def test_all_outflow_reasons_count(self, db_session):
        window = _window()
        p, batch = _stock_product("Cocoa", 30, window=window)
        _sell(p, batch, 1, _in_window(window, 0), reason="SALE")
        _sell(p, batch, 2, _in_window(window, 1), reason="SPOILAGE")
        _sell(p, batch, 3, _in_window(window, 2), reason="INTERNAL_USE")
        _sell(p, batch, 1, _in_window(window, 3), reason="ADJUSTMENT_DECREASE")

        f = forecast_service.get_depletion_forecast(p.id, window=window)
        assert f.consumed_quantity == 7

    def test_default_window_is_last_full_week(self, db_session, app):
        p = products_service.create_product(name="Foil", category="NON_INGREDIENT", unit="roll")
        f = forecast_service.get_depletion_forecast(p.id)
        assert f.window == ForecastWindow.last_full_week(utctoday())

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            forecast_service.get_depletion_forecast(999)


class TestRanking:

    def test_order_depleted_soonest_unpredictable_last(self, db_session):
        window = _window()
        slow, slow_batch = _stock_product("Slow", 10, window=window)
        fast, fast_batch = _stock_product("Fast", 10, window=window)
        gone, gone_batch = _stock_product("Gone", 2, window=window)
        idle, _ = _stock_product("Idle", 10, window=window)

        _sell(slow, slow_batch, 7, _in_window(window, 2))   # avg 1 -> 3 left -> 3 days
        _sell(fast, fast_batch, 7, _in_window(window, 2))
        _sell(fast, fast_batch, 1, _in_window(window, 3))   # avg 8/7 -> 2 left -> 2 days
        _sell(gone, gone_batch, 2, _in_window(window, 2))

        ranked = forecast_service.rank_depletion(window=window)
        assert [f.product_name for f in ranked] == ["Gone", "Fast", "Slow", "Idle"]

    def test_ties_broken_by_name(self, db_session):
        window = _window()
        for name in ["banana", "Apple", "cherry"]:
            _stock_product(name, 5, window=window)

        ranked = forecast_service.rank_depletion(window=window)
        assert [f.product_name for f in ranked] == ["Apple", "banana", "cherry"]

    def test_name_ties_follow_unicode_collation(self, db_session):
        window = _window()
        for name in ["Zucchini", "Éclair", "apple"]:
            _stock_product(name, 5, window=window)

        ranked = forecast_service.rank_depletion(window=window)
        assert [f.product_name for f in ranked] == ["apple", "Éclair", "Zucchini"]

    def test_archived_products_excluded(self, db_session):
        window = _window()
        p, _ = _stock_product("Old", 5, window=window)
        products_service.archive_product(p.id)

        assert forecast_service.rank_depletion(window=window) == []


class TestRecentOutflowValue:

    def test_values_consumption_at_batch_cost(self, db_session):
        now = utcnow()
        cheap = products_service.create_product(name="Cheap", category="NON_INGREDIENT", unit="pcs")
        dear = products_service.create_product(name="Dear", category="NON_INGREDIENT", unit="pcs")
        b1 = batch_service.receive_batch(product_id=cheap.id, initial_quantity=10, unit_cost_cents=10, received_at=now - timedelta(days=10))
        b2 = batch_service.receive_batch(product_id=dear.id, initial_quantity=10, unit_cost_cents=500, received_at=now - timedelta(days=10))

        _sell(cheap, b1, 4, now - timedelta(days=2))
        _sell(dear, b2, 1, now - timedelta(days=1))
        _sell(dear, b2, 3, now - timedelta(days=9))  # outside 7 days
        batch_service.record_movement(
            product_id=cheap.id, batch_id=b1.id, quantity=1, reason="SALE", occurred_at=now - timedelta(days=1)
        )

        assert forecast_service.get_recent_outflow_value(days=7, now=now) == 4 * 10 + 1 * 500
