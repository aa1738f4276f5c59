# Overview: Pytest coverage for historical stock reconstruction.

from datetime import date, datetime, timedelta

import pytest

from stockledger.services import batch_service, history_service, stock_service
from stockledger.services.history_service import MAX_REPORT_POINTS, TimeScale, report_dates
from stockledger.time_utils import end_of_day, utcnow
from stockledger.validation import ProductNotFound, ValidationError
from conftest import days_ago


class TestReportDates:
    NOW = datetime(2024, 5, 15, 10, 30)

    def test_last_7_days(self):
        points = report_dates(TimeScale.LAST_7_DAYS_DAILY, now=self.NOW)
        assert len(points) == 7
        assert points[0] == end_of_day(date(2024, 5, 9))
        assert points[-1] == end_of_day(date(2024, 5, 15))

    def test_last_30_days(self):
        points = report_dates("LAST_30_DAYS_DAILY", now=self.NOW)
        assert len(points) == 30
        assert points == sorted(set(points))

    def test_weekly_starts_on_monday_three_months_back(self):
        points = report_dates(TimeScale.LAST_3_MONTHS_WEEKLY, now=self.NOW)
        assert points[0] == end_of_day(date(2024, 2, 12))
        assert points[0].date().weekday() == 0
        assert len(points) == 14
        assert all((b - a) == timedelta(days=7) for a, b in zip(points, points[1:]))
        assert points[-1] <= end_of_day(self.NOW.date())
        assert len(points) <= MAX_REPORT_POINTS

    def test_monthly_first_of_month(self):
        points = report_dates(TimeScale.LAST_12_MONTHS_MONTHLY, now=self.NOW)
        assert len(points) == 12
        assert points[0] == end_of_day(date(2023, 6, 1))
        assert points[-1] == end_of_day(date(2024, 5, 1))
        assert all(p.day == 1 for p in points)

    def test_month_end_clamping(self):
        points = report_dates(TimeScale.LAST_3_MONTHS_WEEKLY, now=datetime(2024, 5, 31, 8))
        # three months before May 31 is Feb 29 (2024), a Thursday
        assert points[0] == end_of_day(date(2024, 2, 26))

    def test_unknown_scale(self):
        with pytest.raises(ValidationError):
            report_dates("HOURLY", now=self.NOW)


class TestStockAsOf:

    def test_replay_follows_ledger(self, db_session, cups):
        t0 = days_ago(10)
        batch = batch_service.receive_batch(
            product_id=cups.id, initial_quantity=10, unit_cost_cents=50, received_at=t0
        )
        batch_service.record_movement(
            product_id=cups.id, batch_id=batch.id, quantity=-4, reason="SALE", occurred_at=t0 + timedelta(days=2)
        )
        batch_service.record_movement(
            product_id=cups.id, batch_id=batch.id, quantity=1, reason="SALE", occurred_at=t0 + timedelta(days=3)
        )

        def at(dt):
            r = history_service.stock_as_of(cups.id, dt)
            return r["total_quantity"], r["total_value_cents"]

        assert at(t0 - timedelta(seconds=1)) == (0, 0)
        assert at(t0) == (10, 500)
        assert at(t0 + timedelta(days=2, hours=1)) == (6, 300)
        assert at(t0 + timedelta(days=3, hours=1)) == (7, 350)

    def test_replay_at_now_matches_live_stock(self, db_session, cups):
        b1 = batch_service.receive_batch(product_id=cups.id, initial_quantity=20, unit_cost_cents=10, received_at=days_ago(6))
        b2 = batch_service.receive_batch(product_id=cups.id, initial_quantity=5, unit_cost_cents=30, received_at=days_ago(4))
        batch_service.record_movement(product_id=cups.id, batch_id=b1.id, quantity=-7, reason="SALE", occurred_at=days_ago(3))
        batch_service.record_movement(product_id=cups.id, batch_id=b2.id, quantity=-5, reason="SPOILAGE", occurred_at=days_ago(2))
        batch_service.record_movement(product_id=cups.id, batch_id=b1.id, quantity=2, reason="SALE", occurred_at=days_ago(1))

        live = stock_service.get_stock_details(cups.id)
        replay = history_service.stock_as_of(cups.id, utcnow())

        assert replay["total_quantity"] == live["total_quantity"] == 15
        assert replay["total_value_cents"] == live["total_value_cents"] == 150

    def test_expired_batch_drops_out(self, db_session, milk):
        production = (utcnow() - timedelta(days=20)).date()
        expiry = production + timedelta(days=10)
        batch_service.receive_batch(
            product_id=milk.id,
            initial_quantity=8,
            unit_cost_cents=100,
            production_date=production,
            received_at=days_ago(19),
        )

        before_expiry = history_service.stock_as_of(milk.id, end_of_day(expiry - timedelta(days=1)))
        on_expiry_day = history_service.stock_as_of(milk.id, end_of_day(expiry))

        assert before_expiry["total_quantity"] == 8
        assert on_expiry_day["total_quantity"] == 0
        assert on_expiry_day["total_value_cents"] == 0

    def test_batch_received_later_is_skipped(self, db_session, cups):
        batch_service.receive_batch(product_id=cups.id, initial_quantity=3, unit_cost_cents=10, received_at=days_ago(5))
        batch_service.receive_batch(product_id=cups.id, initial_quantity=4, unit_cost_cents=10, received_at=days_ago(1))

        assert history_service.stock_as_of(cups.id, days_ago(3))["total_quantity"] == 3

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            history_service.stock_as_of(42, utcnow())


class TestHistoricalSeries:

    def test_daily_series(self, db_session, cups):
        batch = batch_service.receive_batch(
            product_id=cups.id, initial_quantity=10, unit_cost_cents=100, received_at=days_ago(3)
        )
        batch_service.record_movement(
            product_id=cups.id, batch_id=batch.id, quantity=-6, reason="SALE", occurred_at=days_ago(1)
        )

        series = history_service.get_historical_series(cups.id, "LAST_7_DAYS_DAILY")
        qty = [p["total_quantity"] for p in series["points"]]

        assert series["time_scale"] == "LAST_7_DAYS_DAILY"
        assert len(qty) == 7
        assert qty[:3] == [0, 0, 0]
        assert qty[-1] == 4
        assert qty[-3] == 10
        assert series["points"][-1]["total_value_cents"] == 400
