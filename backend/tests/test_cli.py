# Overview: Pytest coverage for the flask CLI commands and their exit codes.

from datetime import date

from stockledger.services import batch_service


def test_stock_show_prints_batches(db_session, app, milk):
    batch_service.receive_batch(
        product_id=milk.id, initial_quantity=10, unit_cost_cents=200, production_date=date(2024, 5, 1)
    )

    result = app.test_cli_runner().invoke(args=["stock", "show", str(milk.id)])

    assert result.exit_code == 0
    assert "Milk: 10 L" in result.output


def test_stock_show_unknown_product_fails(db_session, app):
    result = app.test_cli_runner().invoke(args=["stock", "show", "404"])

    assert result.exit_code == 1
    assert "FAIL Product ID 404 not found" in result.output


def test_stock_forecast_rejects_bad_window(db_session, app, milk):
    result = app.test_cli_runner().invoke(args=["stock", "forecast", "--days=-1"])

    assert result.exit_code == 1
    assert "FAIL Error: forecast window days must be a positive integer" in result.output


def test_stock_forecast_lists_products(db_session, app, milk):
    result = app.test_cli_runner().invoke(args=["stock", "forecast", "--days", "7"])

    assert result.exit_code == 0
    assert "Milk" in result.output


def test_ledger_verify_passes_on_clean_store(db_session, app, milk):
    batch_service.receive_batch(
        product_id=milk.id, initial_quantity=4, unit_cost_cents=150, production_date=date(2024, 5, 1)
    )

    result = app.test_cli_runner().invoke(args=["ledger", "verify"])

    assert result.exit_code == 0
    assert "PASS" in result.output
