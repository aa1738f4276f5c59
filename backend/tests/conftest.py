"""
Pytest fixtures for stockledger backend tests.

Provides test database setup, catalog fixtures, and test client.
"""

from datetime import timedelta

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.services import products_service
from stockledger.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
        'FORECAST_WINDOW_DAYS': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def milk(db_session):
    """INGREDIENT product: 10 day shelf life, low stock below 5."""
    return products_service.create_product(
        name="Milk",
        category="INGREDIENT",
        unit="L",
        shelf_life_days=10,
        low_stock_threshold=5,
    )


@pytest.fixture(scope='function')
def cups(db_session):
    """NON_INGREDIENT product without shelf life."""
    return products_service.create_product(
        name="Paper Cups",
        category="NON_INGREDIENT",
        unit="pcs",
        low_stock_threshold=100,
    )


def days_ago(days: float, *, hours: float = 0):
    """UTC-naive datetime `days` (plus `hours`) before now."""
    return utcnow() - timedelta(days=days, hours=hours)
