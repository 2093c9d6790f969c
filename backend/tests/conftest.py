"""
Pytest fixtures for the inventory engine tests.

Provides an app on in-memory SQLite, a per-test clean database and a test
client.
"""

import pytest
from locksmith import create_app
from locksmith.extensions import db
from locksmith.services import inventory_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'DEFAULT_LOW_STOCK_THRESHOLD': 3,
        'CHANGE_FEED_QUEUE_SIZE': 50,
        'LOG_JSON': False,
        'LOG_LEVEL': 'WARNING',
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
        engine = app.extensions.pop('inventory_engine', None)
        if engine is not None:
            engine.close()

        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def feed(app):
    return app.extensions['change_feed']


@pytest.fixture(scope='function')
def make_item(db_session):
    """Factory: make_item(sku="A", quantity=5, cost_cents=100, ...) -> InventoryItem."""
    counter = {'n': 0}

    def _make(**overrides):
        counter['n'] += 1
        payload = {
            'sku': f"SKU-{counter['n']:03d}",
            'quantity': 5,
            'cost_cents': 1000,
        }
        payload.update(overrides)
        return inventory_service.create_item(payload)

    return _make
