"""
Pytest configuration and fixtures for the fulfillment engine
"""
import itertools
import os
from datetime import date
from decimal import Decimal

# Console logging only while testing
os.environ.setdefault('LOG_TO_FILE', 'false')
os.environ.setdefault('SECRET_KEY', 'test-secret-key')

import pytest
from flask import g

from fulfil import create_app
from fulfil import db as _db
from fulfil.business.documents.delivery_factory import DeliveryFactory
from fulfil.business.documents.order_factory import OrderFactory
from fulfil.business.documents.purchase_order_factory import PurchaseOrderFactory
from fulfil.business.ledger.idempotency import IdempotencyKeys
from fulfil.data.catalog.item import Item

TEST_CONFIG = {
    'TESTING': True,
    'SECRET_KEY': 'test-secret-key',
    'SQLALCHEMY_DATABASE_URI': 'sqlite://',
    'RATELIMIT_ENABLED': False,
    'LOG_TO_FILE': False,
}

CUSTOMER = 'cust-1'


@pytest.fixture(scope='session')
def app():
    """Create Flask application for testing"""
    app = create_app(TEST_CONFIG)

    # Requests made inside the shared app context below share its ``g``; drop
    # Flask-Login's cached user so each request re-reads the caller headers.
    @app.teardown_request
    def _reset_login_user(exc):
        g.pop('_login_user', None)

    with app.app_context():
        yield app


@pytest.fixture(autouse=True)
def db(app):
    """Fresh schema for every test"""
    _db.create_all()
    yield _db
    _db.session.remove()
    _db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create Flask test client"""
    return app.test_client()


@pytest.fixture
def user_headers():
    return {'X-User-Id': 'clerk-7', 'X-User-Role': 'user'}


@pytest.fixture
def admin_headers():
    return {'X-User-Id': 'admin-1', 'X-User-Role': 'admin'}


_item_names = itertools.count(1)


@pytest.fixture
def make_item():
    def _make(name=None, msrp='100.00', min_price='80.00'):
        item = Item(name=name or f"Item {next(_item_names)}", version='1',
                    msrp=Decimal(msrp), min_price=Decimal(min_price))
        _db.session.add(item)
        _db.session.commit()
        return item
    return _make


@pytest.fixture
def item(make_item):
    return make_item('Field Sensor')


@pytest.fixture
def make_po():
    """Create and commit a purchase order; lines are (item, quantity, price) tuples"""
    def _make(lines, customer_id=CUSTOMER, start_date=None):
        header = {'customer_id': customer_id, 'start_date': start_date}
        line_items = [
            {'item_id': item.id, 'quantity': quantity, 'price_per_unit': Decimal(price)}
            for item, quantity, price in lines
        ]
        po, _ = PurchaseOrderFactory().create(header, line_items, actor_id='tester')
        _db.session.commit()
        return po
    return _make


@pytest.fixture
def make_order():
    """Create and commit an order; lines are (item, quantity) or (item, quantity, price) tuples"""
    def _make(lines, customer_id=CUSTOMER, allocate_from_po=True, keys=None):
        line_items = []
        for line in lines:
            line_data = {'item_id': line[0].id, 'quantity': line[1]}
            if len(line) > 2:
                line_data['price_per_unit'] = Decimal(line[2])
            line_items.append(line_data)
        order, _ = OrderFactory().create(
            {'customer_id': customer_id}, line_items, allocate_from_po=allocate_from_po,
            keys=keys or IdempotencyKeys(), actor_id='tester',
        )
        _db.session.commit()
        return order
    return _make


@pytest.fixture
def make_delivery():
    """Create and commit a delivery; units are dicts with serial_number and order_line_item_id or item_id"""
    def _make(units, customer_id=CUSTOMER, ship_date=date(2026, 3, 1)):
        delivery, _ = DeliveryFactory().create(
            {'customer_id': customer_id, 'ship_date': ship_date}, units,
            keys=IdempotencyKeys(), actor_id='tester',
        )
        _db.session.commit()
        return delivery
    return _make
