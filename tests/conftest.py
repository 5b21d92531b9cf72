"""
Shared pytest fixtures.

The `app` fixture keeps one application context pushed for the whole test,
so fixtures, services and test-client requests share a single session on
the in-memory database.
"""
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import jwt
import pytest

from posrewards import create_app
from posrewards.extensions import db
from posrewards.models import (
    StoreInfo,
    Customer,
    Category,
    Product,
    Promotion,
    Order,
    LoyaltySettings,
)
from posrewards.utils.clock import utcnow


TEST_AUTH_SECRET = 'test-auth-secret'


@pytest.fixture
def app():
    """Create application for testing."""
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def cli_runner(app):
    return app.test_cli_runner()


def make_token(user_id: str, secret: str = TEST_AUTH_SECRET, expires_in: int = 3600) -> str:
    payload = {
        'sub': user_id,
        'exp': datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, secret, algorithm='HS256')


@pytest.fixture
def sample_store(app):
    store = StoreInfo(
        user_id='user_test_store',
        name='Corner Coffee',
        email='owner@cornercoffee.test',
        currency_code='USD',
        timezone='UTC',
    )
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture
def other_store(app):
    store = StoreInfo(user_id='user_other_store', name='Other Shop', currency_code='USD', timezone='UTC')
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture
def auth_headers(sample_store):
    """Bearer token for the owner of sample_store."""
    return {
        'Authorization': f'Bearer {make_token(sample_store.user_id)}',
        'Content-Type': 'application/json',
    }


@pytest.fixture
def token_factory(app):
    return make_token


@pytest.fixture
def auth_headers_for(app):
    """Build bearer headers for any store's owner."""
    def _headers(store):
        return {
            'Authorization': f'Bearer {make_token(store.user_id)}',
            'Content-Type': 'application/json',
        }
    return _headers


@pytest.fixture
def sample_customer(sample_store):
    customer = Customer(
        store_id=sample_store.id,
        name='Ada Lovelace',
        email=f'ada-{uuid.uuid4().hex[:6]}@example.com',
    )
    db.session.add(customer)
    db.session.commit()
    return customer


@pytest.fixture
def sample_products(sample_store):
    """
    Two categories and four products:
        coffee 4.50 (drinks), tea 3.00 (drinks), sandwich 8.00 (food),
        speaker 100.00 (no category)
    """
    drinks = Category(store_id=sample_store.id, name='Drinks')
    food = Category(store_id=sample_store.id, name='Food')
    db.session.add_all([drinks, food])
    db.session.flush()

    products = {
        'coffee': Product(store_id=sample_store.id, category_id=drinks.id, name='Coffee', price=Decimal('4.50')),
        'tea': Product(store_id=sample_store.id, category_id=drinks.id, name='Tea', price=Decimal('3.00')),
        'sandwich': Product(store_id=sample_store.id, category_id=food.id, name='Sandwich', price=Decimal('8.00')),
        'speaker': Product(store_id=sample_store.id, category_id=None, name='Speaker', price=Decimal('100.00')),
    }
    db.session.add_all(products.values())
    db.session.commit()
    products['drinks_category'] = drinks
    products['food_category'] = food
    return products


@pytest.fixture
def loyalty_settings(sample_store):
    """1 point per dollar, 1 cent per point, 10 point minimum, 12 month expiry."""
    settings = LoyaltySettings(
        store_id=sample_store.id,
        points_per_dollar=Decimal('1.00'),
        redemption_rate=Decimal('0.01'),
        minimum_redemption=10,
        points_expiry_months=12,
        enabled=True,
    )
    db.session.add(settings)
    db.session.commit()
    return settings


@pytest.fixture
def make_order(sample_store):
    """Factory for bare orders to hang ledger entries and usage on."""
    counter = {'n': 0}

    def _make(total='50.00', customer_id=None, promotion_id=None, discount='0', store_id=None):
        counter['n'] += 1
        total = Decimal(total)
        discount = Decimal(discount)
        order = Order(
            store_id=store_id or sample_store.id,
            order_number=f'TEST-{counter["n"]:04d}',
            subtotal=total + discount,
            discount_amount=discount,
            total=total,
            promotion_id=promotion_id,
            customer_id=customer_id,
            payment_method='cash',
            status='completed',
        )
        db.session.add(order)
        db.session.commit()
        return order

    return _make


@pytest.fixture
def make_promotion(sample_store):
    """Factory for promotions active from yesterday to next month."""

    def _make(codes=('SAVE10',), store_id=None, **fields):
        now = utcnow()
        values = {
            'name': 'Test Promotion',
            'type': 'percentage',
            'discount_value': Decimal('10'),
            'start_date': now - timedelta(days=1),
            'end_date': now + timedelta(days=30),
            'is_active': True,
            'applicable_to_categories': [],
            'applicable_to_products': [],
        }
        values.update(fields)
        promotion = Promotion(store_id=store_id or sample_store.id, **values)
        promotion.set_codes(list(codes))
        db.session.add(promotion)
        db.session.commit()
        return promotion

    return _make
