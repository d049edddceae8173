"""
Pytest fixtures for Shopbooks backend tests.

Provides the test application, a cleaned database per test, two tenant
shops, and ready-made customers, vendors and bank accounts.
"""

from decimal import Decimal

import pytest

from shopbooks import create_app
from shopbooks.extensions import db
from shopbooks.models import Branch, Shop
from shopbooks.services import bank_service, customer_service, vendor_service
from shopbooks.services.auth_service import create_user


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'BCRYPT_LOG_ROUNDS': 4,
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
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def shop_a(db_session):
    """Shop A (first tenant)."""
    shop = Shop(name="Shop A - Hardware", code="SHOPA", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def shop_b(db_session):
    """Shop B (second tenant)."""
    shop = Shop(name="Shop B - Textiles", code="SHOPB", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture(scope='function')
def branch_a(db_session, shop_a):
    branch = Branch(shop_id=shop_a.id, name="A Main")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def branch_a2(db_session, shop_a):
    branch = Branch(shop_id=shop_a.id, name="A Warehouse")
    db_session.add(branch)
    db_session.commit()
    return branch


@pytest.fixture(scope='function')
def owner_a(db_session, shop_a):
    """Shop-wide owner of Shop A."""
    return create_user(
        shop_id=shop_a.id,
        username="owner_a",
        email="owner_a@shopa.local",
        password=PASSWORD,
        role="shop_owner",
    )


@pytest.fixture(scope='function')
def owner_b(db_session, shop_b):
    """Shop-wide owner of Shop B."""
    return create_user(
        shop_id=shop_b.id,
        username="owner_b",
        email="owner_b@shopb.local",
        password=PASSWORD,
        role="shop_owner",
    )


@pytest.fixture(scope='function')
def customer_a(db_session, shop_a):
    return customer_service.create_customer(shop_id=shop_a.id, name="Ali Traders", phone_number="0300-1111111")


@pytest.fixture(scope='function')
def customer_b(db_session, shop_b):
    return customer_service.create_customer(shop_id=shop_b.id, name="Bilal Cloth House")


@pytest.fixture(scope='function')
def bank_a(db_session, shop_a):
    return bank_service.create_bank_account(
        shop_id=shop_a.id,
        bank_code="HBL-001",
        account_title="Shop A Current",
        initial_balance=Decimal("1000.00"),
    )


@pytest.fixture(scope='function')
def vendor_a(db_session, shop_a):
    return vendor_service.create_vendor(shop_id=shop_a.id, name="Acme Supplies")


def login(client, username, password=PASSWORD):
    """Log in through the API and return an Authorization header dict."""
    response = client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.get_json()
    return {"Authorization": f"Bearer {response.get_json()['token']}"}


@pytest.fixture(scope='function')
def auth_a(client, owner_a):
    return login(client, owner_a.username)


@pytest.fixture(scope='function')
def auth_b(client, owner_b):
    return login(client, owner_b.username)
