"""
Pytest fixtures for stockcore backend tests.

Provides an in-memory database, a test client, catalog fixtures and the
identity headers the upstream gateway would forward.
"""

import pytest
from stockcore import create_app
from stockcore.extensions import db
from stockcore.actor import ActorContext
from stockcore.models import Product, Supplier, StockLedgerEntry
from stockcore.models.stock import CAUSE_OPENING_BALANCE
from stockcore.time_utils import utcnow


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_TXN_RETRY_BACKOFF': 0,
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
def admin():
    return ActorContext(user_id=1, role="admin")


@pytest.fixture(scope='function')
def cashier():
    return ActorContext(user_id=2, role="cashier")


def make_product(session, *, sku, quantity=0, selling_price_cents=1000, purchase_price_cents=600, **extra):
    """
    Insert a product whose opening quantity is booked in the ledger, the way
    catalog_service.create_product does, so ledger audits stay consistent.
    """
    product = Product(
        sku=sku,
        name=extra.pop("name", f"Product {sku}"),
        selling_price_cents=selling_price_cents,
        purchase_price_cents=purchase_price_cents,
        quantity=quantity,
        **extra,
    )
    session.add(product)
    session.flush()
    if quantity:
        session.add(StockLedgerEntry(
            product_id=product.id,
            quantity_delta=quantity,
            balance_after=quantity,
            cause=CAUSE_OPENING_BALANCE,
            reference=sku,
            occurred_at=utcnow(),
        ))
    session.commit()
    return product


@pytest.fixture(scope='function')
def product_a(db_session):
    """Product with 10 units at 10.00."""
    return make_product(db_session, sku="PROD-A-001", quantity=10, selling_price_cents=1000)


@pytest.fixture(scope='function')
def product_b(db_session):
    """Product with 2 units at 25.00."""
    return make_product(db_session, sku="PROD-B-001", quantity=2, selling_price_cents=2500)


@pytest.fixture(scope='function')
def supplier(db_session):
    s = Supplier(name="Acme Wholesale", contact_person="Dana", email="orders@acme.test")
    db_session.add(s)
    db_session.commit()
    return s


def role_headers(role: str, user_id: int = 1) -> dict:
    """Helper to create the identity headers forwarded by the gateway."""
    return {'X-User-Id': str(user_id), 'X-User-Role': role}


@pytest.fixture
def admin_headers():
    return role_headers("admin", user_id=1)


@pytest.fixture
def manager_headers():
    return role_headers("manager", user_id=3)


@pytest.fixture
def cashier_headers():
    return role_headers("cashier", user_id=2)


@pytest.fixture
def inventory_headers():
    return role_headers("inventory", user_id=4)
