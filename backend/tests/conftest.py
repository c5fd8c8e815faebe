"""
Pytest fixtures for stock ledger tests.

Provides the in-memory test database, two tenants (A and B) with users,
counters and items, and request headers for the API client.
"""

import pytest
from stockledger import create_app
from stockledger.extensions import db
from stockledger.models import Counter, Item, Tenant, User


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
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
def tenant_a(db_session):
    """Tenant A (first shop)."""
    tenant = Tenant(name="Tenant A - Corner Bar", code="BAR", timezone="UTC")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B (second shop)."""
    tenant = Tenant(name="Tenant B - Beta Lounge", code="LNG", timezone="UTC")
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def user_a(db_session, tenant_a):
    user = User(tenant_id=tenant_a.id, username="manager_a")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def user_b(db_session, tenant_b):
    user = User(tenant_id=tenant_b.id, username="manager_b")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def main_bar(db_session, tenant_a):
    counter = Counter(tenant_id=tenant_a.id, name="Main Bar")
    db_session.add(counter)
    db_session.commit()
    return counter


@pytest.fixture(scope='function')
def lounge(db_session, tenant_a):
    counter = Counter(tenant_id=tenant_a.id, name="Lounge")
    db_session.add(counter)
    db_session.commit()
    return counter


@pytest.fixture(scope='function')
def counter_b(db_session, tenant_b):
    counter = Counter(tenant_id=tenant_b.id, name="Main Bar")
    db_session.add(counter)
    db_session.commit()
    return counter


@pytest.fixture(scope='function')
def beer(db_session, tenant_a):
    """Tusker 500ml: cost 180.00, selling 250.00, reorder at 24."""
    item = Item(
        tenant_id=tenant_a.id,
        code="TSK500",
        name="Tusker 500ml",
        unit="BTL",
        cost_price_cents=18000,
        selling_price_cents=25000,
        reorder_level=24,
        category="BEER",
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def soda(db_session, tenant_a):
    """Coke 300ml: cost 40.00, selling 60.00, reorder at 10."""
    item = Item(
        tenant_id=tenant_a.id,
        code="CK300",
        name="Coke 300ml",
        cost_price_cents=4000,
        selling_price_cents=6000,
        reorder_level=10,
        category="SODA",
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def item_b(db_session, tenant_b):
    item = Item(
        tenant_id=tenant_b.id,
        code="TSK500",
        name="Tusker 500ml",
        cost_price_cents=17000,
        selling_price_cents=24000,
        reorder_level=12,
    )
    db_session.add(item)
    db_session.commit()
    return item


@pytest.fixture(scope='function')
def headers_a(tenant_a, user_a):
    return {"X-Tenant-ID": str(tenant_a.id), "X-User-ID": str(user_a.id)}


@pytest.fixture(scope='function')
def headers_b(tenant_b, user_b):
    return {"X-Tenant-ID": str(tenant_b.id), "X-User-ID": str(user_b.id)}
