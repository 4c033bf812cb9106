import pytest
from decimal import Decimal

from jewelbox import create_app
from jewelbox.database import get_database, get_session
from jewelbox.models import Admin
from jewelbox.services import catalog_service, product_service, customer_service


@pytest.fixture(scope='function')
def app():
    """Create application instance with a fresh in-memory database."""
    app = create_app('config.TestConfig')
    with app.app_context():
        db = get_database()
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
        db.shutdown()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def session(app):
    """Create database session for testing."""
    session = get_session()
    yield session
    session.rollback()


@pytest.fixture(scope='function')
def admin(session):
    """Back-office admin with a known password."""
    admin = Admin(email='admin@jewelbox.test', name='Shop Admin')
    admin.set_password('password123')
    session.add(admin)
    session.commit()
    return admin


@pytest.fixture(scope='function')
def authenticated_client(client, admin):
    """Client logged in as the admin."""
    with client.session_transaction() as sess:
        sess['admin_user_id'] = admin.id
    return client


@pytest.fixture(scope='function')
def gold(session):
    """Gold with 22K at 5000/g and 18K at 4000/g."""
    return catalog_service.create_entity(session, 'metal', {
        'name': 'Gold',
        'variants': [
            {'name': '22K', 'purity': 91.6, 'price_per_gram': 5000},
            {'name': '18K', 'purity': 75, 'price_per_gram': 4000},
        ],
    })


@pytest.fixture(scope='function')
def diamond(session):
    """Diamond with one VS1 grade at 50000/ct."""
    return catalog_service.create_entity(session, 'gemstone', {
        'name': 'Diamond',
        'variants': [
            {'name': 'VS1', 'cut': 'Round', 'clarity': 'VS1', 'color': 'F', 'price_per_carat': 50000},
        ],
    })


@pytest.fixture(scope='function')
def make_ring(session, gold):
    """Factory for plain rings: one 22K gold component, no charges."""
    def _make(gst=0, weight=10, name='Gold Ring'):
        return product_service.create_product(session, {
            'name': name,
            'metal_composition': [
                {'metal_id': gold.id, 'variant_id': gold.variants[0].id, 'weight_in_grams': weight},
            ],
            'making_charges': {'type': 'fixed', 'value': 0},
            'product_wastage': {'type': 'fixed', 'value': 0},
            'gst_percentage': gst,
        })
    return _make


@pytest.fixture(scope='function')
def ring(make_ring):
    """10g of 22K gold, no charges, no GST: total 50000."""
    return make_ring()


@pytest.fixture(scope='function')
def customer(session):
    """Customer with no debt."""
    return customer_service.create_customer(session, {
        'name': 'Priya Sharma',
        'phone': '9876543210',
        'email': 'priya@example.com',
    })


@pytest.fixture(scope='function')
def indebted_customer(session):
    """Customer opened with 5000 of debt."""
    return customer_service.create_customer(session, {
        'name': 'Rahul Verma',
        'phone': '9123456780',
        'total_debt': Decimal('5000'),
    })
