"""
Pytest fixtures for the tailor shop backend tests.

Provides an in-memory database, the Flask test client, staff accounts for
both roles, and helpers for logging in and creating orders.
"""

import pytest

from tailorshop import create_app
from tailorshop.extensions import db
from tailorshop.services import order_service
from tailorshop.services.auth_service import create_user


PASSWORD = "Password123!"

# Low bcrypt cost keeps account fixtures fast
TEST_BCRYPT_ROUNDS = 4


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'UPLOAD_FOLDER': str(tmp_path_factory.mktemp('uploads')),
        'PUBLIC_UPLOAD_BASE_URL': '/uploads',
        'SHOP_NAME': 'Test Tailors',
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
def manager(db_session):
    """Shop manager account."""
    return create_user("manager", "Shop Manager", PASSWORD, "manager", rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture(scope='function')
def second_manager(db_session):
    return create_user("owner", "Shop Owner", PASSWORD, "manager", rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture(scope='function')
def tailor(db_session):
    """Tailor account."""
    return create_user("tailor", "Tailor", PASSWORD, "tailor", rounds=TEST_BCRYPT_ROUNDS)


@pytest.fixture(scope='function')
def manager_headers(client, manager):
    return auth_headers(get_auth_token(client, manager.username, PASSWORD))


@pytest.fixture(scope='function')
def tailor_headers(client, tailor):
    return auth_headers(get_auth_token(client, tailor.username, PASSWORD))


@pytest.fixture(scope='function')
def make_order(manager):
    """Factory creating orders through the service layer as the manager."""
    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        payload = {
            "serial_number": str(1000 + counter["n"]),
            "customer_name": "Khalid",
            "customer_phone": "0501234567",
            "total_amount": "500.00",
            "deposit_amount": "100.00",
        }
        payload.update(overrides)
        return order_service.create_order(payload, manager)

    return _make


def get_auth_token(client, username: str, password: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
