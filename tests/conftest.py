"""
Pytest configuration and fixtures for the fleet expenses API
"""

import os

import pytest

# Set test environment before importing app
os.environ.update({
    'FLASK_ENV': 'testing',
    'JWT_SECRET_KEY': 'test_jwt_secret_for_testing_only',
    'DATABASE_URL': 'sqlite:///:memory:',
    'SUPABASE_URL': '',
    'NEXT_PUBLIC_SUPABASE_URL': '',
    'SUPABASE_SERVICE_ROLE_KEY': '',
    'HIGH_VALUE_EXPENSE_THRESHOLD': '5000',
    'LOG_LEVEL': 'WARNING',
})

from app import create_app, db
from models import VehicleStatus
from services.auth_service import AuthService
from services import token_service
from tests.factories import ProfileFactory, AdminFactory, VehicleFactory


@pytest.fixture(scope='function')
def app(tmp_path):
    """Create application for testing"""
    app = create_app()
    app.config.update({
        'TESTING': True,
        'UPLOAD_FOLDER': str(tmp_path / 'uploads'),
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

    token_service.blacklisted_tokens.clear()


@pytest.fixture(scope='function')
def client(app):
    """Create test client"""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Database session for testing"""
    yield db.session
    db.session.rollback()


@pytest.fixture
def admin_user(db_session):
    """Create admin user"""
    return AdminFactory()


@pytest.fixture
def vehicle(db_session):
    """An available, unassigned vehicle"""
    return VehicleFactory()


@pytest.fixture
def driver_user(db_session):
    """Create a driver holding a vehicle"""
    driver = ProfileFactory()
    VehicleFactory(driver=driver, status=VehicleStatus.ASSIGNED)
    return driver


@pytest.fixture
def auth_headers(app):
    """Build bearer headers for a profile"""
    def _headers(profile):
        return {'Authorization': f'Bearer {AuthService().generate_token(profile)}'}
    return _headers


@pytest.fixture
def admin_headers(admin_user, auth_headers):
    return auth_headers(admin_user)


@pytest.fixture
def driver_headers(driver_user, auth_headers):
    return auth_headers(driver_user)
