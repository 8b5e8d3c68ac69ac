"""
Unit tests for AuthService and TokenService
"""

from datetime import timedelta

import bcrypt
import jwt
import pytest
from flask_jwt_extended.exceptions import JWTDecodeError
from sqlalchemy import text

from app import db
from models import UserRole
from services.auth_service import AuthService
from services.exceptions import ValidationError
from services.token_service import TokenService, check_if_token_revoked
from timezone_utils import get_ist_time_naive
from tests.factories import ProfileFactory, AdminFactory, DEFAULT_PASSWORD


class TestPasswords:

    def test_werkzeug_hash_round_trip(self):
        hashed = AuthService.hash_password('secret1')
        assert AuthService.check_password('secret1', hashed)
        assert not AuthService.check_password('secret2', hashed)

    def test_legacy_bcrypt_hash(self):
        hashed = bcrypt.hashpw(b'secret1', bcrypt.gensalt(rounds=4)).decode()
        assert AuthService.check_password('secret1', hashed)
        assert not AuthService.check_password('wrong', hashed)

    def test_malformed_hash_never_matches(self):
        assert not AuthService.check_password('secret1', '$2b$garbage')
        assert not AuthService.check_password('secret1', None)
        assert not AuthService.check_password('', 'anything')


class TestAuthenticateUser:

    def test_login_by_email_is_case_insensitive(self, db_session):
        admin = AdminFactory(email='boss@fleet.test')
        profile = AuthService().authenticate_user('Boss@Fleet.test', DEFAULT_PASSWORD)
        assert profile.id == admin.id

    def test_login_by_formatted_phone(self, db_session):
        driver = ProfileFactory(phone_number='9876543210')
        profile = AuthService().authenticate_user('98765 43210', DEFAULT_PASSWORD)
        assert profile.id == driver.id

    def test_wrong_password(self, db_session):
        ProfileFactory(phone_number='9876543210')
        assert AuthService().authenticate_user('9876543210', 'nope') is None

    def test_unknown_identifier(self, db_session):
        assert AuthService().authenticate_user('ghost@fleet.test', DEFAULT_PASSWORD) is None

    def test_soft_deleted_profile_cannot_log_in(self, db_session):
        ProfileFactory(phone_number='9876543210', deleted_at=get_ist_time_naive())
        assert AuthService().authenticate_user('9876543210', DEFAULT_PASSWORD) is None

    def test_bcrypt_profile_can_log_in(self, db_session):
        hashed = bcrypt.hashpw(DEFAULT_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
        driver = ProfileFactory(password_hash=hashed)
        assert AuthService().authenticate_user(driver.phone_number, DEFAULT_PASSWORD).id == driver.id


class TestLegacyProfileSchema:
    """Profiles table without the phone_number / vehicle_number columns"""

    @pytest.fixture
    def legacy_admin_id(self, db_session):
        db_session.execute(text('DROP TABLE profiles'))
        db_session.execute(text(
            'CREATE TABLE profiles (id VARCHAR(36) PRIMARY KEY, email VARCHAR(255), '
            'name VARCHAR(120) NOT NULL, role VARCHAR(20) NOT NULL, '
            'password_hash VARCHAR(256) NOT NULL, created_at DATETIME, '
            'updated_at DATETIME, deleted_at DATETIME)'))
        db_session.execute(text(
            "INSERT INTO profiles (id, email, name, role, password_hash) "
            "VALUES ('legacy-1', 'legacy@fleet.test', 'Legacy Admin', 'admin', :hash)"),
            {'hash': AuthService.hash_password(DEFAULT_PASSWORD)})
        db_session.commit()
        return 'legacy-1'

    def test_email_login_falls_back_to_base_columns(self, legacy_admin_id):
        profile = AuthService().authenticate_user('legacy@fleet.test', DEFAULT_PASSWORD)
        assert profile.id == legacy_admin_id
        assert profile.role == UserRole.ADMIN

    def test_lookup_by_id_falls_back(self, legacy_admin_id):
        profile = AuthService().get_user_by_id(legacy_admin_id)
        assert profile.name == 'Legacy Admin'


class TestCreateUser:

    def test_driver_requires_valid_phone(self, db_session):
        with pytest.raises(ValidationError) as exc:
            AuthService().create_user('New Driver', 'secret1', UserRole.DRIVER, phone_number='123')
        assert exc.value.message == 'Phone number must be at least 10 digits'

    def test_admin_requires_email(self, db_session):
        with pytest.raises(ValidationError) as exc:
            AuthService().create_user('Boss', 'secret1', UserRole.ADMIN)
        assert exc.value.message == 'Email is required for admin accounts'

    def test_driver_phone_is_cleaned(self, db_session):
        profile = AuthService().create_user('New Driver', 'secret1', 'driver',
                                            phone_number='(987) 654-3210')
        db.session.commit()
        assert profile.phone_number == '9876543210'
        assert profile.role == UserRole.DRIVER


class TestTokens:

    def test_generated_token_claims(self, app, db_session):
        driver = ProfileFactory()
        token = AuthService().generate_token(driver)
        claims = jwt.decode(token, app.config['JWT_SECRET_KEY'], algorithms=['HS256'])
        assert claims['sub'] == driver.id
        assert claims['role'] == 'driver'
        assert claims['phone_number'] == driver.phone_number
        assert claims['type'] == 'access'
        assert claims['jti']
        assert claims['exp'] > claims['iat']

    def test_decode_round_trip(self, app):
        service = TokenService()
        claims = service.decode_jwt_token(service.generate_jwt_token('abc', {'role': 'admin'}))
        assert claims['sub'] == 'abc'
        assert claims['role'] == 'admin'

    def test_expired_token(self, app):
        token = TokenService().generate_jwt_token('abc', expires_delta=timedelta(seconds=-10))
        with pytest.raises(jwt.ExpiredSignatureError):
            TokenService().decode_jwt_token(token)

    def test_wrong_signature(self, app):
        token = jwt.encode({'sub': 'abc', 'exp': 9999999999}, 'another-secret', algorithm='HS256')
        with pytest.raises(jwt.InvalidSignatureError):
            TokenService().decode_jwt_token(token)

    def test_token_without_subject_rejected(self, app):
        token = jwt.encode({'exp': 9999999999}, app.config['JWT_SECRET_KEY'], algorithm='HS256')
        with pytest.raises(JWTDecodeError):
            TokenService().decode_jwt_token(token)

    def test_revoked_token(self, app):
        service = TokenService()
        claims = service.decode_jwt_token(service.generate_jwt_token('abc'))
        assert not check_if_token_revoked({}, claims)

        service.revoke_token(claims)
        assert service.is_token_revoked(claims)
        assert check_if_token_revoked({}, claims)
