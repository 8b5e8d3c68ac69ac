"""
Auth Service

Password hashing, credential checks and profile lookups behind the login
flow and the bearer-token decorators.
"""

from typing import Optional, Dict, Any, Union
import logging
import bcrypt
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.security import generate_password_hash, check_password_hash
from models import db, Profile, UserRole
from utils.security import mask_identifier, mask_phone
from utils.validators import clean_phone_number, is_email_identifier, is_valid_phone_number
from .exceptions import ValidationError
from .token_service import TokenService
from .transaction_helper import TransactionHelper

logger = logging.getLogger(__name__)

# Columns every deployed profiles table has, legacy schema included
BASE_PROFILE_COLUMNS = ('id', 'email', 'name', 'role', 'password_hash',
                        'created_at', 'updated_at', 'deleted_at')


class AuthService:
    """Service class for authentication operations"""

    def __init__(self):
        self.token_service = TokenService()

    @staticmethod
    def hash_password(password: str) -> str:
        return generate_password_hash(password)

    @staticmethod
    def check_password(password: str, password_hash: Optional[str]) -> bool:
        """
        Verify a password against a stored hash.

        Hashes written by the earlier deployment are bcrypt ($2a/$2b/$2y);
        everything newer is a Werkzeug hash. Malformed hashes never match.
        """
        if not password or not password_hash:
            return False
        try:
            if password_hash.startswith('$2'):
                return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
            return check_password_hash(password_hash, password)
        except ValueError:
            logger.warning("AUTH_MALFORMED_HASH: stored password hash could not be parsed")
            return False

    def _find_by_base_columns(self, *criteria) -> Optional[Profile]:
        """Look a profile up using only the columns a legacy schema is sure to have."""
        table = Profile.__table__
        stmt = (select(*[table.c[name] for name in BASE_PROFILE_COLUMNS])
                .where(table.c.deleted_at.is_(None), *criteria))
        row = db.session.execute(stmt).mappings().first()
        return Profile(**dict(row)) if row else None

    def authenticate_user(self, identifier: str, password: str) -> Optional[Profile]:
        """
        Check login credentials.

        Args:
            identifier: Email address (contains '@') or phone number
            password: Plain text password

        Returns:
            Profile when the credentials match an active profile, otherwise None
        """
        identifier = (identifier or '').strip()
        is_email = is_email_identifier(identifier)

        try:
            query = Profile.query.filter(Profile.deleted_at.is_(None))
            if is_email:
                query = query.filter(Profile.email == identifier.lower())
            else:
                query = query.filter(Profile.phone_number == clean_phone_number(identifier))
            profile = query.first()
        except SQLAlchemyError as e:
            db.session.rollback()
            if not TransactionHelper.is_missing_column_error(e):
                raise
            logger.warning("AUTH_SCHEMA_FALLBACK: profile columns missing, trying email lookup")
            profile = self._find_by_base_columns(Profile.__table__.c.email == identifier.lower())

        if not profile:
            logger.warning(f"LOGIN_FAILED: unknown identifier {mask_identifier(identifier)}")
            return None

        if not self.check_password(password, profile.password_hash):
            logger.warning(f"LOGIN_FAILED: password mismatch for {mask_identifier(identifier)}")
            return None

        return profile

    def get_user_by_id(self, user_id: str) -> Optional[Profile]:
        """Load an active (not soft-deleted) profile by ID."""
        if not user_id:
            return None
        try:
            return Profile.query.filter(Profile.id == str(user_id),
                                        Profile.deleted_at.is_(None)).first()
        except SQLAlchemyError as e:
            db.session.rollback()
            if not TransactionHelper.is_missing_column_error(e):
                raise
            logger.warning(f"AUTH_SCHEMA_FALLBACK: loading profile {user_id} from base columns")
            return self._find_by_base_columns(Profile.__table__.c.id == str(user_id))

    def create_user(self, name: str, password: str, role: Union[UserRole, str] = UserRole.DRIVER,
                    phone_number: Optional[str] = None, email: Optional[str] = None) -> Profile:
        """
        Create a profile. The caller commits.

        Drivers are keyed by phone number, admins by email.

        Raises:
            ValidationError: missing or malformed identifier
        """
        role = UserRole(role) if not isinstance(role, UserRole) else role
        profile = Profile(name=name.strip(), role=role, password_hash=self.hash_password(password))

        if role == UserRole.DRIVER:
            if not is_valid_phone_number(phone_number):
                raise ValidationError('Phone number must be at least 10 digits')
            profile.phone_number = clean_phone_number(phone_number)
            if email:
                profile.email = email.strip().lower()
        else:
            if not email:
                raise ValidationError('Email is required for admin accounts')
            profile.email = email.strip().lower()

        db.session.add(profile)
        db.session.flush()

        logger.info(f"PROFILE_CREATED: {role.value} {profile.id} "
                    f"({mask_phone(profile.phone_number) if profile.phone_number else profile.email})")
        return profile

    def generate_token(self, profile: Profile) -> str:
        return self.token_service.generate_jwt_token(profile.id, {
            'role': profile.role.value,
            'email': profile.email,
            'phone_number': profile.phone_number,
        })

    @staticmethod
    def user_payload(profile: Profile) -> Dict[str, Any]:
        """The user object returned by login and /me."""
        return {
            'id': profile.id,
            'name': profile.name,
            'role': profile.role.value if profile.role else None,
            'email': profile.email,
            'phone_number': profile.phone_number,
            'vehicle_number': profile.assigned_vehicle_number,
        }
