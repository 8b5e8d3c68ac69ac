from flask import Blueprint, request, jsonify, g
from functools import wraps
from flask_jwt_extended import verify_jwt_in_request, get_current_user, get_jwt
from models import UserRole
from services.auth_service import AuthService
from services.token_service import TokenService, check_if_token_revoked as check_token_blacklist
from utils.security import mask_identifier
import logging

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__)


def get_client_ip():
    """Client IP as resolved by ProxyFix"""
    return request.remote_addr or '127.0.0.1'


def _unauthorized(reason):
    return jsonify({'error': f'Unauthorized - {reason}'}), 401


def register_jwt_callbacks(jwt):
    """Wire profile loading, revocation and the 401 bodies into the JWTManager"""

    @jwt.user_lookup_loader
    def load_profile(jwt_header, jwt_data):
        # Soft-deleted profiles resolve to None and fail the lookup
        return AuthService().get_user_by_id(jwt_data.get('sub'))

    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        return check_token_blacklist(jwt_header, jwt_payload)

    @jwt.unauthorized_loader
    def missing_token(reason):
        return _unauthorized('No token provided')

    @jwt.invalid_token_loader
    def invalid_token(reason):
        logger.warning(f"AUTH_INVALID_TOKEN: {reason}")
        return _unauthorized('Invalid token')

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return _unauthorized('Token expired')

    @jwt.revoked_token_loader
    def revoked_token(jwt_header, jwt_payload):
        return _unauthorized('Token revoked')

    @jwt.user_lookup_error_loader
    def profile_not_found(jwt_header, jwt_data):
        logger.warning(f"AUTH_USER_NOT_FOUND: sub={jwt_data.get('sub')}")
        return _unauthorized('User not found')


def roles_required(*roles, message='Forbidden'):
    """Require a valid bearer token whose profile holds one of the given roles."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            verify_jwt_in_request()
            profile = get_current_user()
            g.current_user_id = profile.id
            g.current_user_role = profile.role.value
            if roles and profile.role not in roles:
                logger.warning(f"AUTH_FORBIDDEN: {profile.role.value} {profile.id} -> {request.path}")
                return jsonify({'error': message}), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator


login_required = roles_required()
admin_required = roles_required(UserRole.ADMIN, message='Forbidden - Admin access required')
driver_or_admin_required = roles_required(UserRole.DRIVER, UserRole.ADMIN,
                                          message='Forbidden - Driver or Admin access required')


@auth_bp.route('/login', methods=['POST'])
def login():
    """Exchange email/phone and password for a bearer token"""
    try:
        data = request.get_json(silent=True) or {}

        email = (data.get('email') or '').strip()
        phone_number = (data.get('phone_number') or '').strip()
        password = data.get('password') or ''

        if not password:
            return jsonify({'error': 'Password is required'}), 400

        identifier = email or phone_number
        if not identifier:
            return jsonify({'error': 'Email or phone number is required'}), 400

        auth_service = AuthService()
        profile = auth_service.authenticate_user(identifier, password)
        if not profile:
            return jsonify({'error': 'Invalid email/phone or password'}), 401

        token = auth_service.generate_token(profile)

        logger.info(f"LOGIN_SUCCESS: {profile.role.value} {profile.id} "
                    f"({mask_identifier(identifier)}) IP: {get_client_ip()}")

        return jsonify({
            'user': AuthService.user_payload(profile),
            'token': token
        }), 200

    except Exception as e:
        logger.exception(f"Login error: {str(e)}")
        return jsonify({'error': 'Internal server error'}), 500


@auth_bp.route('/me', methods=['GET'])
@login_required
def me():
    return jsonify({'user': AuthService.user_payload(get_current_user())}), 200


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    """Revoke the presented token"""
    TokenService().revoke_token(get_jwt())
    logger.info(f"LOGOUT: {g.current_user_role} {g.current_user_id}")
    return jsonify({'message': 'Successfully logged out'}), 200
