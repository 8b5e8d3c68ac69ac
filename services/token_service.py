"""
Token Service

Issues access tokens through flask-jwt-extended and keeps the in-process
blocklist of revoked token IDs that the JWTManager consults on every
protected request.
"""

from typing import Any, Dict, Optional
import logging
from datetime import timedelta
from flask_jwt_extended import create_access_token, decode_token

logger = logging.getLogger(__name__)

# JWT token blacklist for logout functionality; process-local, cleared on restart
blacklisted_tokens = set()


def check_if_token_revoked(jwt_header, jwt_payload):
    """Check if JWT token is in blacklist"""
    return jwt_payload.get('jti') in blacklisted_tokens


class TokenService:
    """Service class for JWT issuance and revocation"""

    def generate_jwt_token(self, identity: str, claims: Optional[Dict[str, Any]] = None,
                           expires_delta: Optional[timedelta] = None) -> str:
        """
        Sign an access token.

        Args:
            identity: Stored as the 'sub' claim
            claims: Extra claims to embed
            expires_delta: Lifetime override, defaults to JWT_ACCESS_TOKEN_EXPIRES

        Returns:
            str: Encoded JWT
        """
        return create_access_token(identity=str(identity), additional_claims=claims or {},
                                   expires_delta=expires_delta)

    def decode_jwt_token(self, token: str) -> Dict[str, Any]:
        """Verify signature and expiry; raises the flask-jwt-extended / PyJWT errors."""
        return decode_token(token)

    def revoke_token(self, jwt_payload: Dict[str, Any]) -> None:
        jti = jwt_payload.get('jti')
        if jti:
            blacklisted_tokens.add(jti)
            logger.info(f"TOKEN_REVOKED: jti={jti}")

    def is_token_revoked(self, jwt_payload: Dict[str, Any]) -> bool:
        return check_if_token_revoked(None, jwt_payload)
