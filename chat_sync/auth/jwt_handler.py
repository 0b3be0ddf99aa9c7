"""
JWT Token Handler

Validates Supabase access tokens with python-jose.
"""
import logging
from typing import Dict, Any
from jose import jwt, JWTError

from chat_sync.config import settings
from chat_sync.models.user import User

logger = logging.getLogger(__name__)


class JWTValidationError(Exception):
    """Custom exception for JWT validation errors"""
    pass


def decode_jwt_token(token: str) -> Dict[str, Any]:
    """
    Decode and validate a Supabase JWT token.

    Raises:
        JWTValidationError: If token is invalid, expired, or malformed
    """
    if not settings.is_supabase_configured:
        logger.error("Supabase JWT configuration is missing")
        raise JWTValidationError("Authentication service is not configured")

    if not token:
        raise JWTValidationError("Token is required")

    try:
        # Supabase signs access tokens with HS256
        payload = jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience="authenticated",
            options={
                "verify_signature": True,
                "verify_exp": True,
                "verify_aud": True,
            }
        )
        return payload

    except jwt.ExpiredSignatureError:
        logger.warning("JWT token has expired")
        raise JWTValidationError("Token has expired")

    except jwt.JWTClaimsError as e:
        logger.warning(f"JWT claims error: {e}")
        raise JWTValidationError("Invalid token claims")

    except JWTError as e:
        logger.warning(f"JWT validation error: {e}")
        raise JWTValidationError("Invalid token")


def extract_user_from_token(token: str) -> User:
    """
    Build a User from a validated token.

    Raises:
        JWTValidationError: If the token is invalid or has no subject
    """
    payload = decode_jwt_token(token)

    user_id = payload.get("sub")
    if not user_id:
        raise JWTValidationError("User ID (sub) not found in token")

    return User(
        user_id=user_id,
        email=payload.get("email"),
        aud=payload.get("aud"),
        role=payload.get("role"),
        session_id=payload.get("session_id"),
        exp=payload.get("exp"),
        iat=payload.get("iat"),
        user_metadata=payload.get("user_metadata") or {},
    )
