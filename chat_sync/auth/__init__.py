"""Supabase JWT authentication"""
from .dependencies import get_current_user
from .jwt_handler import JWTValidationError, decode_jwt_token, extract_user_from_token

__all__ = ["get_current_user", "JWTValidationError", "decode_jwt_token", "extract_user_from_token"]
