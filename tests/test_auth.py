import time

import pytest
from jose import jwt

from chat_sync.auth.jwt_handler import JWTValidationError, extract_user_from_token
from chat_sync.config import settings


def make_token(**claims):
    payload = {
        "sub": "agent-1",
        "email": "atendente@example.com",
        "aud": "authenticated",
        "role": "authenticated",
        "exp": int(time.time()) + 3600,
        "iat": int(time.time()),
    }
    payload.update(claims)
    return jwt.encode(payload, settings.SUPABASE_JWT_SECRET, algorithm="HS256")


def test_valid_token():
    user = extract_user_from_token(make_token())
    assert user.user_id == "agent-1"
    assert user.email == "atendente@example.com"
    assert not user.is_token_expired


def test_expired_token():
    with pytest.raises(JWTValidationError, match="expired"):
        extract_user_from_token(make_token(exp=int(time.time()) - 10))


def test_wrong_audience():
    with pytest.raises(JWTValidationError):
        extract_user_from_token(make_token(aud="anon"))


def test_token_without_subject():
    with pytest.raises(JWTValidationError):
        extract_user_from_token(make_token(sub=None))


def test_garbage_token():
    with pytest.raises(JWTValidationError):
        extract_user_from_token("not-a-jwt")
