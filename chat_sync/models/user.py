"""
User Model for JWT Authentication

Represents user data extracted from Supabase JWT token
"""
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field
from datetime import datetime, timezone


class User(BaseModel):
    """
    User model populated from JWT token claims.

    Support agents authenticate against Supabase; this service only verifies
    the token and reads its claims.
    """

    user_id: str = Field(..., description="Unique user identifier (sub claim from JWT)")
    email: Optional[str] = Field(None, description="User's email address")
    aud: Optional[str] = Field(None, description="Audience claim - typically 'authenticated'")
    role: Optional[str] = Field(None, description="User role from JWT")
    session_id: Optional[str] = Field(None, description="Supabase auth session identifier")
    exp: Optional[int] = Field(None, description="Token expiration timestamp")
    iat: Optional[int] = Field(None, description="Token issued at timestamp")
    user_metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional user metadata")

    class Config:
        """Pydantic configuration"""
        json_schema_extra = {
            "example": {
                "user_id": "a1b2c3d4-e5f6-7890-abcd-ef1234567890",
                "email": "atendente@oticasvilla.com.br",
                "aud": "authenticated",
                "role": "authenticated",
                "exp": 1735689600,
                "iat": 1735603200,
                "user_metadata": {}
            }
        }

    @property
    def is_token_expired(self) -> bool:
        """Check if the token is expired"""
        if not self.exp:
            return True
        return datetime.now(timezone.utc).timestamp() > self.exp
