"""Pydantic schemas for request/response validation."""

from nursecred.schemas.token import IdentityClaims, Token, TokenClaims
from nursecred.schemas.user import AuthResponse, UserCreate, UserProfile, UserRegister, UserResponse

__all__ = [
    "AuthResponse",
    "IdentityClaims",
    "Token",
    "TokenClaims",
    "UserCreate",
    "UserProfile",
    "UserRegister",
    "UserResponse",
]
