"""
Token schemas for JWT authentication.
"""

from datetime import datetime, timezone
from typing import Any, List, Mapping, Optional

from pydantic import BaseModel, Field


class IdentityClaims(BaseModel):
    """Identity fields embedded in a session token."""

    id: str
    username: str
    email: str
    role: str
    permissions: List[str] = Field(default_factory=list)
    unit: Optional[str] = None
    full_name: Optional[str] = None


class TokenClaims(IdentityClaims):
    """
    Canonical claims of a verified token.

    This is the only shape downstream code ever sees, whatever payload
    layout the token was signed with.
    """

    issued_at: Optional[datetime] = None
    expires_at: datetime
    token_id: str

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], fallback_token_id: str) -> Optional["TokenClaims"]:
        """
        Normalize a decoded JWT payload.

        Older tokens nest the identity under a ``user`` key; current ones are
        flat. Returns None when no usable identity (id and role) is present.
        """
        nested = payload.get("user")
        data = dict(nested) if isinstance(nested, Mapping) else dict(payload)

        user_id = data.get("sub") or data.get("id") or data.get("_id")
        role = data.get("role")
        exp = payload.get("exp")
        iat = payload.get("iat")
        if not user_id or not role or exp is None:
            return None

        return cls(
            id=str(user_id),
            username=data.get("username") or "",
            email=data.get("email") or "",
            role=role,
            permissions=list(data.get("permissions") or []),
            unit=data.get("unit"),
            full_name=data.get("full_name") or data.get("fullName"),
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc) if iat is not None else None,
            expires_at=datetime.fromtimestamp(exp, tz=timezone.utc),
            token_id=payload.get("jti") or fallback_token_id,
        )


class Token(BaseModel):
    """Schema for access token response."""

    access_token: str
    token_type: str = "bearer"
    expires_at: Optional[datetime] = None
