"""
Security utilities for password hashing and session token management.

Default hashing uses ``pbkdf2_sha256`` for stable cross-platform behavior in
tests and local development. ``bcrypt`` verification is still supported for
hashes created with a bcrypt work factor.
"""

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext

from nursecred.core.config import settings
from nursecred.core.exceptions import (
    ExpiredError,
    InternalError,
    InvalidSignatureError,
    RevokedError,
)
from nursecred.core.logging import get_logger
from nursecred.core.revocation import RevocationStore, build_revocation_store
from nursecred.schemas.token import IdentityClaims, TokenClaims

logger = get_logger(__name__)

pwd_context = CryptContext(
    schemes=["pbkdf2_sha256", "bcrypt"],
    deprecated="auto",
    pbkdf2_sha256__default_rounds=settings.PASSWORD_HASH_ROUNDS,
    bcrypt__default_rounds=settings.BCRYPT_ROUNDS,
)


def verify_password(plain_password: Optional[str], hashed_password: str) -> bool:
    """
    Verify a plain password against a hashed password.

    Args:
        plain_password: The plain text password
        hashed_password: The hashed password to compare against

    Returns:
        True if password matches, False otherwise (always False for an
        empty candidate)
    """
    if not plain_password:
        return False
    return pwd_context.verify(plain_password, hashed_password)


def get_password_hash(password: str) -> str:
    """
    Hash a password using the configured default scheme.

    Args:
        password: Plain text password

    Returns:
        Hashed password string
    """
    return pwd_context.hash(password)


def claims_from_user(user) -> IdentityClaims:
    """Build token identity claims from a User record."""
    return IdentityClaims(
        id=user.id,
        username=user.username,
        email=user.email,
        role=user.role.value if hasattr(user.role, "value") else user.role,
        permissions=list(user.permissions or []),
        unit=user.unit,
        full_name=user.full_name,
    )


class TokenService:
    """
    Issues, verifies and revokes signed session tokens.

    The signing secret never leaves this object and the revocation store is
    passed in, so each instance owns its own revocation state.
    """

    def __init__(
        self,
        secret_key: Optional[str],
        revocation_store: RevocationStore,
        algorithm: str = "HS256",
        default_ttl: timedelta = timedelta(minutes=60 * 24),
    ):
        self._secret_key = secret_key
        self.algorithm = algorithm
        self.default_ttl = default_ttl
        self.revocation_store = revocation_store

    def _require_secret(self) -> str:
        if not self._secret_key:
            raise InternalError("Token signing secret is not configured")
        return self._secret_key

    def issue(self, identity: IdentityClaims, ttl: Optional[timedelta] = None) -> str:
        """
        Create a signed token embedding the identity claims.

        Args:
            identity: Claims to embed
            ttl: Optional custom lifetime, defaults to the configured one

        Returns:
            Encoded JWT token string
        """
        secret = self._require_secret()
        issued_at = datetime.now(timezone.utc)
        expires_at = issued_at + (ttl if ttl is not None else self.default_ttl)

        to_encode = {
            "sub": identity.id,
            "username": identity.username,
            "email": identity.email,
            "role": identity.role,
            "permissions": list(identity.permissions),
            "iat": issued_at,
            "exp": expires_at,
            "jti": uuid4().hex,
        }
        if identity.unit:
            to_encode["unit"] = identity.unit
        if identity.full_name:
            to_encode["full_name"] = identity.full_name

        return jwt.encode(to_encode, secret, algorithm=self.algorithm)

    def _decode(self, token: str) -> TokenClaims:
        secret = self._require_secret()
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require_exp": True},
            )
        except ExpiredSignatureError:
            raise ExpiredError()
        except JWTError as e:
            logger.warning(f"JWT validation failed: {e}")
            raise InvalidSignatureError()

        claims = TokenClaims.from_payload(payload, fallback_token_id=self._fingerprint(token))
        if claims is None:
            logger.warning("Token payload missing identity claims")
            raise InvalidSignatureError()
        return claims

    def verify(self, token: str) -> TokenClaims:
        """
        Validate a token and return its claims.

        Raises:
            ExpiredError: past its expiry
            InvalidSignatureError: tampered, malformed or signed with another key
            RevokedError: explicitly revoked before expiry
        """
        claims = self._decode(token)
        if self.revocation_store.contains(claims.token_id):
            raise RevokedError()
        return claims

    def revoke(self, token: str) -> None:
        """
        Revoke a token until its natural expiry.

        Already-expired tokens need no entry and are ignored.
        """
        try:
            claims = self._decode(token)
        except ExpiredError:
            return
        self.revocation_store.add(claims.token_id, claims.expires_at.timestamp())
        logger.info(f"Revoked token {claims.token_id} for user {claims.id}")

    @staticmethod
    def _fingerprint(token: str) -> str:
        return hashlib.sha256(token.encode("utf-8")).hexdigest()


_token_service: Optional[TokenService] = None


def get_token_service() -> TokenService:
    """
    Dependency returning the process-wide token service.

    Built on first use from settings; tests override this dependency with
    their own instance.
    """
    global _token_service
    if _token_service is None:
        _token_service = TokenService(
            secret_key=settings.SECRET_KEY,
            revocation_store=build_revocation_store(),
            algorithm=settings.ALGORITHM,
            default_ttl=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )
    return _token_service
