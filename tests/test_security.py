"""
Tests for password hashing and session tokens.
"""

import time
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from nursecred.core.exceptions import ExpiredError, InternalError, InvalidSignatureError, RevokedError
from nursecred.core.revocation import InMemoryRevocationStore
from nursecred.core.security import TokenService, get_password_hash, verify_password
from nursecred.schemas.token import IdentityClaims

SECRET = "unit-test-secret"


@pytest.fixture(name="service")
def service_fixture() -> TokenService:
    return TokenService(SECRET, InMemoryRevocationStore())


@pytest.fixture(name="identity")
def identity_fixture() -> IdentityClaims:
    return IdentityClaims(
        id="user-1",
        username="nurse",
        email="nurse@example.com",
        role="perawat",
        permissions=["view_credentials"],
        unit="ICU",
    )


def test_password_hash_roundtrip() -> None:
    hashed = get_password_hash("secretpassword")
    assert hashed != "secretpassword"
    assert verify_password("secretpassword", hashed)
    assert not verify_password("wrongpassword", hashed)


def test_empty_password_never_matches() -> None:
    hashed = get_password_hash("secretpassword")
    assert not verify_password("", hashed)
    assert not verify_password(None, hashed)


def test_issue_and_verify(service: TokenService, identity: IdentityClaims) -> None:
    claims = service.verify(service.issue(identity))

    assert claims.id == "user-1"
    assert claims.username == "nurse"
    assert claims.role == "perawat"
    assert claims.permissions == ["view_credentials"]
    assert claims.unit == "ICU"
    assert claims.full_name is None
    assert claims.expires_at > datetime.now(timezone.utc)


def test_each_token_has_a_unique_id(service: TokenService, identity: IdentityClaims) -> None:
    first = service.verify(service.issue(identity))
    second = service.verify(service.issue(identity))
    assert first.token_id != second.token_id


def test_expired_token(service: TokenService, identity: IdentityClaims) -> None:
    token = service.issue(identity, ttl=timedelta(seconds=1))
    time.sleep(2)
    with pytest.raises(ExpiredError):
        service.verify(token)


def test_tampered_token(service: TokenService, identity: IdentityClaims) -> None:
    token = service.issue(identity)
    header, payload, signature = token.split(".")
    tampered = ".".join([header, payload, signature[:-4] + ("AAAA" if signature[-4:] != "AAAA" else "BBBB")])

    with pytest.raises(InvalidSignatureError):
        service.verify(tampered)


def test_token_signed_with_another_secret(identity: IdentityClaims) -> None:
    other = TokenService("another-secret", InMemoryRevocationStore())
    service = TokenService(SECRET, InMemoryRevocationStore())

    with pytest.raises(InvalidSignatureError):
        service.verify(other.issue(identity))


def test_garbage_token(service: TokenService) -> None:
    with pytest.raises(InvalidSignatureError):
        service.verify("not-a-token")


def test_revoked_token(service: TokenService, identity: IdentityClaims) -> None:
    token = service.issue(identity)
    service.revoke(token)

    with pytest.raises(RevokedError):
        service.verify(token)


def test_revocation_is_owned_by_the_service(identity: IdentityClaims) -> None:
    first = TokenService(SECRET, InMemoryRevocationStore())
    second = TokenService(SECRET, InMemoryRevocationStore())
    token = first.issue(identity)

    first.revoke(token)

    assert second.verify(token).id == "user-1"


def test_revoking_one_token_leaves_others_valid(service: TokenService, identity: IdentityClaims) -> None:
    revoked = service.issue(identity)
    kept = service.issue(identity)
    service.revoke(revoked)

    assert service.verify(kept).id == "user-1"


def test_missing_secret(identity: IdentityClaims) -> None:
    service = TokenService(None, InMemoryRevocationStore())

    with pytest.raises(InternalError):
        service.issue(identity)
    with pytest.raises(InternalError):
        service.verify("anything")


def test_legacy_nested_payload_is_flattened(service: TokenService) -> None:
    expires = datetime.now(timezone.utc) + timedelta(hours=1)
    token = jwt.encode(
        {
            "user": {
                "id": "legacy-1",
                "username": "old",
                "email": "old@example.com",
                "role": "mitra",
                "fullName": "Old Style",
            },
            "exp": expires,
        },
        SECRET,
        algorithm="HS256",
    )

    claims = service.verify(token)

    assert claims.id == "legacy-1"
    assert claims.role == "mitra"
    assert claims.full_name == "Old Style"
    assert claims.permissions == []
    assert claims.token_id


def test_payload_without_identity_is_rejected(service: TokenService) -> None:
    token = jwt.encode(
        {"exp": datetime.now(timezone.utc) + timedelta(hours=1)},
        SECRET,
        algorithm="HS256",
    )

    with pytest.raises(InvalidSignatureError):
        service.verify(token)
