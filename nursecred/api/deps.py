"""
API dependencies for FastAPI dependency injection.

Authentication and authorization run as an ordered chain of dependencies
listed in a route's ``dependencies=[...]``. FastAPI resolves them in list
order and the first stage that raises ends the request, so a later stage
can rely on everything an earlier one stored on ``request.state``.
"""

from typing import Annotated, Callable, Iterable, List, Optional, Sequence

from fastapi import Depends, Request
from fastapi.params import Depends as DependsParam
from fastapi.security import OAuth2PasswordBearer
from sqlmodel import Session

from nursecred.core.config import settings
from nursecred.core.exceptions import AuthenticationError, AuthorizationError
from nursecred.core.logging import get_logger
from nursecred.core.roles import (
    Permission,
    UserRole,
    can_access_role,
    has_permission,
    redirect_of,
)
from nursecred.core.security import TokenService, claims_from_user, get_token_service
from nursecred.db.session import get_session
from nursecred.models.user import User
from nursecred.schemas.token import TokenClaims
from nursecred.services.file_storage_service import FileStorageService
from nursecred.services.user_service import UserService

logger = get_logger(__name__)

# OAuth2 scheme for token authentication; the cookie is the fallback
oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{settings.API_PREFIX}/auth/login", auto_error=False)

SessionDep = Annotated[Session, Depends(get_session)]


def _claims_of(request: Request) -> TokenClaims:
    claims = getattr(request.state, "claims", None)
    if claims is None:
        raise AuthenticationError("User not authenticated")
    return claims


def _role_values(roles: Iterable[UserRole | str]) -> List[str]:
    return [role.value if isinstance(role, UserRole) else role for role in roles]


def authenticate(
    request: Request,
    token_service: Annotated[TokenService, Depends(get_token_service)],
    bearer: Annotated[Optional[str], Depends(oauth2_scheme)],
) -> TokenClaims:
    """
    Verify the session token and store its claims on the request.

    The token comes from the Authorization header, or from the session
    cookie when no header is sent.

    Raises:
        AuthenticationError: no token, expired or revoked
        InvalidSignatureError: tampered or malformed token
    """
    token = bearer or request.cookies.get(settings.TOKEN_COOKIE_NAME)
    if not token:
        logger.warning(f"No token provided for {request.method} {request.url.path}")
        raise AuthenticationError("Access denied. No token provided.")

    claims = token_service.verify(token)
    request.state.claims = claims
    request.state.token = token
    return claims


def require_active_user(request: Request, session: SessionDep) -> User:
    """
    Reload the caller's record and reject missing or deactivated accounts.

    Also stamps last_login.
    """
    claims = _claims_of(request)
    user = UserService.get_by_id(session, claims.id)
    if user is None:
        logger.warning(f"Token for missing or inactive user {claims.id} on {request.url.path}")
        raise AuthorizationError("User account is inactive or no longer exists")

    UserService.update_last_login(session, user.id)
    request.state.user = user
    return user


def refresh_user_data(request: Request, session: SessionDep) -> TokenClaims:
    """Replace the token's claims with the caller's live record."""
    claims = _claims_of(request)
    user = getattr(request.state, "user", None) or UserService.get_by_id(session, claims.id)
    if user is None:
        logger.warning(f"Could not refresh claims for missing user {claims.id}")
        raise AuthorizationError("User account is inactive or no longer exists")

    fresh = claims.model_copy(update=claims_from_user(user).model_dump())
    request.state.claims = fresh
    return fresh


def require_role(*allowed: UserRole | str) -> Callable[[Request], None]:
    """Build a stage admitting only the listed roles."""
    allowed_roles = _role_values(allowed)

    def check_role(request: Request) -> None:
        claims = _claims_of(request)
        if claims.role not in allowed_roles:
            logger.warning(
                f"User {claims.username} ({claims.role}) denied {request.url.path}; "
                f"requires one of {allowed_roles}"
            )
            raise AuthorizationError(
                f"Access denied. Required roles: {', '.join(allowed_roles)}",
                user_role=claims.role,
                allowed_roles=allowed_roles,
                redirect_url=redirect_of(claims.role),
            )

    return check_role


def require_minimum_role(minimum_role: UserRole | str) -> Callable[[Request], None]:
    """Build a stage admitting roles at or above a hierarchy level."""
    minimum = _role_values([minimum_role])[0]

    def check_level(request: Request) -> None:
        claims = _claims_of(request)
        if not can_access_role(claims.role, minimum):
            logger.warning(f"User {claims.username} ({claims.role}) below minimum role {minimum}")
            raise AuthorizationError(
                f"Access denied. Minimum role required: {minimum}",
                user_role=claims.role,
                minimum_role=minimum,
            )

    return check_level


def require_permission(permission: Permission | str) -> Callable[[Request], None]:
    """Build a stage requiring a permission from the role or the user's own grants."""
    required = permission.value if isinstance(permission, Permission) else permission

    def check_permission(request: Request) -> None:
        claims = _claims_of(request)
        if not has_permission(claims.role, required, claims.permissions):
            logger.warning(f"User {claims.username} ({claims.role}) lacks permission {required}")
            raise AuthorizationError(
                f"Access denied. Permission required: {required}",
                user_role=claims.role,
                permission=required,
            )

    return check_permission


def log_user_activity(action: str) -> Callable[[Request], None]:
    """Build a stage writing an audit line for the caller's action."""

    def record(request: Request) -> None:
        claims = getattr(request.state, "claims", None)
        who = f"{claims.username} ({claims.role})" if claims else "anonymous"
        logger.info(f"Activity: {who} {action} via {request.method} {request.url.path}")

    return record


def authorize(
    roles: Optional[Sequence[UserRole | str]] = None,
    minimum_role: Optional[UserRole | str] = None,
    permissions: Sequence[Permission | str] = (),
    refresh: bool = False,
    active_user: bool = True,
    activity: Optional[str] = None,
) -> List[DependsParam]:
    """
    Compose the chain for a route.

    Order: authenticate, active-user check, claim refresh, role, minimum
    role, permissions, then the audit line.

    Usage:
        @router.get("/", dependencies=authorize(permissions=[Permission.MANAGE_USERS]))
    """
    chain = [Depends(authenticate)]
    if active_user:
        chain.append(Depends(require_active_user))
    if refresh:
        chain.append(Depends(refresh_user_data))
    if roles:
        chain.append(Depends(require_role(*roles)))
    if minimum_role is not None:
        chain.append(Depends(require_minimum_role(minimum_role)))
    for permission in permissions:
        chain.append(Depends(require_permission(permission)))
    if activity:
        chain.append(Depends(log_user_activity(activity)))
    return chain


def get_current_claims(request: Request) -> TokenClaims:
    """Claims of the authenticated caller, refreshed if the chain did so."""
    return _claims_of(request)


def get_current_user(request: Request, session: SessionDep) -> User:
    """The caller's active record, loaded by the chain or on demand."""
    user = getattr(request.state, "user", None)
    if user is None:
        user = UserService.get_by_id(session, _claims_of(request).id)
    if user is None:
        raise AuthorizationError("User account is inactive or no longer exists")
    return user


CurrentClaims = Annotated[TokenClaims, Depends(get_current_claims)]
CurrentUser = Annotated[User, Depends(get_current_user)]

_file_storage: Optional[FileStorageService] = None


def get_file_storage() -> FileStorageService:
    """Dependency returning the file storage; tests override it."""
    global _file_storage
    if _file_storage is None:
        _file_storage = FileStorageService()
    return _file_storage


FileStorageDep = Annotated[FileStorageService, Depends(get_file_storage)]
