"""
Authentication routes: registration, login and session management.
Sessions are signed tokens sent as a bearer header or the session cookie.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.security import OAuth2PasswordRequestForm

from nursecred.api.deps import CurrentUser, SessionDep, authorize
from nursecred.core.config import settings
from nursecred.core.exceptions import AuthenticationError, ValidationError
from nursecred.core.logging import get_logger
from nursecred.core.roles import UserRole, redirect_of
from nursecred.core.security import TokenService, claims_from_user, get_token_service
from nursecred.models.user import User
from nursecred.schemas.user import AuthResponse, PasswordUpdate, UserProfile, UserRegister
from nursecred.services.user_service import UserService

logger = get_logger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

TokenServiceDep = Annotated[TokenService, Depends(get_token_service)]


def _start_session(response: Response, token_service: TokenService, user: User) -> AuthResponse:
    """Issue a token for the user and set it as the session cookie."""
    token = token_service.issue(claims_from_user(user))
    response.set_cookie(
        key=settings.TOKEN_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=not settings.DEBUG,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    profile = UserProfile.from_user(user)
    return AuthResponse(access_token=token, user=profile, redirect_url=profile.redirect_url)


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_in: UserRegister,
    response: Response,
    session: SessionDep,
    token_service: TokenServiceDep,
) -> AuthResponse:
    """
    Register a new account and start a session for it.

    Administrators cannot self-register; they are created by another
    administrator through the users API.

    Raises:
        ValidationError: invalid fields or an admin role requested
        DuplicateError: username, email or NPK already taken
    """
    if user_in.role == UserRole.ADMIN:
        logger.warning(f"Self-registration as admin refused for {user_in.username}")
        raise ValidationError.single("role", "Administrator accounts cannot be self-registered")

    user = UserService.create(session, user_in.model_dump())
    logger.info(f"New user registered: {user.username} (ID: {user.id}, role: {user.role.value})")
    return _start_session(response, token_service, user)


@router.post("/login", response_model=AuthResponse)
def login(
    response: Response,
    session: SessionDep,
    token_service: TokenServiceDep,
    form_data: Annotated[OAuth2PasswordRequestForm, Depends()],
) -> AuthResponse:
    """
    OAuth2 compatible token login.

    The username field accepts a username or an email address. Unknown
    users, deactivated users and wrong passwords get the same answer.

    Raises:
        AuthenticationError: credentials rejected
    """
    user = UserService.authenticate(session, form_data.username, form_data.password)
    if not user:
        logger.warning(f"Failed login attempt for: {form_data.username}")
        raise AuthenticationError("Invalid credentials")

    UserService.update_last_login(session, user.id)
    session.refresh(user)
    logger.info(f"User logged in: {user.username} (ID: {user.id})")
    return _start_session(response, token_service, user)


@router.get("/verify", dependencies=authorize())
def verify_session(current_user: CurrentUser) -> dict:
    """
    Confirm the session and return the live profile.

    Returns:
        Profile with menus and redirect for the user's current role
    """
    profile = UserProfile.from_user(current_user)
    return {"success": True, "user": profile, "redirect_url": profile.redirect_url}


@router.post("/refresh", response_model=AuthResponse, dependencies=authorize())
def refresh_session(
    request: Request,
    response: Response,
    current_user: CurrentUser,
    token_service: TokenServiceDep,
) -> AuthResponse:
    """Swap the current token for a fresh one built from the live record."""
    token_service.revoke(request.state.token)
    logger.info(f"Session refreshed for user {current_user.id}")
    return _start_session(response, token_service, current_user)


@router.post("/logout", dependencies=authorize(active_user=False))
def logout(request: Request, response: Response, token_service: TokenServiceDep) -> dict:
    """Revoke the current token and clear the session cookie."""
    token_service.revoke(request.state.token)
    response.delete_cookie(settings.TOKEN_COOKIE_NAME)
    logger.info(f"User {request.state.claims.id} logged out")
    return {"success": True, "message": "Logged out successfully"}


@router.put("/update-password", dependencies=authorize())
def update_password(
    passwords: PasswordUpdate,
    request: Request,
    response: Response,
    session: SessionDep,
    current_user: CurrentUser,
    token_service: TokenServiceDep,
) -> dict:
    """
    Change the caller's password and end the current session.

    Raises:
        AuthenticationError: current password is wrong
        ValidationError: new password too short
    """
    if not UserService.compare_password(session, current_user, passwords.current_password):
        logger.warning(f"Wrong current password on password change for user {current_user.id}")
        raise AuthenticationError("Current password is incorrect")

    UserService.update_password(session, current_user, passwords.new_password)
    token_service.revoke(request.state.token)
    response.delete_cookie(settings.TOKEN_COOKIE_NAME)
    return {
        "success": True,
        "message": "Password updated successfully",
        "redirect_url": redirect_of(current_user.role),
    }
