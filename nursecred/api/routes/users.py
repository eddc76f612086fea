"""
User routes for profiles and account administration.
"""

from typing import Optional

from fastapi import APIRouter, Query, status

from nursecred.api.deps import CurrentClaims, CurrentUser, SessionDep, authorize
from nursecred.core.exceptions import AuthorizationError, NotFoundError
from nursecred.core.logging import get_logger
from nursecred.core.roles import Permission, UserRole, has_permission
from nursecred.schemas.user import (
    RoleUpdate,
    UserCreate,
    UserPage,
    UserProfile,
    UserResponse,
    UserStats,
    UserUpdate,
)
from nursecred.services.user_service import UserService
from nursecred.workers.queue import enqueue_task, get_job_status
from nursecred.workers.tasks import generate_missing_npks_task

logger = get_logger(__name__)

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserProfile, dependencies=authorize())
def get_current_user_profile(current_user: CurrentUser) -> UserProfile:
    """
    Get current user's profile.

    Args:
        current_user: Current authenticated user

    Returns:
        User profile data with menus and redirect
    """
    return UserProfile.from_user(current_user)


@router.get("", response_model=UserPage, dependencies=authorize(permissions=[Permission.MANAGE_USERS]))
def list_users(
    session: SessionDep,
    role: Optional[UserRole] = None,
    unit: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> UserPage:
    """List active users, newest first."""
    result = UserService.list_paginated(session, role=role, unit=unit, search=search, page=page, limit=limit)
    return UserPage.model_validate(
        {**result, "records": [UserResponse.model_validate(user) for user in result["records"]]}
    )


@router.get("/stats", response_model=UserStats, dependencies=authorize(permissions=[Permission.VIEW_REPORTS]))
def user_stats(session: SessionDep) -> UserStats:
    return UserStats.model_validate(UserService.get_stats(session))


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=authorize(permissions=[Permission.MANAGE_USERS], activity="created a user"),
)
def create_user(user_in: UserCreate, session: SessionDep) -> UserResponse:
    """
    Create an account of any role, including admin.

    Raises:
        ValidationError: invalid fields
        DuplicateError: username, email or NPK already taken
    """
    user = UserService.create(session, user_in.model_dump())
    return UserResponse.model_validate(user)


@router.post(
    "/npk/repair",
    dependencies=authorize(permissions=[Permission.SYSTEM_SETTINGS], activity="started NPK repair"),
)
def repair_npks(session: SessionDep, background: bool = False) -> dict:
    """
    Assign NPKs to nurses that lack a well-formed one.

    Args:
        background: Run on the job queue and return the job id

    Returns:
        Number repaired, or the job id when queued
    """
    if background:
        job_id = enqueue_task(generate_missing_npks_task)
        return {"success": True, "message": "NPK repair enqueued", "job_id": job_id}

    repaired = UserService.generate_missing_npks(session)
    return {"success": True, "message": f"Assigned NPKs to {repaired} users", "repaired": repaired}


@router.get("/npk/jobs/{job_id}", dependencies=authorize(permissions=[Permission.SYSTEM_SETTINGS]))
def npk_job_status(job_id: str) -> dict:
    """Status of a queued NPK repair."""
    return get_job_status(job_id)


@router.get("/{user_id}", response_model=UserResponse, dependencies=authorize())
def get_user(user_id: str, session: SessionDep, claims: CurrentClaims) -> UserResponse:
    """
    Get a user by id. Users may read their own record; anyone else needs
    manage_users.
    """
    if user_id != claims.id and not has_permission(claims.role, Permission.MANAGE_USERS, claims.permissions):
        raise AuthorizationError(
            f"Access denied. Permission required: {Permission.MANAGE_USERS.value}",
            user_role=claims.role,
            permission=Permission.MANAGE_USERS.value,
        )
    user = UserService.get_by_id(session, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return UserResponse.model_validate(user)


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    dependencies=authorize(permissions=[Permission.MANAGE_USERS], activity="updated a user"),
)
def update_user(user_id: str, user_in: UserUpdate, session: SessionDep) -> UserResponse:
    """
    Update a user. Fields outside the editable set are ignored.

    Raises:
        ValidationError: nothing editable sent, or invalid values
        NotFoundError: no active user with that id
        DuplicateError: unique field collision
    """
    user = UserService.update_allowed_fields(session, user_id, user_in.patch())
    return UserResponse.model_validate(user)


@router.patch(
    "/{user_id}/role",
    dependencies=authorize(permissions=[Permission.MANAGE_USERS], activity="changed a user's role"),
)
def change_user_role(user_id: str, role_in: RoleUpdate, session: SessionDep) -> dict:
    """Change a role; the user's permissions reset to the new role's defaults."""
    user = UserService.change_role(session, user_id, role_in.role)
    logger.info(f"Role changed: user {user_id} is now {user.role.value}")
    return {
        "success": True,
        "message": "Role updated successfully",
        "user": UserResponse.model_validate(user),
    }


@router.delete(
    "/{user_id}",
    dependencies=authorize(permissions=[Permission.MANAGE_USERS], activity="deactivated a user"),
)
def deactivate_user(user_id: str, session: SessionDep, claims: CurrentClaims) -> dict:
    """Soft delete: the account stays on record but can no longer sign in."""
    if user_id == claims.id:
        raise AuthorizationError("You cannot deactivate your own account")
    UserService.soft_delete(session, user_id)
    return {"success": True, "message": "User deactivated successfully"}


@router.delete(
    "/{user_id}/purge",
    dependencies=authorize(roles=[UserRole.ADMIN], activity="purged a user"),
)
def purge_user(user_id: str, session: SessionDep, claims: CurrentClaims) -> dict:
    """Remove a user record for good."""
    if user_id == claims.id:
        raise AuthorizationError("You cannot delete your own account")
    UserService.purge(session, user_id)
    return {"success": True, "message": "User deleted successfully"}
