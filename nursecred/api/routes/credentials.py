"""
Credential routes. Admins and unit heads see every credential; other roles
only their own.
"""

from typing import Optional

from fastapi import APIRouter, Query, status

from nursecred.api.deps import CurrentClaims, SessionDep, authorize
from nursecred.core.exceptions import AuthorizationError
from nursecred.core.logging import get_logger
from nursecred.core.roles import Permission, UserRole
from nursecred.schemas.credential import (
    BulkDelete,
    BulkImport,
    CredentialCreate,
    CredentialPage,
    CredentialResponse,
    CredentialSearch,
    CredentialStats,
    CredentialUpdate,
    ImportResult,
    StatusUpdate,
)
from nursecred.services.credential_service import CredentialService

logger = get_logger(__name__)

router = APIRouter(prefix="/credentials", tags=["credentials"])

SUPERVISOR_ROLES = [UserRole.ADMIN, UserRole.KEPALA_UNIT]


def _page(result: dict) -> CredentialPage:
    return CredentialPage(
        credentials=[CredentialResponse.model_validate(c) for c in result["credentials"]],
        current_page=result["current_page"],
        total_pages=result["total_pages"],
        total_count=result["total_count"],
    )


@router.get(
    "",
    response_model=CredentialPage,
    dependencies=authorize(permissions=[Permission.VIEW_CREDENTIALS]),
)
def list_credentials(
    session: SessionDep,
    claims: CurrentClaims,
    search: Optional[str] = None,
    department: Optional[str] = None,
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> CredentialPage:
    """List credentials visible to the caller, newest first."""
    result = CredentialService(session).list_credentials(
        claims.role,
        claims.id,
        search=search,
        department=department,
        status=status,
        page=page,
        limit=limit,
    )
    return _page(result)


@router.post(
    "/search",
    response_model=CredentialPage,
    dependencies=authorize(permissions=[Permission.VIEW_CREDENTIALS]),
)
def search_credentials(params: CredentialSearch, session: SessionDep, claims: CurrentClaims) -> CredentialPage:
    """
    Search with a term, field filters and sorting.

    Raises:
        ValidationError: unknown filter or sort field
    """
    return _page(CredentialService(session).search(claims.role, claims.id, params))


@router.get(
    "/stats/overview",
    response_model=CredentialStats,
    dependencies=authorize(roles=SUPERVISOR_ROLES),
)
def credential_stats(session: SessionDep) -> CredentialStats:
    return CredentialStats.model_validate(CredentialService(session).get_stats())


@router.post(
    "/bulk-import",
    response_model=ImportResult,
    dependencies=authorize(roles=[UserRole.ADMIN], activity="imported credentials"),
)
def bulk_import(payload: BulkImport, session: SessionDep, claims: CurrentClaims) -> ImportResult:
    """
    Import many credentials; a bad row is reported and skipped.

    Returns:
        Success and failure counts with the error of each failed row
    """
    return ImportResult.model_validate(CredentialService(session).bulk_import(payload.credentials, claims.id))


@router.delete(
    "/bulk-delete",
    dependencies=authorize(roles=[UserRole.ADMIN], activity="bulk deleted credentials"),
)
def bulk_delete(payload: BulkDelete, session: SessionDep) -> dict:
    deleted = CredentialService(session).bulk_delete(payload.credential_ids)
    return {"success": True, "message": f"{deleted} credentials deleted successfully", "deleted_count": deleted}


@router.get(
    "/{credential_id}",
    response_model=CredentialResponse,
    dependencies=authorize(permissions=[Permission.VIEW_CREDENTIALS]),
)
def get_credential(credential_id: str, session: SessionDep, claims: CurrentClaims) -> CredentialResponse:
    """
    Raises:
        NotFoundError: unknown credential
        AuthorizationError: someone else's credential
    """
    credential = CredentialService(session).get(credential_id, claims.role, claims.id)
    return CredentialResponse.model_validate(credential)


@router.post(
    "",
    response_model=CredentialResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=authorize(permissions=[Permission.CREATE_CREDENTIALS], activity="created a credential"),
)
def create_credential(
    credential_in: CredentialCreate, session: SessionDep, claims: CurrentClaims
) -> CredentialResponse:
    """
    Create a credential owned by the caller.

    Raises:
        ValidationError: blank required field or expiry before issue
        DuplicateError: license number already exists
    """
    credential = CredentialService(session).create(credential_in, actor_id=claims.id)
    return CredentialResponse.model_validate(credential)


@router.put(
    "/{credential_id}",
    response_model=CredentialResponse,
    dependencies=authorize(permissions=[Permission.EDIT_CREDENTIALS], activity="updated a credential"),
)
def update_credential(
    credential_id: str, credential_in: CredentialUpdate, session: SessionDep, claims: CurrentClaims
) -> CredentialResponse:
    credential = CredentialService(session).update(credential_id, credential_in.patch(), claims.role, claims.id)
    return CredentialResponse.model_validate(credential)


@router.put(
    "/{credential_id}/status",
    response_model=CredentialResponse,
    dependencies=authorize(roles=SUPERVISOR_ROLES, activity="changed a credential status"),
)
def update_credential_status(
    credential_id: str, status_in: StatusUpdate, session: SessionDep, claims: CurrentClaims
) -> CredentialResponse:
    credential = CredentialService(session).set_status(credential_id, status_in.status, actor_id=claims.id)
    return CredentialResponse.model_validate(credential)


@router.delete(
    "/{credential_id}",
    dependencies=authorize(permissions=[Permission.DELETE_CREDENTIALS], activity="deleted a credential"),
)
def delete_credential(credential_id: str, session: SessionDep, claims: CurrentClaims) -> dict:
    """Delete a credential for good. Only administrators may do this."""
    if claims.role != UserRole.ADMIN.value:
        raise AuthorizationError("Only administrators can delete credentials", user_role=claims.role)
    CredentialService(session).delete(credential_id)
    return {"success": True, "message": "Credential deleted successfully"}
