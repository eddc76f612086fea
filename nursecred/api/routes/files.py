"""
File routes for uploaded documents and nurse schedules.
"""

from typing import List, Optional

from fastapi import APIRouter, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse as FileDownload

from nursecred.api.deps import CurrentClaims, FileStorageDep, SessionDep, authorize
from nursecred.core.exceptions import NotFoundError
from nursecred.core.logging import get_logger
from nursecred.core.roles import UserRole
from nursecred.models.file import FileCategory
from nursecred.schemas.file import FilePage, FileResponse, FileStats
from nursecred.services.file_service import FileService

logger = get_logger(__name__)

router = APIRouter(prefix="/files", tags=["files"])

UPLOADER_ROLES = [UserRole.ADMIN, UserRole.KEPALA_UNIT]


@router.get("", response_model=FilePage, dependencies=authorize())
def list_files(
    session: SessionDep,
    storage: FileStorageDep,
    category: Optional[str] = None,
    search: Optional[str] = None,
    month: Optional[str] = None,
    unit: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> FilePage:
    """
    List active files, newest first.

    Args:
        category: A file category, or "all"
        search: Matches display and original names (and unit/month for schedules)
        month: Schedule month, only with the nurse_schedules category
        unit: Schedule unit, only with the nurse_schedules category
    """
    result = FileService(session, storage).list_files(
        category=category, search=search, month=month, unit=unit, page=page, limit=limit
    )
    return FilePage(
        files=[FileResponse.from_model(stored) for stored in result["files"]],
        current_page=result["current_page"],
        total_pages=result["total_pages"],
        total_count=result["total_count"],
    )


@router.get("/schedules", response_model=List[FileResponse], dependencies=authorize())
def list_schedules(
    session: SessionDep,
    storage: FileStorageDep,
    month: Optional[str] = None,
    unit: Optional[str] = None,
    year: Optional[int] = None,
) -> List[FileResponse]:
    """Nurse schedules, optionally narrowed by month, unit and year."""
    schedules = FileService(session, storage).list_schedules(month=month, unit=unit, year=year)
    return [FileResponse.from_model(stored) for stored in schedules]


@router.get("/stats", response_model=FileStats, dependencies=authorize(roles=[UserRole.ADMIN]))
def file_stats(session: SessionDep, storage: FileStorageDep) -> FileStats:
    return FileStats.model_validate(FileService(session, storage).get_stats())


@router.post(
    "",
    response_model=FileResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=authorize(roles=UPLOADER_ROLES, activity="uploaded a file"),
)
def upload_file(
    session: SessionDep,
    storage: FileStorageDep,
    claims: CurrentClaims,
    file: UploadFile = File(...),
    category: FileCategory = Form(FileCategory.GUIDELINES),
    display_name: Optional[str] = Form(None),
    month: Optional[str] = Form(None),
    unit: Optional[str] = Form(None),
    year: Optional[int] = Form(None),
) -> FileResponse:
    """
    Upload a document.

    Nurse schedules must be Excel workbooks and need a month and a unit.

    Raises:
        ValidationError: disallowed type, too large, or missing schedule fields
    """
    stored = FileService(session, storage).upload(
        file,
        uploaded_by=claims.id,
        category=category,
        display_name=display_name,
        month=month,
        unit=unit,
        year=year,
    )
    return FileResponse.from_model(stored)


@router.get("/download/{file_name}", dependencies=authorize())
def download_file(file_name: str, session: SessionDep, storage: FileStorageDep) -> FileDownload:
    """
    Stream a stored file under its original name.

    Raises:
        NotFoundError: unknown file, or its bytes are missing
    """
    stored = FileService(session, storage).get_for_download(file_name)
    path = storage.resolve(stored.path)
    if path is None:
        raise NotFoundError("File not found on server")
    return FileDownload(path, filename=stored.original_name)


@router.delete(
    "/{file_id}",
    dependencies=authorize(roles=[UserRole.ADMIN], activity="deleted a file"),
)
def delete_file(file_id: str, session: SessionDep, storage: FileStorageDep) -> dict:
    """Hide a file from listings; the stored bytes are kept."""
    FileService(session, storage).soft_delete(file_id)
    return {"success": True, "message": "File deleted successfully"}
