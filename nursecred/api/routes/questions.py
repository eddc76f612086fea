"""
Question bank routes.
"""

from pathlib import Path
from typing import List, Optional

from fastapi import APIRouter, File, Query, Request, UploadFile, status
from fastapi.responses import FileResponse

from nursecred.api.deps import CurrentClaims, FileStorageDep, SessionDep, authorize
from nursecred.core.exceptions import NotFoundError
from nursecred.core.logging import get_logger
from nursecred.core.roles import UserRole
from nursecred.schemas.question import (
    ImageUploadResponse,
    QuestionCreate,
    QuestionPage,
    QuestionResponse,
    QuestionUpdate,
)
from nursecred.services.question_service import QuestionService, save_question_image

logger = get_logger(__name__)

router = APIRouter(prefix="/questions", tags=["questions"])

EDITOR_ROLES = [UserRole.ADMIN, UserRole.KEPALA_UNIT]


@router.get("", response_model=QuestionPage, dependencies=authorize())
def list_questions(
    session: SessionDep,
    type: Optional[str] = None,
    category: Optional[str] = None,
    difficulty: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> QuestionPage:
    """List active questions; each filter also accepts "all"."""
    result = QuestionService(session).list_questions(
        question_type=type,
        category=category,
        difficulty=difficulty,
        search=search,
        page=page,
        limit=limit,
    )
    return QuestionPage.model_validate(
        {**result, "questions": [QuestionResponse.model_validate(q) for q in result["questions"]]}
    )


@router.get("/category/{category}", response_model=List[QuestionResponse], dependencies=authorize())
def questions_by_category(category: str, session: SessionDep) -> List[QuestionResponse]:
    return [QuestionResponse.model_validate(q) for q in QuestionService(session).by_category(category)]


@router.post(
    "/upload-image",
    response_model=ImageUploadResponse,
    dependencies=authorize(roles=EDITOR_ROLES, activity="uploaded a question image"),
)
def upload_question_image(
    request: Request,
    storage: FileStorageDep,
    image: UploadFile = File(...),
) -> ImageUploadResponse:
    """
    Store an image for a question.

    Returns:
        Absolute URL to use as the question's image, plus the stored name

    Raises:
        ValidationError: not an image, or larger than the image limit
    """
    file_name = save_question_image(storage, image)
    image_url = str(request.url_for("get_question_image", filename=file_name))
    logger.info(f"Stored question image {file_name}")
    return ImageUploadResponse(image_url=image_url, filename=file_name)


@router.get("/images/{filename}")
def get_question_image(filename: str, storage: FileStorageDep) -> FileResponse:
    """Serve a stored question image."""
    path = storage.resolve(str(storage.images_path / Path(filename).name))
    if path is None:
        raise NotFoundError("Image not found")
    return FileResponse(path)


@router.get("/{question_id}", response_model=QuestionResponse, dependencies=authorize())
def get_question(question_id: str, session: SessionDep) -> QuestionResponse:
    return QuestionResponse.model_validate(QuestionService(session).get(question_id))


@router.post(
    "",
    response_model=QuestionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=authorize(roles=EDITOR_ROLES, activity="created a question"),
)
def create_question(question_in: QuestionCreate, session: SessionDep, claims: CurrentClaims) -> QuestionResponse:
    """
    Add a question to the bank.

    Raises:
        ValidationError: every violated constraint, listed per field
    """
    question = QuestionService(session).create(question_in.model_dump(), created_by=claims.id)
    return QuestionResponse.model_validate(question)


@router.put(
    "/{question_id}",
    response_model=QuestionResponse,
    dependencies=authorize(roles=EDITOR_ROLES, activity="updated a question"),
)
def update_question(question_id: str, question_in: QuestionUpdate, session: SessionDep) -> QuestionResponse:
    question = QuestionService(session).update(question_id, question_in.patch())
    return QuestionResponse.model_validate(question)


@router.delete(
    "/{question_id}",
    dependencies=authorize(roles=EDITOR_ROLES, activity="deleted a question"),
)
def delete_question(question_id: str, session: SessionDep) -> dict:
    """Soft delete; exams referring to the question simply skip it."""
    QuestionService(session).soft_delete(question_id)
    return {"success": True, "message": "Question deleted successfully"}
