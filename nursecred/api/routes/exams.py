"""
Exam routes: building exams from the question bank and publishing them.
"""

from typing import Optional

from fastapi import APIRouter, Query, status

from nursecred.api.deps import CurrentClaims, SessionDep, authorize
from nursecred.core.logging import get_logger
from nursecred.core.roles import UserRole
from nursecred.schemas.exam import ExamCreate, ExamDetail, ExamPage, ExamResponse, ExamStats, ExamUpdate
from nursecred.schemas.question import QuestionResponse
from nursecred.services.exam_service import ExamService

logger = get_logger(__name__)

router = APIRouter(prefix="/exams", tags=["exams"])

EDITOR_ROLES = [UserRole.ADMIN, UserRole.KEPALA_UNIT]


@router.get("", response_model=ExamPage, dependencies=authorize())
def list_exams(
    session: SessionDep,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
) -> ExamPage:
    result = ExamService(session).list_exams(status=status, search=search, page=page, limit=limit)
    return ExamPage.model_validate(
        {**result, "exams": [ExamResponse.model_validate(exam) for exam in result["exams"]]}
    )


@router.get("/stats/overview", response_model=ExamStats, dependencies=authorize(roles=EDITOR_ROLES))
def exam_stats(session: SessionDep) -> ExamStats:
    """Question and exam counts, plus what was added in the last week."""
    return ExamStats.model_validate(ExamService(session).get_stats())


@router.get("/{exam_id}", response_model=ExamDetail, dependencies=authorize())
def get_exam(exam_id: str, session: SessionDep) -> ExamDetail:
    """
    Get an exam with its questions in exam order.

    Deactivated questions are left out of the list but keep their ids.
    """
    service = ExamService(session)
    exam = service.get(exam_id)
    detail = ExamDetail.model_validate(exam)
    detail.questions = [QuestionResponse.model_validate(q) for q in service.questions_of(exam)]
    return detail


@router.post(
    "",
    response_model=ExamResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=authorize(roles=EDITOR_ROLES, activity="created an exam"),
)
def create_exam(exam_in: ExamCreate, session: SessionDep, claims: CurrentClaims) -> ExamResponse:
    """
    Create a draft exam.

    Raises:
        ValidationError: missing title, no or unknown questions, bad settings
    """
    exam = ExamService(session).create(exam_in.model_dump(), created_by=claims.id)
    return ExamResponse.model_validate(exam)


@router.put(
    "/{exam_id}",
    response_model=ExamResponse,
    dependencies=authorize(roles=EDITOR_ROLES, activity="updated an exam"),
)
def update_exam(exam_id: str, exam_in: ExamUpdate, session: SessionDep, claims: CurrentClaims) -> ExamResponse:
    exam = ExamService(session).update(exam_id, exam_in.patch(), updated_by=claims.id)
    return ExamResponse.model_validate(exam)


@router.put(
    "/{exam_id}/publish",
    response_model=ExamResponse,
    dependencies=authorize(roles=EDITOR_ROLES, activity="published an exam"),
)
def publish_exam(exam_id: str, session: SessionDep, claims: CurrentClaims) -> ExamResponse:
    """
    Publish an exam.

    Raises:
        ValidationError: the exam has no questions
    """
    exam = ExamService(session).publish(exam_id, published_by=claims.id)
    return ExamResponse.model_validate(exam)


@router.delete(
    "/{exam_id}",
    dependencies=authorize(roles=EDITOR_ROLES, activity="deleted an exam"),
)
def delete_exam(exam_id: str, session: SessionDep) -> dict:
    ExamService(session).delete(exam_id)
    return {"success": True, "message": "Exam deleted successfully"}
