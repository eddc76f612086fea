"""
Exam service: assembling bank questions into exams and publishing them.
"""
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_
from sqlmodel import Session, select

from nursecred.core.exceptions import NotFoundError, ValidationError
from nursecred.core.logging import get_logger
from nursecred.models.exam import DEFAULT_EXAM_SETTINGS, Exam, ExamStatus
from nursecred.models.question import Question
from nursecred.schemas.exam import ExamSettings
from nursecred.services.question_service import QuestionService
from nursecred.services.validators import FieldErrors, parse_enum

logger = get_logger(__name__)

TITLE_MAX_LENGTH = 200


def merge_settings(current: Optional[Dict[str, Any]], overrides: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Overlay setting overrides on the current (or default) settings.

    Raises:
        ValidationError: an override has the wrong type or range
    """
    merged = dict(DEFAULT_EXAM_SETTINGS)
    merged.update(current or {})
    try:
        # Parse overrides alone first so camelCase keys map onto field names
        changes = ExamSettings.model_validate(overrides or {}).model_dump(exclude_unset=True)
        validated = ExamSettings.model_validate({**merged, **changes})
    except PydanticValidationError as e:
        errors = FieldErrors()
        for error in e.errors():
            field = ".".join(str(part) for part in error["loc"])
            errors.add(f"settings.{field}", error["msg"])
        errors.raise_if_any("Invalid exam settings")
        raise
    return validated.model_dump()


class ExamService:
    """Service for exams built from the question bank."""

    def __init__(self, session: Session):
        self.session = session

    def _check_questions(self, question_ids: List[str], errors: FieldErrors) -> None:
        if not question_ids:
            return
        found = set(
            self.session.exec(
                select(Question.id).where(
                    Question.id.in_(question_ids),  # type: ignore[attr-defined]
                    Question.is_active == True,  # noqa: E712
                )
            ).all()
        )
        missing = [question_id for question_id in question_ids if question_id not in found]
        if missing:
            errors.add("question_ids", f"Some question IDs are invalid: {', '.join(missing)}")

    def create(self, data: Dict[str, Any], created_by: str) -> Exam:
        """
        Create a draft exam.

        Raises:
            ValidationError: missing title, no questions, unknown question
                ids or bad settings
        """
        errors = FieldErrors()
        title = (data.get("title") or "").strip()
        if not title:
            errors.add("title", "Exam title is required")
        elif len(title) > TITLE_MAX_LENGTH:
            errors.add("title", f"Exam title cannot exceed {TITLE_MAX_LENGTH} characters")

        question_ids = list(dict.fromkeys(data.get("question_ids") or []))
        if not question_ids:
            errors.add("question_ids", "At least one question is required")
        self._check_questions(question_ids, errors)
        errors.raise_if_any()

        exam = Exam(
            title=title,
            description=(data.get("description") or "").strip(),
            question_ids=question_ids,
            settings=merge_settings(None, data.get("settings")),
            created_by=created_by,
        )
        self.session.add(exam)
        self.session.commit()
        self.session.refresh(exam)
        logger.info(f"Created exam {exam.id} with {exam.question_count} questions")
        return exam

    def get(self, exam_id: str) -> Exam:
        exam = self.session.get(Exam, exam_id)
        if exam is None:
            raise NotFoundError("Exam not found")
        return exam

    def questions_of(self, exam: Exam) -> List[Question]:
        """Active questions of an exam in exam order."""
        if not exam.question_ids:
            return []
        questions = self.session.exec(
            select(Question).where(
                Question.id.in_(exam.question_ids),  # type: ignore[attr-defined]
                Question.is_active == True,  # noqa: E712
            )
        ).all()
        by_id = {question.id: question for question in questions}
        return [by_id[question_id] for question_id in exam.question_ids if question_id in by_id]

    def update(self, exam_id: str, patch: Dict[str, Any], updated_by: str) -> Exam:
        """
        Partially update an exam. Settings are merged, not replaced.

        Raises:
            NotFoundError: unknown exam
            ValidationError: empty title, unknown question ids or bad settings
        """
        exam = self.get(exam_id)
        errors = FieldErrors()

        if "title" in patch:
            title = (patch["title"] or "").strip()
            if not title:
                errors.add("title", "Exam title is required")
            elif len(title) > TITLE_MAX_LENGTH:
                errors.add("title", f"Exam title cannot exceed {TITLE_MAX_LENGTH} characters")
            exam.title = title
        if "description" in patch:
            exam.description = (patch["description"] or "").strip()
        if patch.get("question_ids") is not None:
            question_ids = list(dict.fromkeys(patch["question_ids"]))
            self._check_questions(question_ids, errors)
            exam.question_ids = question_ids
        if patch.get("settings") is not None:
            exam.settings = merge_settings(exam.settings, patch["settings"])
        if patch.get("status") is not None:
            exam.status = parse_enum(ExamStatus, patch["status"], "status")

        if errors:
            self.session.rollback()
            errors.raise_if_any()

        exam.updated_by = updated_by
        exam.updated_at = datetime.now(timezone.utc)
        self.session.add(exam)
        self.session.commit()
        self.session.refresh(exam)
        logger.info(f"Updated exam {exam.id}")
        return exam

    def delete(self, exam_id: str) -> None:
        exam = self.get(exam_id)
        self.session.delete(exam)
        self.session.commit()
        logger.info(f"Deleted exam {exam_id}")

    def publish(self, exam_id: str, published_by: str) -> Exam:
        """
        Publish an exam.

        Raises:
            NotFoundError: unknown exam
            ValidationError: the exam has no questions
        """
        exam = self.get(exam_id)
        if not exam.question_ids:
            raise ValidationError.single("question_ids", "Cannot publish exam without questions")

        now = datetime.now(timezone.utc)
        exam.status = ExamStatus.PUBLISHED
        exam.published_at = now
        exam.updated_at = now
        exam.updated_by = published_by
        self.session.add(exam)
        self.session.commit()
        self.session.refresh(exam)
        logger.info(f"Published exam {exam.id}")
        return exam

    def list_exams(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """List exams, newest first."""
        page = max(page, 1)
        limit = max(limit, 1)
        conditions: List[Any] = []
        if status and status != "all":
            conditions.append(Exam.status == parse_enum(ExamStatus, status, "status"))
        if search:
            conditions.append(
                or_(
                    Exam.title.icontains(search, autoescape=True),  # type: ignore[attr-defined]
                    Exam.description.icontains(search, autoescape=True),  # type: ignore[attr-defined]
                )
            )

        total = self.session.exec(select(func.count()).select_from(Exam).where(*conditions)).one()
        exams = self.session.exec(
            select(Exam)
            .where(*conditions)
            .order_by(Exam.created_at.desc())  # type: ignore[attr-defined]
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        return {
            "exams": list(exams),
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_count": total,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        }

    def get_stats(self) -> Dict[str, Any]:
        week_ago = datetime.now(timezone.utc) - timedelta(days=7)
        active_question = Question.is_active == True  # noqa: E712

        def count(model, *conditions) -> int:
            return self.session.exec(select(func.count()).select_from(model).where(*conditions)).one()

        return {
            "total_questions": count(Question, active_question),
            "total_exams": count(Exam),
            "published_exams": count(Exam, Exam.status == ExamStatus.PUBLISHED),
            "draft_exams": count(Exam, Exam.status == ExamStatus.DRAFT),
            "question_types": QuestionService(self.session).count_by_type(),
            "recent_activity": {
                "questions_this_week": count(Question, active_question, Question.created_at >= week_ago),
                "exams_this_week": count(Exam, Exam.created_at >= week_ago),
            },
        }
