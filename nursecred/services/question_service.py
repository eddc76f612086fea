"""
Question bank service.
"""
import math
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import UploadFile
from sqlalchemy import func
from sqlmodel import Session, select

from nursecred.core.config import settings
from nursecred.core.exceptions import NotFoundError, ValidationError
from nursecred.core.logging import get_logger
from nursecred.models.question import (
    CHOICE_TYPES,
    Difficulty,
    Question,
    QuestionCategory,
    QuestionType,
)
from nursecred.services.file_storage_service import FileStorageService
from nursecred.services.validators import FieldErrors, clean_tags, is_url, parse_enum

logger = get_logger(__name__)

TEXT_MIN_LENGTH = 10
TEXT_MAX_LENGTH = 1000
EXPLANATION_MAX_LENGTH = 2000
MIN_OPTIONS = 2
MAX_OPTIONS = 6
MAX_TAGS = 5

IMAGE_EXTENSIONS = (".jpeg", ".jpg", ".png", ".gif", ".webp")
IMAGE_MIME_TYPES = ("image/jpeg", "image/png", "image/gif", "image/webp")

QUESTION_FIELDS = (
    "text",
    "type",
    "options",
    "correct_answer",
    "category",
    "difficulty",
    "explanation",
    "image",
    "tags",
)


def _enum_or_error(enum_cls, value: Any, field: str, errors: FieldErrors):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        errors.add(field, f"Invalid {field} value. Allowed: {allowed}")
        return None


def validate_question(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Normalize a full question and check every constraint.

    Returns:
        Cleaned field values

    Raises:
        ValidationError: listing every violation
    """
    errors = FieldErrors()
    cleaned: Dict[str, Any] = {}

    text = (data.get("text") or "").strip()
    if not text:
        errors.add("text", "Question text is required")
    elif not TEXT_MIN_LENGTH <= len(text) <= TEXT_MAX_LENGTH:
        errors.add("text", f"Question text must be {TEXT_MIN_LENGTH}-{TEXT_MAX_LENGTH} characters long")
    cleaned["text"] = text

    question_type = None
    if not data.get("type"):
        errors.add("type", "Question type is required")
    else:
        question_type = _enum_or_error(QuestionType, data["type"], "type", errors)
    cleaned["type"] = question_type

    raw_options = data.get("options") or []
    if not isinstance(raw_options, list):
        errors.add("options", "Options must be a list")
        raw_options = []
    options = [str(option).strip() for option in raw_options]

    correct_answer = data.get("correct_answer")
    if question_type in CHOICE_TYPES:
        if any(not option for option in options) or not MIN_OPTIONS <= len(options) <= MAX_OPTIONS:
            errors.add("options", f"Choice questions must have {MIN_OPTIONS}-{MAX_OPTIONS} non-empty options")
        if question_type == QuestionType.MULTIPLE_CHOICE:
            if isinstance(correct_answer, str):
                correct_answer = correct_answer.strip()
            if not isinstance(correct_answer, str) or correct_answer not in options:
                errors.add("correct_answer", "Correct answer must be one of the provided options")
        else:
            if (
                not isinstance(correct_answer, list)
                or not correct_answer
                or any(str(answer).strip() not in options for answer in correct_answer)
            ):
                errors.add("correct_answer", "Correct answers must be a non-empty list of the provided options")
            else:
                correct_answer = [str(answer).strip() for answer in correct_answer]
    options = [option for option in options if option]
    cleaned["options"] = options
    cleaned["correct_answer"] = correct_answer

    cleaned["category"] = _enum_or_error(
        QuestionCategory, data.get("category") or QuestionCategory.OTHER.value, "category", errors
    )
    cleaned["difficulty"] = _enum_or_error(
        Difficulty, data.get("difficulty") or Difficulty.MEDIUM.value, "difficulty", errors
    )

    explanation = data.get("explanation")
    if explanation is not None:
        explanation = str(explanation).strip() or None
        if explanation and len(explanation) > EXPLANATION_MAX_LENGTH:
            errors.add("explanation", f"Explanation cannot exceed {EXPLANATION_MAX_LENGTH} characters")
    cleaned["explanation"] = explanation

    image = data.get("image") or None
    if image is not None and not is_url(image):
        errors.add("image", "Invalid image URL format")
    cleaned["image"] = image

    tags = clean_tags(data.get("tags") or [])
    if len(tags) > MAX_TAGS:
        errors.add("tags", f"Cannot have more than {MAX_TAGS} tags")
    cleaned["tags"] = tags

    errors.raise_if_any()
    return cleaned


class QuestionService:
    """Service for the question bank."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, data: Dict[str, Any], created_by: str) -> Question:
        cleaned = validate_question(data)
        question = Question(**cleaned, created_by=created_by)
        self.session.add(question)
        self.session.commit()
        self.session.refresh(question)
        logger.info(f"Created question {question.id} ({question.type.value}) by {created_by}")
        return question

    def get(self, question_id: str) -> Question:
        question = self.session.get(Question, question_id)
        if question is None or not question.is_active:
            raise NotFoundError("Question not found")
        return question

    def update(self, question_id: str, patch: Dict[str, Any]) -> Question:
        """
        Apply a partial update and revalidate the whole question.

        Raises:
            NotFoundError: no active question with that id
            ValidationError: the merged question violates a constraint
        """
        question = self.get(question_id)
        merged = {field: getattr(question, field) for field in QUESTION_FIELDS}
        merged.update({key: value for key, value in patch.items() if key in QUESTION_FIELDS})
        cleaned = validate_question(merged)

        for field, value in cleaned.items():
            setattr(question, field, value)
        question.updated_at = datetime.now(timezone.utc)
        self.session.add(question)
        self.session.commit()
        self.session.refresh(question)
        logger.info(f"Updated question {question.id}")
        return question

    def soft_delete(self, question_id: str) -> None:
        question = self.get(question_id)
        question.is_active = False
        question.updated_at = datetime.now(timezone.utc)
        self.session.add(question)
        self.session.commit()
        logger.info(f"Deactivated question {question_id}")

    def list_questions(
        self,
        question_type: Optional[str] = None,
        category: Optional[str] = None,
        difficulty: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Dict[str, Any]:
        """List active questions, newest first."""
        page = max(page, 1)
        limit = max(limit, 1)
        conditions: List[Any] = [Question.is_active == True]  # noqa: E712
        if question_type and question_type != "all":
            conditions.append(Question.type == parse_enum(QuestionType, question_type, "type"))
        if category and category != "all":
            conditions.append(Question.category == parse_enum(QuestionCategory, category, "category"))
        if difficulty and difficulty != "all":
            conditions.append(Question.difficulty == parse_enum(Difficulty, difficulty, "difficulty"))
        if search:
            conditions.append(Question.text.icontains(search, autoescape=True))  # type: ignore[attr-defined]

        total = self.session.exec(select(func.count()).select_from(Question).where(*conditions)).one()
        questions = self.session.exec(
            select(Question)
            .where(*conditions)
            .order_by(Question.created_at.desc())  # type: ignore[attr-defined]
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        return {
            "questions": list(questions),
            "current_page": page,
            "total_pages": math.ceil(total / limit),
            "total_count": total,
            "has_next": page * limit < total,
            "has_prev": page > 1,
        }

    def by_category(self, category: str) -> List[Question]:
        query = select(Question).where(
            Question.category == parse_enum(QuestionCategory, category, "category"),
            Question.is_active == True,  # noqa: E712
        )
        return list(self.session.exec(query.order_by(Question.created_at.desc())))  # type: ignore[attr-defined]

    def count_by_type(self) -> Dict[str, int]:
        rows = self.session.exec(
            select(Question.type, func.count())
            .where(Question.is_active == True)  # noqa: E712
            .group_by(Question.type)
        ).all()
        counts = {question_type.value: 0 for question_type in QuestionType}
        for question_type, count in rows:
            counts[question_type.value] = count
        return counts


def save_question_image(storage: FileStorageService, image: UploadFile) -> str:
    """
    Store an image for use in a question.

    Returns:
        The stored file name

    Raises:
        ValidationError: missing file, not an image, or too large
    """
    if image is None or not image.filename:
        raise ValidationError.single("image", "No image file provided")
    extension = Path(image.filename).suffix.lower()
    if extension not in IMAGE_EXTENSIONS or image.content_type not in IMAGE_MIME_TYPES:
        raise ValidationError.single("image", "Only image files are allowed")

    file_name, _, _ = storage.save_upload(
        image, storage.images_path.name, max_bytes=settings.MAX_IMAGE_SIZE_MB * 1024 * 1024
    )
    return file_name
