"""
Exam model: an ordered selection of bank questions plus delivery settings.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlmodel import JSON, Column, Field, SQLModel

DEFAULT_EXAM_SETTINGS: Dict[str, Any] = {
    "time_limit": None,
    "shuffle_questions": False,
    "show_results": True,
    "allow_review": True,
    "passing_score": 70,
    "max_attempts": 1,
}


class ExamStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class Exam(SQLModel, table=True):
    __tablename__ = "exams"  # type: ignore

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    title: str = Field(max_length=200)
    description: str = Field(default="")
    question_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    settings: Dict[str, Any] = Field(
        default_factory=lambda: dict(DEFAULT_EXAM_SETTINGS), sa_column=Column(JSON, nullable=False)
    )
    status: ExamStatus = Field(default=ExamStatus.DRAFT, index=True)
    created_by: str = Field(foreign_key="users.id")
    updated_by: Optional[str] = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    published_at: Optional[datetime] = None

    @property
    def question_count(self) -> int:
        return len(self.question_ids)
