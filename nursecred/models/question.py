"""
Question bank model.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, List, Optional
from uuid import uuid4

from sqlmodel import JSON, Column, Field, SQLModel


class QuestionType(str, Enum):
    SHORT_ANSWER = "short-answer"
    MULTIPLE_CHOICE = "multiple-choice"
    CHECKBOX = "checkbox"
    CASE_STUDY = "case-study"


CHOICE_TYPES = (QuestionType.MULTIPLE_CHOICE, QuestionType.CHECKBOX)


class QuestionCategory(str, Enum):
    FUNDAMENTAL_NURSING = "Fundamental Nursing"
    MEDICAL_SURGICAL = "Medical-Surgical"
    PEDIATRIC = "Pediatric"
    OBSTETRIC = "Obstetric"
    PSYCHIATRIC = "Psychiatric"
    COMMUNITY_HEALTH = "Community Health"
    CRITICAL_CARE = "Critical Care"
    EMERGENCY = "Emergency"
    OTHER = "Other"


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class Question(SQLModel, table=True):
    """
    A question in the bank.

    correct_answer holds a single option for multiple-choice questions and
    a list of options for checkbox questions.
    """

    __tablename__ = "questions"  # type: ignore

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    text: str = Field(max_length=1000)
    type: QuestionType = Field(index=True)
    options: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    correct_answer: Optional[Any] = Field(default=None, sa_column=Column(JSON))
    category: QuestionCategory = Field(default=QuestionCategory.OTHER, index=True)
    difficulty: Difficulty = Field(default=Difficulty.MEDIUM, index=True)
    explanation: Optional[str] = Field(default=None, max_length=2000)
    image: Optional[str] = None
    tags: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_by: str = Field(foreign_key="users.id", index=True)
    is_active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def simplified(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "type": self.type,
            "category": self.category,
            "difficulty": self.difficulty,
        }
