"""
Question bank schemas.

Requests accept both English and Indonesian field names (``pertanyaan``,
``pilihan``, ``jawabanBenar``, ``kategori``, ``tingkatKesulitan``,
``penjelasan``); responses always use the English names.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from nursecred.models.question import Difficulty, QuestionCategory, QuestionType


class QuestionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(validation_alias=AliasChoices("text", "question", "pertanyaan"))
    type: str
    options: List[str] = Field(default_factory=list, validation_alias=AliasChoices("options", "pilihan"))
    correct_answer: Optional[Any] = Field(
        default=None, validation_alias=AliasChoices("correct_answer", "correctAnswer", "jawabanBenar")
    )
    category: Optional[str] = Field(default=None, validation_alias=AliasChoices("category", "kategori"))
    difficulty: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("difficulty", "tingkatKesulitan")
    )
    explanation: Optional[str] = Field(default=None, validation_alias=AliasChoices("explanation", "penjelasan"))
    image: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class QuestionUpdate(BaseModel):
    """Partial update; only the fields sent are changed."""

    model_config = ConfigDict(populate_by_name=True)

    text: Optional[str] = Field(default=None, validation_alias=AliasChoices("text", "question", "pertanyaan"))
    type: Optional[str] = None
    options: Optional[List[str]] = Field(default=None, validation_alias=AliasChoices("options", "pilihan"))
    correct_answer: Optional[Any] = Field(
        default=None, validation_alias=AliasChoices("correct_answer", "correctAnswer", "jawabanBenar")
    )
    category: Optional[str] = Field(default=None, validation_alias=AliasChoices("category", "kategori"))
    difficulty: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("difficulty", "tingkatKesulitan")
    )
    explanation: Optional[str] = Field(default=None, validation_alias=AliasChoices("explanation", "penjelasan"))
    image: Optional[str] = None
    tags: Optional[List[str]] = None

    def patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class QuestionResponse(BaseModel):
    id: str
    text: str
    type: QuestionType
    options: List[str]
    correct_answer: Optional[Any] = None
    category: QuestionCategory
    difficulty: Difficulty
    explanation: Optional[str] = None
    image: Optional[str] = None
    tags: List[str]
    created_by: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class QuestionSummary(BaseModel):
    id: str
    text: str
    type: QuestionType
    category: QuestionCategory
    difficulty: Difficulty


class QuestionPage(BaseModel):
    questions: List[QuestionResponse]
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool


class ImageUploadResponse(BaseModel):
    success: bool = True
    image_url: str
    filename: str
