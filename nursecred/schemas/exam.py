"""
Exam schemas for API request/response validation.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from nursecred.models.exam import ExamStatus
from nursecred.schemas.question import QuestionResponse


class ExamSettings(BaseModel):
    """Delivery settings; camelCase names are accepted on input."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    time_limit: Optional[int] = Field(default=None, gt=0, validation_alias=AliasChoices("time_limit", "timeLimit"))
    shuffle_questions: bool = Field(
        default=False, validation_alias=AliasChoices("shuffle_questions", "shuffleQuestions")
    )
    show_results: bool = Field(default=True, validation_alias=AliasChoices("show_results", "showResults"))
    allow_review: bool = Field(default=True, validation_alias=AliasChoices("allow_review", "allowReview"))
    passing_score: int = Field(
        default=70, ge=0, le=100, validation_alias=AliasChoices("passing_score", "passingScore")
    )
    max_attempts: int = Field(default=1, ge=1, validation_alias=AliasChoices("max_attempts", "maxAttempts"))


class ExamCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: Optional[str] = None
    question_ids: List[str] = Field(validation_alias=AliasChoices("question_ids", "questionIds"))
    settings: Optional[Dict[str, Any]] = None


class ExamUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: Optional[str] = None
    description: Optional[str] = None
    question_ids: Optional[List[str]] = Field(
        default=None, validation_alias=AliasChoices("question_ids", "questionIds")
    )
    settings: Optional[Dict[str, Any]] = None
    status: Optional[ExamStatus] = None

    def patch(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ExamResponse(BaseModel):
    id: str
    title: str
    description: str
    question_ids: List[str]
    question_count: int
    settings: ExamSettings
    status: ExamStatus
    created_by: str
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    published_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ExamDetail(ExamResponse):
    """Exam with its questions in exam order."""

    questions: List[QuestionResponse] = Field(default_factory=list)


class ExamPage(BaseModel):
    exams: List[ExamResponse]
    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool


class RecentActivity(BaseModel):
    questions_this_week: int
    exams_this_week: int


class ExamStats(BaseModel):
    total_questions: int
    total_exams: int
    published_exams: int
    draft_exams: int
    question_types: Dict[str, int]
    recent_activity: RecentActivity
