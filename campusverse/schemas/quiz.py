from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class QuestionIn(BaseModel):
    prompt: str = Field(..., min_length=1)
    options: List[str] = Field(..., min_length=4, max_length=4)
    correct_option: int = Field(..., ge=0, le=3)
    marks: int = Field(default=1, ge=1)

    @field_validator("options")
    @classmethod
    def _options_not_blank(cls, v: List[str]) -> List[str]:
        cleaned = [str(o).strip() for o in v]
        if any(not o for o in cleaned):
            raise ValueError("options must be non-empty strings")
        return cleaned


class QuizCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    course_id: int = Field(..., ge=1)
    branch: str = Field(..., min_length=1, max_length=64)
    section: str = Field(..., min_length=1, max_length=16)
    duration_minutes: int = Field(..., ge=1)
    # Computed from the questions when omitted
    total_marks: Optional[int] = Field(default=None, ge=1)
    passing_marks: int = Field(..., ge=1)
    start_date: datetime
    end_date: datetime
    questions: List[QuestionIn] = Field(..., min_length=1)


class QuizUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1)
    total_marks: Optional[int] = Field(default=None, ge=1)
    passing_marks: Optional[int] = Field(default=None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    questions: Optional[List[QuestionIn]] = Field(default=None, min_length=1)


class QuizFilters(BaseModel):
    course_id: Optional[int] = None
    branch: Optional[str] = None
    section: Optional[str] = None
    faculty_id: Optional[int] = None
    active_only: bool = False
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1)


class VerifyCodeIn(BaseModel):
    code: str


class AttemptAnswerIn(BaseModel):
    question: int
    selected_option: Optional[int] = None


class AttemptSubmitIn(BaseModel):
    answers: List[AttemptAnswerIn] = Field(default_factory=list)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @model_validator(mode="after")
    def _times_ordered(self):
        if self.start_time and self.end_time and self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class QuestionStudentOut(BaseModel):
    index: int
    prompt: str
    options: List[str]
    marks: int


class QuestionStaffOut(QuestionStudentOut):
    correct_option: int


class BreakdownItem(BaseModel):
    question: int
    selected_option: Optional[int] = None
    correct_option: int
    is_correct: bool
    marks_awarded: int


class AttemptOut(BaseModel):
    attempt_id: int
    quiz_id: int
    student_id: int
    score: int
    total_marks: int
    percentage: int
    passed: bool
    submitted_at: datetime
    duration_seconds: int
    is_late: bool = False
    late_by_seconds: int = 0
