"""
Pydantic schemas for test attempts.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class AccessCheck(BaseModel):
    """Entitlement preview for a test."""

    test_id: int
    granted: bool
    consumes_free_credit: bool
    free_tests_used: int
    free_test_limit: int
    reason: Optional[str] = None


class QuestionForAttempt(BaseModel):
    """Question as shown while taking a test (no answer key)."""

    question_id: int
    question_text: str
    question_image_url: Optional[str] = None
    options: List[str]
    selected_option: Optional[int] = None


class AttemptStarted(BaseModel):
    """Response of starting or resuming an attempt."""

    attempt_id: int
    attempt_number: int
    test_id: int
    status: str
    resumed: bool
    consumed_free_credit: bool
    duration_minutes: int
    total_questions: int
    time_left_seconds: int
    questions: List[QuestionForAttempt]


class AttemptQuestions(BaseModel):
    attempt_id: int
    status: str
    time_left_seconds: int
    questions: List[QuestionForAttempt]


class AnswerSave(BaseModel):
    """Auto-save of a single answer. ``selected_option: null`` clears it."""

    question_id: int
    selected_option: Optional[int] = Field(default=None, ge=1, le=4)
    time_spent: Optional[int] = Field(default=None, ge=0, description="Seconds spent on the question")


class AnswerSaved(BaseModel):
    attempt_id: int
    question_id: int
    selected_option: Optional[int] = None
    time_spent: Optional[int] = None
    saved: bool = True


class AttemptSubmit(BaseModel):
    """Optional final batch of answers sent with the submission."""

    answers: List[AnswerSave] = Field(default_factory=list)


class ResultSummary(BaseModel):
    attempt_id: int
    test_id: int
    attempt_number: int
    status: str
    total_questions: int
    attempted_count: int
    correct_count: int
    incorrect_count: int
    unattempted_count: int
    total_marks: float
    percentage: float
    accuracy: float
    started_at: datetime
    submitted_at: Optional[datetime] = None


class SolutionEntry(BaseModel):
    question_id: int
    question_text: str
    question_image_url: Optional[str] = None
    options: List[str]
    correct_option: int
    user_selected_option: Optional[int] = None
    status: str  # CORRECT, INCORRECT, UNATTEMPTED
    marks_obtained: float
    time_spent: Optional[int] = None
    explanation: Optional[str] = None
    difficulty: Optional[str] = None


class SolutionView(BaseModel):
    attempt_id: int
    test_name: str
    total_marks: float
    percentage: float
    solutions: List[SolutionEntry]


class AttemptHistoryItem(BaseModel):
    attempt_id: int
    test_id: int
    attempt_number: int
    status: str
    total_marks: Optional[float] = None
    percentage: Optional[float] = None
    started_at: datetime
    submitted_at: Optional[datetime] = None
