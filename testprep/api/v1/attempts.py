"""
Attempt endpoints: questions, answer auto-save, submission and results.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from testprep.api.v1.tests import question_views
from testprep.core.dependencies import get_current_active_user, get_db
from testprep.core.engine import AnswerInput, AttemptManager
from testprep.core.engine.scoring import accuracy_of
from testprep.models.attempt import TestAttempt
from testprep.models.user import User
from testprep.schemas.attempt import (
    AnswerSave,
    AnswerSaved,
    AttemptHistoryItem,
    AttemptQuestions,
    AttemptSubmit,
    ResultSummary,
    SolutionEntry,
    SolutionView,
)

router = APIRouter()


def _as_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def result_summary(attempt: TestAttempt) -> ResultSummary:
    attempted = attempt.attempted_count or 0
    return ResultSummary(
        attempt_id=attempt.id,
        test_id=attempt.test_id,
        attempt_number=attempt.attempt_number,
        status=attempt.status,
        total_questions=attempt.total_questions,
        attempted_count=attempted,
        correct_count=attempt.correct_count or 0,
        incorrect_count=attempt.incorrect_count or 0,
        unattempted_count=attempt.total_questions - attempted,
        total_marks=_as_float(attempt.total_marks) or 0.0,
        percentage=_as_float(attempt.percentage) or 0.0,
        accuracy=float(accuracy_of(attempt.correct_count or 0, attempted)),
        started_at=attempt.started_at,
        submitted_at=attempt.submitted_at,
    )


@router.get("/history", response_model=List[AttemptHistoryItem])
def attempt_history(
    test_id: Optional[int] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """List the current user's attempts, newest first."""
    attempts = AttemptManager(db).history(current_user.id, test_id=test_id, limit=limit)
    return [
        AttemptHistoryItem(
            attempt_id=a.id,
            test_id=a.test_id,
            attempt_number=a.attempt_number,
            status=a.status,
            total_marks=_as_float(a.total_marks),
            percentage=_as_float(a.percentage),
            started_at=a.started_at,
            submitted_at=a.submitted_at,
        )
        for a in attempts
    ]


@router.get("/{attempt_id}/questions", response_model=AttemptQuestions)
def get_attempt_questions(
    attempt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """Questions of an in-progress attempt in their frozen order."""
    attempt, questions, answers, time_left = AttemptManager(db).questions_of(attempt_id, current_user.id)
    return AttemptQuestions(
        attempt_id=attempt.id,
        status=attempt.status,
        time_left_seconds=time_left,
        questions=question_views(questions, answers),
    )


@router.put("/{attempt_id}/answers", response_model=AnswerSaved)
def save_answer(
    attempt_id: int,
    answer_data: AnswerSave,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Save or clear one answer while the attempt is in progress.

    Args:
        attempt_id: Attempt ID
        answer_data: Question, selected option (null clears) and time spent
        db: Database session
        current_user: Current authenticated user

    Returns:
        The stored answer
    """
    row = AttemptManager(db).save_answer(
        attempt_id,
        current_user.id,
        answer_data.question_id,
        answer_data.selected_option,
        answer_data.time_spent,
    )
    return AnswerSaved(
        attempt_id=attempt_id,
        question_id=row.question_id,
        selected_option=row.selected_option,
        time_spent=row.time_spent,
    )


@router.post("/{attempt_id}/submit", response_model=ResultSummary)
def submit_attempt(
    attempt_id: int,
    submit_data: Optional[AttemptSubmit] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Submit an attempt and score it.

    A final batch of answers may be sent along; it is saved before scoring.
    Submitting twice is rejected and leaves the first score in place.
    """
    final_answers = [
        AnswerInput(a.question_id, a.selected_option, a.time_spent)
        for a in (submit_data.answers if submit_data else [])
    ]
    attempt, _ = AttemptManager(db).submit(attempt_id, current_user.id, final_answers)
    return result_summary(attempt)


@router.get("/{attempt_id}/result", response_model=ResultSummary)
def get_result(
    attempt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    attempt = AttemptManager(db).result_of(attempt_id, current_user.id)
    return result_summary(attempt)


@router.get("/{attempt_id}/solution", response_model=SolutionView)
def get_solution(
    attempt_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """Per-question review with the correct option and explanation."""
    attempt, items = AttemptManager(db).solution_of(attempt_id, current_user.id)

    solutions = []
    for item in items:
        question, answer = item.question, item.answer
        solutions.append(
            SolutionEntry(
                question_id=question.id,
                question_text=question.question_text,
                question_image_url=question.question_image_url,
                options=question.options,
                correct_option=question.correct_option,
                user_selected_option=answer.selected_option if answer else None,
                status=item.status,
                marks_obtained=_as_float(answer.marks_obtained) if answer else 0.0,
                time_spent=answer.time_spent if answer else None,
                explanation=question.explanation,
                difficulty=question.difficulty_level,
            )
        )

    return SolutionView(
        attempt_id=attempt.id,
        test_name=attempt.test.name,
        total_marks=_as_float(attempt.total_marks) or 0.0,
        percentage=_as_float(attempt.percentage) or 0.0,
        solutions=solutions,
    )
