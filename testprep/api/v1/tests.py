"""
Test access and attempt start endpoints.
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from testprep.core.dependencies import get_current_active_user, get_db
from testprep.core.engine import AttemptManager, EntitlementDecision, EntitlementEvaluator
from testprep.core.engine.attempt_manager import TEST_INACTIVE
from testprep.core.exceptions import NotFound
from testprep.models.attempt import TestAttemptAnswer
from testprep.models.catalog import Question, Test
from testprep.models.user import User
from testprep.schemas.attempt import AccessCheck, AttemptStarted, QuestionForAttempt

router = APIRouter()


def question_views(
    questions: List[Question], answers: Dict[int, TestAttemptAnswer]
) -> List[QuestionForAttempt]:
    """Questions without their answer key, with the user's saved selection."""
    views = []
    for question in questions:
        saved: Optional[TestAttemptAnswer] = answers.get(question.id)
        views.append(
            QuestionForAttempt(
                question_id=question.id,
                question_text=question.question_text,
                question_image_url=question.question_image_url,
                options=question.options,
                selected_option=saved.selected_option if saved else None,
            )
        )
    return views


@router.get("/{test_id}/access", response_model=AccessCheck)
def check_access(
    test_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Preview whether the current user may start a test.

    Nothing is consumed or written.
    """
    test = db.query(Test).filter(Test.id == test_id).first()
    if not test:
        raise NotFound("Test not found")

    evaluator = EntitlementEvaluator(db)
    if not test.is_active:
        decision = EntitlementDecision.denied(TEST_INACTIVE)
    else:
        decision = evaluator.evaluate(current_user, test)
    return AccessCheck(
        test_id=test.id,
        granted=decision.granted,
        consumes_free_credit=decision.consumes_free_credit,
        free_tests_used=current_user.free_tests_used,
        free_test_limit=evaluator.free_limit,
        reason=decision.reason,
    )


@router.post("/{test_id}/attempts", response_model=AttemptStarted, status_code=status.HTTP_201_CREATED)
def start_attempt(
    test_id: int,
    response: Response,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    Start a test attempt, or resume the one already in progress.

    Args:
        test_id: Test to attempt
        response: Used to answer 200 instead of 201 on resume
        db: Database session
        current_user: Current authenticated user

    Returns:
        The attempt with its frozen question list

    Raises:
        NotFound, InvalidState, AccessDenied, Conflict
    """
    manager = AttemptManager(db)
    outcome = manager.start(current_user.id, test_id)
    if outcome.resumed:
        response.status_code = status.HTTP_200_OK

    attempt, questions, answers, time_left = manager.questions_of(outcome.attempt.id, current_user.id)
    return AttemptStarted(
        attempt_id=attempt.id,
        attempt_number=attempt.attempt_number,
        test_id=attempt.test_id,
        status=attempt.status,
        resumed=outcome.resumed,
        consumed_free_credit=outcome.consumed_free_credit,
        duration_minutes=attempt.test.duration_minutes,
        total_questions=attempt.total_questions,
        time_left_seconds=time_left,
        questions=question_views(questions, answers),
    )
