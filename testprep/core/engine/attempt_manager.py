"""
Attempt lifecycle: start or resume, save answers, submit and read results.

Every state change runs in a single transaction on the request's session.
Cross-request invariants (one in-progress attempt per user and test, unique
attempt numbers, at-most-once submission, free counter) are held by row
locks, unique constraints and compare-and-swap updates.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from testprep.core.clock import as_utc, utcnow
from testprep.core.config import settings
from testprep.core.engine.entitlement import EntitlementEvaluator
from testprep.core.engine.question_set import QuestionSetAssembler, SqlQuestionSource
from testprep.core.engine.scoring import ScoreCard, score_attempt
from testprep.core.exceptions import AccessDenied, Conflict, InvalidState, NotFound, ValidationFailed
from testprep.models.attempt import AttemptStatus, TestAttempt, TestAttemptAnswer
from testprep.models.catalog import Question, Test
from testprep.models.user import User

logger = logging.getLogger(__name__)

OPTION_RANGE = range(1, 5)
TEST_INACTIVE = "This test is currently inactive"


@dataclass
class AnswerInput:
    question_id: int
    selected_option: Optional[int] = None
    time_spent: Optional[int] = None


@dataclass
class StartOutcome:
    attempt: TestAttempt
    resumed: bool
    consumed_free_credit: bool = False
    shortfalls: Dict[int, Tuple[int, int]] = field(default_factory=dict)


@dataclass
class SolutionItem:
    question: Question
    answer: Optional[TestAttemptAnswer]

    @property
    def status(self) -> str:
        if self.answer is None or self.answer.selected_option is None:
            return "UNATTEMPTED"
        return "CORRECT" if self.answer.is_correct else "INCORRECT"


class AttemptManager:
    """State machine for a user's attempts at a test."""

    def __init__(
        self,
        db: Session,
        evaluator: Optional[EntitlementEvaluator] = None,
        assembler: Optional[QuestionSetAssembler] = None,
        grace_seconds: Optional[int] = None,
    ):
        self.db = db
        self.evaluator = evaluator or EntitlementEvaluator(db)
        self.assembler = assembler or QuestionSetAssembler(
            SqlQuestionSource(db), strict=settings.ENFORCE_QUESTION_QUOTA
        )
        self.grace = timedelta(
            seconds=settings.ATTEMPT_GRACE_SECONDS if grace_seconds is None else grace_seconds
        )

    # ============= Start / resume =============

    def start(self, user_id: int, test_id: int) -> StartOutcome:
        test = self.db.query(Test).filter(Test.id == test_id).first()
        if not test:
            raise NotFound("Test not found")

        try:
            user = self._lock_user(user_id)

            existing = self._in_progress(user_id, test_id, lock=True)
            if existing is not None:
                if not self._is_past_deadline(existing, test):
                    self.db.commit()
                    logger.info(f"Resuming attempt {existing.id} for user {user_id}, test {test_id}")
                    return StartOutcome(attempt=existing, resumed=True)

                # Expiry stands even if the new start below is refused
                existing.status = AttemptStatus.EXPIRED.value
                self.db.commit()
                logger.info(f"Attempt {existing.id} expired on read (user {user_id}, test {test_id})")
                user = self._lock_user(user_id)

            # Deactivated tests can still be resumed, never started
            if not test.is_active:
                raise InvalidState(TEST_INACTIVE)

            decision = self.evaluator.evaluate(user, test)
            if not decision.granted:
                raise AccessDenied(decision.reason or "Access denied")

            question_set = self.assembler.assemble(test)

            last_number = (
                self.db.query(func.max(TestAttempt.attempt_number))
                .filter(TestAttempt.user_id == user_id, TestAttempt.test_id == test_id)
                .scalar()
            )
            attempt = TestAttempt(
                user_id=user_id,
                test_id=test_id,
                attempt_number=(last_number or 0) + 1,
                status=AttemptStatus.IN_PROGRESS.value,
                question_ids=question_set.question_ids,
                question_set_seed=question_set.seed,
                total_questions=len(question_set.question_ids),
                started_at=utcnow(),
            )
            self.db.add(attempt)

            consumed = False
            if decision.consumes_free_credit:
                consumed = self._consume_free_credit(user, test)

            self.db.flush()
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            winner = self._in_progress(user_id, test_id)
            if winner is not None:
                logger.info(f"Concurrent start for user {user_id}, test {test_id}; resuming attempt {winner.id}")
                return StartOutcome(attempt=winner, resumed=True)
            raise Conflict("Another attempt was started at the same time, please retry")
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Started attempt {attempt.id} (#{attempt.attempt_number}) for user {user_id}, "
            f"test {test_id}, {attempt.total_questions} questions, free credit: {consumed}"
        )
        return StartOutcome(
            attempt=attempt,
            resumed=False,
            consumed_free_credit=consumed,
            shortfalls=question_set.shortfalls,
        )

    def _lock_user(self, user_id: int) -> User:
        """Row-lock the user; serializes concurrent starts of the same user."""
        user = (
            self.db.query(User)
            .filter(User.id == user_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if not user:
            raise NotFound("User not found")
        return user

    def _consume_free_credit(self, user: User, test: Test) -> bool:
        """Increment the free counter only while it is still under the limit."""
        updated = (
            self.db.query(User)
            .filter(User.id == user.id, User.free_tests_used < self.evaluator.free_limit)
            .update({User.free_tests_used: User.free_tests_used + 1}, synchronize_session=False)
        )
        if updated == 1:
            return True

        # The last free credit went to a concurrent start
        if self.evaluator.active_subscription(int(user.id), int(test.category_id)) is None:
            raise AccessDenied("You have used your free attempts. Please purchase a subscription to access this test.")
        return False

    # ============= Answers =============

    def save_answer(
        self,
        attempt_id: int,
        user_id: int,
        question_id: int,
        selected_option: Optional[int] = None,
        time_spent: Optional[int] = None,
    ) -> TestAttemptAnswer:
        """Upsert one answer. No grading happens here."""
        answer_input = AnswerInput(question_id, selected_option, time_spent)
        for retry in (False, True):
            try:
                attempt = self._get_owned_attempt(attempt_id, user_id, lock=True)
                self._require_in_progress(attempt)
                if self._is_past_deadline(attempt, attempt.test):
                    raise InvalidState("Time is up for this attempt")
                self._validate_answer(attempt, answer_input)
                answer = self._upsert_answer(attempt, answer_input)
                self.db.commit()
                return answer
            except IntegrityError:
                # Same question inserted concurrently; the retry updates it
                self.db.rollback()
                if retry:
                    raise Conflict("Answer was saved concurrently, please retry")
            except Exception:
                self.db.rollback()
                raise
        raise Conflict("Answer could not be saved")

    def _validate_answer(self, attempt: TestAttempt, answer: AnswerInput) -> None:
        if answer.question_id not in attempt.question_ids:
            raise ValidationFailed(f"Question {answer.question_id} is not part of this attempt")
        if answer.selected_option is not None and answer.selected_option not in OPTION_RANGE:
            raise ValidationFailed("Selected option must be between 1 and 4")
        if answer.time_spent is not None and answer.time_spent < 0:
            raise ValidationFailed("Time spent cannot be negative")

    def _upsert_answer(self, attempt: TestAttempt, answer: AnswerInput) -> TestAttemptAnswer:
        row = (
            self.db.query(TestAttemptAnswer)
            .filter(
                TestAttemptAnswer.attempt_id == attempt.id,
                TestAttemptAnswer.question_id == answer.question_id,
            )
            .first()
        )
        if row is None:
            row = TestAttemptAnswer(attempt_id=attempt.id, question_id=answer.question_id)
            self.db.add(row)
        row.selected_option = answer.selected_option
        if answer.time_spent is not None:
            row.time_spent = answer.time_spent
        self.db.flush()
        return row

    # ============= Submission =============

    def submit(
        self,
        attempt_id: int,
        user_id: int,
        final_answers: Iterable[AnswerInput] = (),
    ) -> Tuple[TestAttempt, ScoreCard]:
        """Score the attempt exactly once and finalize it."""
        try:
            attempt = self._get_owned_attempt(attempt_id, user_id, lock=True)
            self._require_in_progress(attempt)
            test = attempt.test

            # Last write per question wins within the batch
            batch = {a.question_id: a for a in final_answers}
            if batch:
                if self._is_past_deadline(attempt, test):
                    logger.warning(f"Attempt {attempt.id} submitted after deadline; ignoring {len(batch)} final answers")
                else:
                    for answer in batch.values():
                        self._validate_answer(attempt, answer)
                        self._upsert_answer(attempt, answer)

            answers = (
                self.db.query(TestAttemptAnswer)
                .filter(TestAttemptAnswer.attempt_id == attempt.id)
                .all()
            )
            question_ids = list(attempt.question_ids)
            answer_key = {
                row.id: row.correct_option
                for row in self.db.query(Question.id, Question.correct_option)
                .filter(Question.id.in_(question_ids))
                .all()
            }
            card = score_attempt(
                question_ids,
                answer_key,
                {a.question_id: a.selected_option for a in answers},
                test.positive_marks,
                test.negative_marks,
            )

            scored = card.by_question()
            for answer in answers:
                result = scored.get(answer.question_id)
                if result is None:
                    continue
                answer.is_correct = result.is_correct
                answer.marks_obtained = result.marks

            updated = (
                self.db.query(TestAttempt)
                .filter(
                    TestAttempt.id == attempt.id,
                    TestAttempt.status == AttemptStatus.IN_PROGRESS.value,
                )
                .update(
                    {
                        TestAttempt.status: AttemptStatus.SUBMITTED.value,
                        TestAttempt.submitted_at: utcnow(),
                        TestAttempt.attempted_count: card.attempted_count,
                        TestAttempt.correct_count: card.correct_count,
                        TestAttempt.incorrect_count: card.incorrect_count,
                        TestAttempt.total_marks: card.total_marks,
                        TestAttempt.percentage: card.percentage,
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                raise InvalidState("Test already submitted")
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise Conflict("Attempt changed while submitting, please retry")
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(attempt)
        logger.info(
            f"Attempt {attempt.id} submitted: {card.correct_count} correct, "
            f"{card.incorrect_count} incorrect, marks {card.total_marks}, {card.percentage}%"
        )
        return attempt, card

    # ============= Read-only projections =============

    def questions_of(self, attempt_id: int, user_id: int) -> Tuple[TestAttempt, List[Question], Dict[int, TestAttemptAnswer], int]:
        """Questions in frozen order, saved answers and seconds left."""
        attempt = self._get_owned_attempt(attempt_id, user_id)
        self._require_in_progress(attempt)
        questions = self._frozen_questions(attempt)
        answers = {a.question_id: a for a in attempt.answers}
        return attempt, questions, answers, self.time_left_seconds(attempt, attempt.test)

    def result_of(self, attempt_id: int, user_id: int) -> TestAttempt:
        attempt = self._get_owned_attempt(attempt_id, user_id)
        self._require_submitted(attempt)
        return attempt

    def solution_of(self, attempt_id: int, user_id: int) -> Tuple[TestAttempt, List[SolutionItem]]:
        attempt = self._get_owned_attempt(attempt_id, user_id)
        self._require_submitted(attempt)
        answers = {a.question_id: a for a in attempt.answers}
        items = [SolutionItem(question=q, answer=answers.get(q.id)) for q in self._frozen_questions(attempt)]
        return attempt, items

    def history(self, user_id: int, test_id: Optional[int] = None, limit: int = 20) -> List[TestAttempt]:
        query = self.db.query(TestAttempt).filter(TestAttempt.user_id == user_id)
        if test_id is not None:
            query = query.filter(TestAttempt.test_id == test_id)
        return query.order_by(TestAttempt.started_at.desc(), TestAttempt.id.desc()).limit(limit).all()

    # ============= Helpers =============

    def deadline(self, attempt: TestAttempt, test: Test) -> datetime:
        return as_utc(attempt.started_at) + timedelta(minutes=int(test.duration_minutes))

    def time_left_seconds(self, attempt: TestAttempt, test: Test) -> int:
        remaining = (self.deadline(attempt, test) - utcnow()).total_seconds()
        return max(0, int(remaining))

    def _is_past_deadline(self, attempt: TestAttempt, test: Test) -> bool:
        return utcnow() > self.deadline(attempt, test) + self.grace

    def _in_progress(self, user_id: int, test_id: int, lock: bool = False) -> Optional[TestAttempt]:
        query = self.db.query(TestAttempt).filter(
            TestAttempt.user_id == user_id,
            TestAttempt.test_id == test_id,
            TestAttempt.status == AttemptStatus.IN_PROGRESS.value,
        )
        if lock:
            query = query.with_for_update().populate_existing()
        return query.first()

    def _get_owned_attempt(self, attempt_id: int, user_id: int, lock: bool = False) -> TestAttempt:
        query = self.db.query(TestAttempt).filter(TestAttempt.id == attempt_id)
        if lock:
            query = query.with_for_update().populate_existing()
        attempt = query.first()
        if not attempt:
            raise NotFound("Test attempt not found")
        if attempt.user_id != user_id:
            raise AccessDenied("You are not allowed to access this attempt")
        return attempt

    def _frozen_questions(self, attempt: TestAttempt) -> List[Question]:
        question_ids = list(attempt.question_ids)
        rows = self.db.query(Question).filter(Question.id.in_(question_ids)).all()
        by_id = {q.id: q for q in rows}
        return [by_id[qid] for qid in question_ids if qid in by_id]

    @staticmethod
    def _require_in_progress(attempt: TestAttempt) -> None:
        if attempt.status == AttemptStatus.SUBMITTED.value:
            raise InvalidState("Test already submitted")
        if attempt.status != AttemptStatus.IN_PROGRESS.value:
            raise InvalidState(f"Attempt is {attempt.status.lower()}")

    @staticmethod
    def _require_submitted(attempt: TestAttempt) -> None:
        if attempt.status != AttemptStatus.SUBMITTED.value:
            raise InvalidState("Test is not yet submitted")
