"""
Question set assembly for new attempts.

Selects question IDs for a test either from a single subject or from the
category blueprint (subject -> questions per test) of a mock test.
"""
import logging
import random
import secrets
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

from sqlalchemy.orm import Session

from testprep.core.exceptions import InvalidState
from testprep.models.catalog import CategorySubject, Question, Test, Topic

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlueprintEntry:
    subject_id: int
    questions_per_test: int


@dataclass
class AssembledQuestionSet:
    question_ids: List[int]
    seed: str
    # subject_id -> (requested, available) for under-filled subjects
    shortfalls: Dict[int, Tuple[int, int]] = field(default_factory=dict)

    @property
    def is_complete(self) -> bool:
        return not self.shortfalls


class QuestionSource(Protocol):
    """Read-only catalog queries the assembler depends on."""

    def question_ids_for_subject(self, subject_id: int) -> List[int]:
        ...

    def blueprint_for_category(self, category_id: int) -> List[BlueprintEntry]:
        ...


class SqlQuestionSource:
    """QuestionSource backed by the catalog tables."""

    def __init__(self, db: Session):
        self.db = db

    def question_ids_for_subject(self, subject_id: int) -> List[int]:
        rows = (
            self.db.query(Question.id)
            .join(Topic, Topic.id == Question.topic_id)
            .filter(
                Topic.subject_id == subject_id,
                Topic.is_active.is_(True),
                Question.is_active.is_(True),
            )
            .order_by(Question.id)
            .all()
        )
        return [row.id for row in rows]

    def blueprint_for_category(self, category_id: int) -> List[BlueprintEntry]:
        rows = (
            self.db.query(CategorySubject)
            .filter(CategorySubject.category_id == category_id)
            .order_by(CategorySubject.display_order, CategorySubject.id)
            .all()
        )
        return [
            BlueprintEntry(subject_id=int(row.subject_id), questions_per_test=int(row.questions_per_test))
            for row in rows
        ]


class QuestionSetAssembler:
    """
    Builds the ordered, deduplicated question list of a new attempt.

    Sampling is driven by a per-attempt seed so a set can be reproduced
    from the same candidate pool. Under-filled subjects are taken in full
    unless ``strict`` is set, in which case assembly fails.
    """

    def __init__(self, source: QuestionSource, strict: bool = False):
        self.source = source
        self.strict = strict

    def assemble(self, test: Test, seed: Optional[str] = None) -> AssembledQuestionSet:
        seed = seed or secrets.token_hex(8)
        rng = random.Random(seed)

        if test.subject_id is not None:
            plan = [BlueprintEntry(int(test.subject_id), int(test.total_questions))]
        else:
            plan = self.source.blueprint_for_category(int(test.category_id))
            if not plan:
                raise InvalidState(f"Category {test.category_id} has no subject blueprint for mock tests")
            self._check_blueprint_total(test, plan)

        selected: List[int] = []
        shortfalls: Dict[int, Tuple[int, int]] = {}
        for entry in plan:
            pool = self.source.question_ids_for_subject(entry.subject_id)
            take = min(entry.questions_per_test, len(pool))
            if take < entry.questions_per_test:
                shortfalls[entry.subject_id] = (entry.questions_per_test, len(pool))
            selected.extend(rng.sample(pool, take))

        # Interleave subjects instead of presenting them in blocks
        rng.shuffle(selected)
        question_ids = list(dict.fromkeys(selected))

        if shortfalls:
            logger.warning(f"Test {test.id} under-filled: {shortfalls} (subject: (requested, available))")
            if self.strict:
                raise InvalidState(
                    f"Not enough active questions to build test {test.id}: {shortfalls}"
                )

        if not question_ids:
            raise InvalidState(f"No active questions available for test {test.id}")

        return AssembledQuestionSet(question_ids=question_ids, seed=seed, shortfalls=shortfalls)

    def _check_blueprint_total(self, test: Test, plan: List[BlueprintEntry]) -> None:
        planned = sum(entry.questions_per_test for entry in plan)
        if planned == test.total_questions:
            return
        message = (
            f"Blueprint for category {test.category_id} plans {planned} questions, "
            f"test {test.id} expects {test.total_questions}"
        )
        if self.strict:
            raise InvalidState(message)
        logger.warning(message)
