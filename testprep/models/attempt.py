"""
Models for test attempts and the answers saved against them.
"""
import enum

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Boolean,
    Numeric,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from testprep.core.clock import utcnow
from testprep.db.base import Base


class AttemptStatus(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    EXPIRED = "EXPIRED"
    ABANDONED = "ABANDONED"


class TestAttempt(Base):
    """One user's timed run through a frozen question set of a test."""

    __tablename__ = "test_attempts"
    __test__ = False

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    test_id = Column(Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False)
    attempt_number = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=AttemptStatus.IN_PROGRESS.value)

    # Frozen at creation; scoring only ever reads this list
    question_ids = Column(JSON, nullable=False)
    question_set_seed = Column(String, nullable=False)
    total_questions = Column(Integer, nullable=False)

    attempted_count = Column(Integer, nullable=False, default=0)
    correct_count = Column(Integer, nullable=False, default=0)
    incorrect_count = Column(Integer, nullable=False, default=0)
    total_marks = Column(Numeric(10, 2), nullable=True)
    percentage = Column(Numeric(5, 2), nullable=True)

    started_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="attempts")
    test = relationship("Test", back_populates="attempts")
    answers = relationship("TestAttemptAnswer", back_populates="attempt", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint("user_id", "test_id", "attempt_number", name="uq_attempt_user_test_number"),
        Index(
            "uq_attempt_one_in_progress",
            "user_id",
            "test_id",
            unique=True,
            postgresql_where=text("status = 'IN_PROGRESS'"),
            sqlite_where=text("status = 'IN_PROGRESS'"),
        ),
        Index("ix_attempt_user_status", "user_id", "status"),
    )


class TestAttemptAnswer(Base):
    """Answer saved for one question of an attempt. Graded at submission."""

    __tablename__ = "test_attempt_answers"
    __test__ = False

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("test_attempts.id", ondelete="CASCADE"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("questions.id"), nullable=False)
    selected_option = Column(Integer, nullable=True)  # None = skipped / cleared
    is_correct = Column(Boolean, nullable=True)
    marks_obtained = Column(Numeric(5, 2), nullable=False, default=0)
    time_spent = Column(Integer, nullable=True)  # Time in seconds

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    attempt = relationship("TestAttempt", back_populates="answers")
    question = relationship("Question")

    __table_args__ = (
        UniqueConstraint("attempt_id", "question_id", name="uq_answer_attempt_question"),
    )
