"""
Catalog models: categories, subjects, topics, questions and tests.

These are maintained by admin CRUD outside this service; the attempt engine
only reads them.
"""
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from testprep.db.base import Base


class Category(Base):
    """Exam category, e.g. a recruitment exam."""

    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    display_order = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    blueprint = relationship("CategorySubject", back_populates="category", cascade="all, delete-orphan")
    tests = relationship("Test", back_populates="category", cascade="all, delete-orphan")


class Subject(Base):
    """Subject model."""

    __tablename__ = "subjects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    topics = relationship("Topic", back_populates="subject", cascade="all, delete-orphan")


class CategorySubject(Base):
    """Blueprint entry: how many questions of a subject a mock test carries."""

    __tablename__ = "category_subjects"

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    questions_per_test = Column(Integer, nullable=False)
    display_order = Column(Integer, default=0)

    # Relationships
    category = relationship("Category", back_populates="blueprint")
    subject = relationship("Subject")

    __table_args__ = (
        UniqueConstraint("category_id", "subject_id", name="uq_category_subject"),
    )


class Topic(Base):
    """Topic model."""

    __tablename__ = "topics"

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    is_active = Column(Boolean, default=True)
    display_order = Column(Integer, default=0)

    # Relationships
    subject = relationship("Subject", back_populates="topics")
    questions = relationship("Question", back_populates="topic")


class Question(Base):
    """Four-option multiple choice question. Deactivated, never deleted."""

    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)
    topic_id = Column(Integer, ForeignKey("topics.id"), nullable=False, index=True)
    question_text = Column(Text, nullable=False)
    question_image_url = Column(String, nullable=True)
    option1 = Column(Text, nullable=False)
    option2 = Column(Text, nullable=False)
    option3 = Column(Text, nullable=False)
    option4 = Column(Text, nullable=False)
    correct_option = Column(Integer, nullable=False)  # 1-4
    explanation = Column(Text, nullable=True)
    difficulty_level = Column(String, default="MEDIUM")  # EASY, MEDIUM, HARD
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    topic = relationship("Topic", back_populates="questions")

    @property
    def options(self):
        return [self.option1, self.option2, self.option3, self.option4]


class Test(Base):
    """
    Scheduled assessment.

    ``subject_id`` set means a single-subject test; ``None`` means a mock
    test assembled from the category blueprint.
    """

    __tablename__ = "tests"
    __test__ = False  # keep pytest from collecting this model

    id = Column(Integer, primary_key=True, index=True)
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="SET NULL"), nullable=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    total_questions = Column(Integer, nullable=False, default=100)
    duration_minutes = Column(Integer, nullable=False, default=60)
    positive_marks = Column(Numeric(5, 2), nullable=False, default=1)
    negative_marks = Column(Numeric(5, 2), nullable=False, default=0.25)
    is_paid = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    test_number = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    category = relationship("Category", back_populates="tests")
    subject = relationship("Subject")
    attempts = relationship("TestAttempt", back_populates="test")

    __table_args__ = (
        UniqueConstraint("category_id", "test_number", name="uq_test_category_number"),
    )
