"""Models module - Import all models here for Alembic."""
from testprep.db.base import Base
from testprep.models.user import User
from testprep.models.catalog import Category, Subject, CategorySubject, Topic, Question, Test
from testprep.models.attempt import AttemptStatus, TestAttempt, TestAttemptAnswer
from testprep.models.billing import (
    Payment,
    PaymentStatus,
    SubscriptionPlan,
    SubscriptionType,
    UserSubscription,
)

__all__ = [
    "Base",
    "User",
    "Category",
    "Subject",
    "CategorySubject",
    "Topic",
    "Question",
    "Test",
    "AttemptStatus",
    "TestAttempt",
    "TestAttemptAnswer",
    "Payment",
    "PaymentStatus",
    "SubscriptionPlan",
    "SubscriptionType",
    "UserSubscription",
]
