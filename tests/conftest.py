"""
Shared fixtures: in-memory SQLite, a seeded catalog, JWT auth headers and a
fake payment gateway.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "rzp_test_secret"
os.environ["RAZORPAY_WEBHOOK_SECRET"] = "rzp_webhook_secret"
os.environ["FREE_TEST_LIMIT"] = "2"
os.environ["ENFORCE_QUESTION_QUOTA"] = "false"

from decimal import Decimal  # noqa: E402
from itertools import count  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from testprep.core.dependencies import get_payment_gateway  # noqa: E402
from testprep.core.security import create_access_token  # noqa: E402
from testprep.db.base import SessionLocal, engine  # noqa: E402
from testprep.main import app  # noqa: E402
from testprep.models import (  # noqa: E402
    Base,
    Category,
    CategorySubject,
    Question,
    Subject,
    SubscriptionPlan,
    SubscriptionType,
    Test,
    Topic,
    User,
)


class FakeGateway:
    """Stands in for RazorpayClient; hands out sequential order IDs."""

    def __init__(self):
        self._ids = count(1)
        self.requests = []

    async def create_order(self, amount, currency, receipt, notes=None):
        self.requests.append({"amount": amount, "currency": currency, "receipt": receipt, "notes": notes})
        return {"id": f"order_test_{next(self._ids)}", "amount": amount, "currency": currency}


@pytest.fixture(autouse=True)
def reset_schema():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def client(gateway):
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_user(db, email="student@example.com", free_tests_used=0):
    user = User(email=email, full_name="Test Student", free_tests_used=free_tests_used, is_active=True)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers_for(user):
    token = create_access_token(str(user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user(db):
    return make_user(db)


@pytest.fixture
def auth_headers(user):
    return auth_headers_for(user)


def add_questions(db, subject, n, correct_option=1, active=True):
    topic = Topic(subject_id=subject.id, name=f"{subject.name} basics", is_active=True)
    db.add(topic)
    db.flush()
    questions = []
    for i in range(n):
        question = Question(
            topic_id=topic.id,
            question_text=f"{subject.name} question {i + 1}",
            option1="A",
            option2="B",
            option3="C",
            option4="D",
            correct_option=correct_option,
            explanation=f"Option {correct_option} is right",
            is_active=active,
        )
        db.add(question)
        questions.append(question)
    db.commit()
    return questions


@pytest.fixture
def catalog(db):
    """
    One category with a Math/English blueprint (25 + 25), 30 questions per
    subject, a free and a paid subject test, and a paid mock test.
    """
    category = Category(name="Bank PO")
    math = Subject(name="Math")
    english = Subject(name="English")
    db.add_all([category, math, english])
    db.flush()

    db.add_all([
        CategorySubject(category_id=category.id, subject_id=math.id, questions_per_test=25, display_order=1),
        CategorySubject(category_id=category.id, subject_id=english.id, questions_per_test=25, display_order=2),
    ])
    db.commit()

    math_questions = add_questions(db, math, 30)
    english_questions = add_questions(db, english, 30)

    free_test = Test(
        category_id=category.id, subject_id=math.id, name="Math Free Test", total_questions=10,
        duration_minutes=15, positive_marks=Decimal("1"), negative_marks=Decimal("0.25"),
        is_paid=False, test_number=1,
    )
    paid_test = Test(
        category_id=category.id, subject_id=math.id, name="Math Paid Test", total_questions=10,
        duration_minutes=15, positive_marks=Decimal("1"), negative_marks=Decimal("0.25"),
        is_paid=True, test_number=2,
    )
    mock_test = Test(
        category_id=category.id, subject_id=None, name="Full Mock 1", total_questions=50,
        duration_minutes=60, positive_marks=Decimal("1"), negative_marks=Decimal("0.25"),
        is_paid=True, test_number=3,
    )
    db.add_all([free_test, paid_test, mock_test])
    db.commit()

    return {
        "category": category,
        "math": math,
        "english": english,
        "math_questions": math_questions,
        "english_questions": english_questions,
        "free_test": free_test,
        "paid_test": paid_test,
        "mock_test": mock_test,
    }


@pytest.fixture
def plan(db, catalog):
    plan = SubscriptionPlan(
        name="Bank PO Monthly",
        description="All paid Bank PO tests",
        price=Decimal("199.00"),
        duration_days=30,
        type=SubscriptionType.CATEGORY_SPECIFIC.value,
        category_id=catalog["category"].id,
        is_active=True,
    )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan
