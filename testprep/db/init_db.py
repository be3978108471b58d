"""
Database initialization and seeding.
"""
from decimal import Decimal

from sqlalchemy.orm import Session

from testprep.core.config import settings
from testprep.models.billing import SubscriptionPlan, SubscriptionType
from testprep.models.user import User


def init_db(db: Session) -> None:
    """
    Initialize database with default data.

    Args:
        db: Database session
    """
    admin = db.query(User).filter(User.email == "admin@example.com").first()
    if not admin:
        admin = User(
            email="admin@example.com",
            full_name="System Administrator",
            role="admin",
            is_active=True,
        )
        db.add(admin)
        db.commit()
        print("Admin user created successfully")

    plan = (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.type == SubscriptionType.ALL_CATEGORIES.value)
        .first()
    )
    if not plan:
        plan = SubscriptionPlan(
            name="All Categories - Monthly",
            description="Unlimited paid tests in every category",
            price=Decimal("299.00"),
            duration_days=settings.DEFAULT_SUBSCRIPTION_DAYS,
            type=SubscriptionType.ALL_CATEGORIES.value,
            is_active=True,
        )
        db.add(plan)
        db.commit()
        print("Default subscription plan created successfully")
