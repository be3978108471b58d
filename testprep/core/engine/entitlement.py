"""
Entitlement evaluation for paid tests.

Decides whether a user may start a test and whether doing so spends one of
their free attempts. Evaluation is read-only; the free counter is bumped by
the attempt manager in the transaction that creates the attempt.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import or_, and_
from sqlalchemy.orm import Session

from testprep.core.clock import utcnow
from testprep.core.config import settings
from testprep.models.billing import SubscriptionType, UserSubscription
from testprep.models.catalog import Test
from testprep.models.user import User

logger = logging.getLogger(__name__)

DENIED_NO_SUBSCRIPTION = "You have used your free attempts. Please purchase a subscription to access this test."


@dataclass(frozen=True)
class EntitlementDecision:
    granted: bool
    consumes_free_credit: bool = False
    reason: Optional[str] = None
    subscription_id: Optional[int] = None

    @classmethod
    def denied(cls, reason: str) -> "EntitlementDecision":
        return cls(granted=False, reason=reason)


class EntitlementEvaluator:
    """Free test -> free credit -> subscription, in that order."""

    def __init__(self, db: Session, free_limit: Optional[int] = None):
        self.db = db
        self.free_limit = settings.FREE_TEST_LIMIT if free_limit is None else free_limit

    def evaluate(self, user: User, test: Test) -> EntitlementDecision:
        if not test.is_paid:
            return EntitlementDecision(granted=True)

        if (user.free_tests_used or 0) < self.free_limit:
            return EntitlementDecision(granted=True, consumes_free_credit=True)

        subscription = self.active_subscription(int(user.id), int(test.category_id))
        if subscription is not None:
            return EntitlementDecision(granted=True, subscription_id=int(subscription.id))

        logger.info(f"User {user.id} denied paid test {test.id}: free attempts exhausted, no subscription")
        return EntitlementDecision.denied(DENIED_NO_SUBSCRIPTION)

    def active_subscription(self, user_id: int, category_id: int) -> Optional[UserSubscription]:
        """Unexpired subscription covering all categories or this category."""
        return (
            self.db.query(UserSubscription)
            .filter(
                UserSubscription.user_id == user_id,
                UserSubscription.is_active.is_(True),
                UserSubscription.end_date > utcnow(),
                or_(
                    UserSubscription.type == SubscriptionType.ALL_CATEGORIES.value,
                    and_(
                        UserSubscription.type == SubscriptionType.CATEGORY_SPECIFIC.value,
                        UserSubscription.category_id == category_id,
                    ),
                ),
            )
            .order_by(UserSubscription.end_date.desc())
            .first()
        )
