from datetime import timedelta

from conftest import make_user
from testprep.core.clock import utcnow
from testprep.core.engine.entitlement import DENIED_NO_SUBSCRIPTION, EntitlementEvaluator
from testprep.models import Category, SubscriptionType, UserSubscription


def subscribe(db, user, subscription_type, category_id=None, days=30, is_active=True):
    now = utcnow()
    subscription = UserSubscription(
        user_id=user.id,
        type=subscription_type.value,
        category_id=category_id,
        start_date=now,
        end_date=now + timedelta(days=days),
        is_active=is_active,
    )
    db.add(subscription)
    db.commit()
    return subscription


def test_free_test_is_always_granted_without_credit(db, catalog):
    user = make_user(db, free_tests_used=5)

    decision = EntitlementEvaluator(db).evaluate(user, catalog["free_test"])

    assert decision.granted
    assert not decision.consumes_free_credit


def test_paid_test_uses_free_credit_while_under_limit(db, catalog):
    user = make_user(db, free_tests_used=1)

    decision = EntitlementEvaluator(db).evaluate(user, catalog["paid_test"])

    assert decision.granted
    assert decision.consumes_free_credit


def test_paid_test_denied_without_credit_or_subscription(db, catalog):
    user = make_user(db, free_tests_used=2)

    decision = EntitlementEvaluator(db).evaluate(user, catalog["paid_test"])

    assert not decision.granted
    assert decision.reason == DENIED_NO_SUBSCRIPTION


def test_category_subscription_grants_matching_category_only(db, catalog):
    user = make_user(db, free_tests_used=2)
    other = Category(name="SSC")
    db.add(other)
    db.commit()
    subscribe(db, user, SubscriptionType.CATEGORY_SPECIFIC, category_id=other.id)
    evaluator = EntitlementEvaluator(db)

    assert not evaluator.evaluate(user, catalog["paid_test"]).granted

    subscription = subscribe(db, user, SubscriptionType.CATEGORY_SPECIFIC, category_id=catalog["category"].id)
    decision = evaluator.evaluate(user, catalog["paid_test"])
    assert decision.granted
    assert not decision.consumes_free_credit
    assert decision.subscription_id == subscription.id


def test_all_categories_subscription_grants_any_paid_test(db, catalog):
    user = make_user(db, free_tests_used=2)
    subscribe(db, user, SubscriptionType.ALL_CATEGORIES)

    assert EntitlementEvaluator(db).evaluate(user, catalog["mock_test"]).granted


def test_expired_or_inactive_subscription_does_not_grant(db, catalog):
    user = make_user(db, free_tests_used=2)
    subscribe(db, user, SubscriptionType.ALL_CATEGORIES, days=-1)
    subscribe(db, user, SubscriptionType.ALL_CATEGORIES, is_active=False)

    assert not EntitlementEvaluator(db).evaluate(user, catalog["paid_test"]).granted


def test_custom_free_limit(db, catalog):
    user = make_user(db, free_tests_used=2)

    assert EntitlementEvaluator(db, free_limit=3).evaluate(user, catalog["paid_test"]).consumes_free_credit
    assert not EntitlementEvaluator(db, free_limit=0).evaluate(make_user(db, "b@example.com"), catalog["paid_test"]).granted
