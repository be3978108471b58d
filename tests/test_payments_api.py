import json
from datetime import timedelta
from decimal import Decimal

from conftest import auth_headers_for, make_user
from testprep.core.clock import utcnow
from testprep.core.config import settings
from testprep.core.engine.reconciliation import PaymentReconciler, ReconcileOutcome
from testprep.db.base import SessionLocal
from testprep.models import Payment, PaymentStatus, SubscriptionPlan, SubscriptionType, UserSubscription
from testprep.services.payment_gateway import (
    RazorpayClient,
    compute_payment_signature,
    compute_webhook_signature,
)

API = "/api/v1"


def create_order(client, plan, headers):
    r = client.post(f"{API}/payments/orders", json={"plan_id": plan.id}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def signed_verify(order_id, payment_id="pay_test_1"):
    return {
        "razorpay_order_id": order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": compute_payment_signature(order_id, payment_id, settings.RAZORPAY_KEY_SECRET),
    }


def webhook(client, event, order_id, payment_id="pay_test_1", secret=None, **entity):
    body = json.dumps({
        "event": event,
        "payload": {"payment": {"entity": {"id": payment_id, "order_id": order_id, **entity}}},
    }).encode("utf-8")
    signature = compute_webhook_signature(body, secret or settings.RAZORPAY_WEBHOOK_SECRET)
    return client.post(
        f"{API}/payments/webhook",
        content=body,
        headers={"X-Razorpay-Signature": signature, "Content-Type": "application/json"},
    )


def payment_for(db, order_id):
    db.expire_all()
    return db.query(Payment).filter(Payment.order_id == order_id).one()


def subscriptions(db, user_id):
    db.expire_all()
    return db.query(UserSubscription).filter(UserSubscription.user_id == user_id).all()


def test_create_order_records_pending_payment(client, db, user, auth_headers, plan, gateway):
    order = create_order(client, plan, auth_headers)

    assert order["order_id"] == "order_test_1"
    assert order["amount"] == 19900
    assert order["currency"] == "INR"
    assert order["key"] == settings.RAZORPAY_KEY_ID
    assert order["plan_name"] == plan.name
    assert gateway.requests[0]["amount"] == 19900
    assert gateway.requests[0]["notes"] == {"userId": str(user.id), "planId": str(plan.id)}

    payment = payment_for(db, order["order_id"])
    assert payment.status == PaymentStatus.PENDING.value
    assert payment.duration_days == 30
    assert payment.category_id == plan.category_id


def test_create_order_for_inactive_plan(client, db, auth_headers, plan):
    plan.is_active = False
    db.commit()

    r = client.post(f"{API}/payments/orders", json={"plan_id": plan.id}, headers=auth_headers)

    assert r.status_code == 404


def test_verify_activates_subscription(client, db, user, auth_headers, plan, catalog):
    order = create_order(client, plan, auth_headers)

    r = client.post(f"{API}/payments/verify", json=signed_verify(order["order_id"]), headers=auth_headers)

    assert r.status_code == 200
    assert r.json()["success"] is True
    payment = payment_for(db, order["order_id"])
    assert payment.status == PaymentStatus.SUCCESS.value
    assert payment.transaction_id == "pay_test_1"
    subs = subscriptions(db, user.id)
    assert len(subs) == 1
    assert subs[0].payment_id == payment.id
    assert subs[0].category_id == catalog["category"].id
    assert (subs[0].end_date - subs[0].start_date).days == 30

    # The subscription opens paid tests once free credits are gone
    user.free_tests_used = 2
    db.commit()
    started = client.post(f"{API}/tests/{catalog['paid_test'].id}/attempts", headers=auth_headers)
    assert started.status_code == 201
    assert started.json()["consumed_free_credit"] is False


def test_verify_twice_is_rejected_without_second_subscription(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)
    client.post(f"{API}/payments/verify", json=signed_verify(order["order_id"]), headers=auth_headers)

    r = client.post(f"{API}/payments/verify", json=signed_verify(order["order_id"]), headers=auth_headers)

    assert r.status_code == 409
    assert r.json()["detail"] == "Payment already processed"
    assert len(subscriptions(db, user.id)) == 1


def test_tampered_signature_marks_payment_failed(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)
    payload = signed_verify(order["order_id"])
    payload["razorpay_signature"] = "0" * 64

    r = client.post(f"{API}/payments/verify", json=payload, headers=auth_headers)

    assert r.status_code == 400
    payment = payment_for(db, order["order_id"])
    assert payment.status == PaymentStatus.FAILED.value
    assert payment.failure_reason == "Signature Mismatch"
    assert subscriptions(db, user.id) == []


def test_verify_unknown_order_or_other_users_payment(client, db, auth_headers, plan):
    assert client.post(
        f"{API}/payments/verify", json=signed_verify("order_missing"), headers=auth_headers
    ).status_code == 404

    order = create_order(client, plan, auth_headers)
    other = auth_headers_for(make_user(db, "other@example.com"))
    assert client.post(
        f"{API}/payments/verify", json=signed_verify(order["order_id"]), headers=other
    ).status_code == 403


def test_duplicate_webhooks_create_one_subscription(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)

    for _ in range(3):
        r = webhook(client, "payment.captured", order["order_id"])
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}

    assert payment_for(db, order["order_id"]).status == PaymentStatus.SUCCESS.value
    assert len(subscriptions(db, user.id)) == 1


def test_verify_then_webhook_create_one_subscription(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)
    client.post(f"{API}/payments/verify", json=signed_verify(order["order_id"]), headers=auth_headers)

    r = webhook(client, "payment.captured", order["order_id"])

    assert r.status_code == 200
    assert len(subscriptions(db, user.id)) == 1


def test_webhook_then_verify_reports_already_processed(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)
    webhook(client, "payment.captured", order["order_id"])

    r = client.post(f"{API}/payments/verify", json=signed_verify(order["order_id"]), headers=auth_headers)

    assert r.status_code == 409
    assert len(subscriptions(db, user.id)) == 1


def test_webhook_with_bad_signature(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)

    r = webhook(client, "payment.captured", order["order_id"], secret="not-the-secret")

    assert r.status_code == 400
    assert r.json() == {"status": "invalid_signature"}
    assert payment_for(db, order["order_id"]).status == PaymentStatus.PENDING.value
    assert subscriptions(db, user.id) == []


def test_webhook_signature_covers_raw_body(client, db, auth_headers, plan):
    order = create_order(client, plan, auth_headers)
    body = json.dumps({"event": "payment.captured", "payload": {"payment": {"entity": {
        "id": "pay_x", "order_id": order["order_id"]}}}}).encode("utf-8")
    signature = compute_webhook_signature(body, settings.RAZORPAY_WEBHOOK_SECRET)

    # Same JSON, different bytes
    r = client.post(
        f"{API}/payments/webhook",
        content=body.replace(b", ", b","),
        headers={"X-Razorpay-Signature": signature},
    )

    assert r.status_code == 400


def test_payment_failed_webhook(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)

    r = webhook(client, "payment.failed", order["order_id"], error_description="Card declined")

    assert r.status_code == 200
    payment = payment_for(db, order["order_id"])
    assert payment.status == PaymentStatus.FAILED.value
    assert payment.failure_reason == "Card declined"


def test_failed_webhook_never_downgrades_success(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)
    webhook(client, "payment.captured", order["order_id"])

    webhook(client, "payment.failed", order["order_id"])

    assert payment_for(db, order["order_id"]).status == PaymentStatus.SUCCESS.value


def test_failed_payment_can_still_be_captured(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)
    webhook(client, "payment.failed", order["order_id"])

    webhook(client, "payment.captured", order["order_id"], payment_id="pay_retry")

    payment = payment_for(db, order["order_id"])
    assert payment.status == PaymentStatus.SUCCESS.value
    assert payment.transaction_id == "pay_retry"
    assert payment.failure_reason is None
    assert len(subscriptions(db, user.id)) == 1


def test_webhook_for_unknown_order_is_acknowledged(client, db):
    r = webhook(client, "payment.captured", "order_nobody")

    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_unhandled_event_is_acknowledged(client, db, auth_headers, plan):
    order = create_order(client, plan, auth_headers)

    r = webhook(client, "order.paid", order["order_id"])

    assert r.status_code == 200
    assert payment_for(db, order["order_id"]).status == PaymentStatus.PENDING.value


def test_reconcile_directly_is_idempotent(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)
    reconciler = PaymentReconciler(db)

    first = reconciler.reconcile(order["order_id"], "pay_direct")
    second = reconciler.reconcile(order["order_id"], "pay_direct")

    assert first.outcome == ReconcileOutcome.ACTIVATED
    assert first.subscription_id is not None
    assert second.outcome == ReconcileOutcome.ALREADY_DONE
    assert len(subscriptions(db, user.id)) == 1


def test_stale_session_does_not_activate_twice(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)
    stale = SessionLocal()
    try:
        # The stale session saw the payment while it was still pending
        assert stale.query(Payment).filter(Payment.order_id == order["order_id"]).one().status == "PENDING"
        PaymentReconciler(db).reconcile(order["order_id"], "pay_first")

        result = PaymentReconciler(stale).reconcile(order["order_id"], "pay_first")
    finally:
        stale.close()

    assert result.outcome == ReconcileOutcome.ALREADY_DONE
    assert len(subscriptions(db, user.id)) == 1


def test_captured_webhook_without_payment_id_is_skipped(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)

    r = webhook(client, "payment.captured", order["order_id"], payment_id=None)

    assert r.status_code == 200
    assert r.json() == {"status": "ok"}
    payment = payment_for(db, order["order_id"])
    assert payment.status == PaymentStatus.PENDING.value
    assert payment.transaction_id is None
    assert subscriptions(db, user.id) == []


def test_list_plans_only_active_in_display_order(client, db, auth_headers, plan, catalog):
    plan.display_order = 2
    db.add_all([
        SubscriptionPlan(
            name="All Access Yearly", price=Decimal("999.00"), duration_days=365,
            type=SubscriptionType.ALL_CATEGORIES.value, display_order=1, is_active=True,
        ),
        SubscriptionPlan(
            name="Retired Plan", price=Decimal("49.00"), duration_days=7,
            type=SubscriptionType.ALL_CATEGORIES.value, display_order=0, is_active=False,
        ),
    ])
    db.commit()

    r = client.get(f"{API}/payments/plans", headers=auth_headers)

    assert r.status_code == 200
    body = r.json()
    assert [p["name"] for p in body] == ["All Access Yearly", "Bank PO Monthly"]
    assert body[1]["price"] == 199.0
    assert body[1]["category_id"] == catalog["category"].id
    assert body[0]["category_id"] is None


def test_list_plans_requires_auth(client, plan):
    assert client.get(f"{API}/payments/plans").status_code == 401


def test_my_subscriptions_after_verify(client, db, user, auth_headers, plan):
    order = create_order(client, plan, auth_headers)
    client.post(f"{API}/payments/verify", json=signed_verify(order["order_id"]), headers=auth_headers)

    r = client.get(f"{API}/payments/subscriptions/me", headers=auth_headers)

    assert r.status_code == 200
    body = r.json()
    assert len(body) == 1
    assert body[0]["plan_id"] == plan.id
    assert body[0]["plan_name"] == plan.name
    assert body[0]["is_active"] is True
    assert body[0]["payment_id"] == payment_for(db, order["order_id"]).id

    other = auth_headers_for(make_user(db, "other@example.com"))
    assert client.get(f"{API}/payments/subscriptions/me", headers=other).json() == []


def test_my_subscriptions_marks_lapsed_ones_inactive(client, db, user, auth_headers, plan):
    now = utcnow()
    db.add(UserSubscription(
        user_id=user.id, plan_id=plan.id, type=plan.type, category_id=plan.category_id,
        start_date=now - timedelta(days=40), end_date=now - timedelta(days=10), is_active=True,
    ))
    db.commit()

    body = client.get(f"{API}/payments/subscriptions/me", headers=auth_headers).json()

    assert len(body) == 1
    assert body[0]["is_active"] is False


def test_gateway_client_reads_settings_when_built(monkeypatch):
    monkeypatch.setattr(settings, "RAZORPAY_KEY_ID", "rzp_rotated_key")
    monkeypatch.setattr(settings, "RAZORPAY_API_BASE", "https://gateway.example.com/v1/")
    monkeypatch.setattr(settings, "RAZORPAY_TIMEOUT_SECONDS", 3.0)

    client = RazorpayClient()

    assert client.key_id == "rzp_rotated_key"
    assert client.base_url == "https://gateway.example.com/v1"
    assert client.timeout == 3.0

    explicit = RazorpayClient(key_id="rzp_explicit", base_url="https://other.example.com")
    assert explicit.key_id == "rzp_explicit"
    assert explicit.base_url == "https://other.example.com"
