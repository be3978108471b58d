"""
Payment entry points: order creation, client verification and webhooks.
"""
import json
import logging
import time
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from testprep.core.config import settings
from testprep.core.engine.reconciliation import PaymentReconciler, ReconcileResult
from testprep.core.exceptions import AccessDenied, InvalidState, NotFound, ValidationFailed
from testprep.models.billing import Payment, PaymentStatus, SubscriptionPlan
from testprep.services.payment_gateway import (
    RazorpayClient,
    verify_payment_signature,
    verify_webhook_signature,
)

logger = logging.getLogger(__name__)

PAYMENT_CAPTURED = "payment.captured"
PAYMENT_FAILED = "payment.failed"


def to_minor_units(amount) -> int:
    """Rupees to paise."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class PaymentCheckout:
    """Handles the client-facing payment flow and gateway callbacks."""

    def __init__(
        self,
        db: Session,
        gateway: Optional[RazorpayClient] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
    ):
        self.db = db
        self.gateway = gateway
        self.key_secret = settings.RAZORPAY_KEY_SECRET if key_secret is None else key_secret
        self.webhook_secret = settings.RAZORPAY_WEBHOOK_SECRET if webhook_secret is None else webhook_secret
        self.reconciler = PaymentReconciler(db)

    async def create_order(self, user_id: int, plan_id: int) -> Tuple[Payment, Dict[str, Any]]:
        """Create a gateway order and a PENDING payment holding the plan terms."""
        if self.gateway is None:
            raise RuntimeError("PaymentCheckout.create_order requires a gateway client")

        plan = self.db.query(SubscriptionPlan).filter(SubscriptionPlan.id == plan_id).first()
        if not plan or not plan.is_active:
            raise NotFound("Subscription plan not found or inactive")

        currency = settings.PAYMENT_CURRENCY
        order = await self.gateway.create_order(
            amount=to_minor_units(plan.price),
            currency=currency,
            receipt=f"rcpt_{int(time.time())}_{user_id}",
            notes={"userId": str(user_id), "planId": str(plan.id)},
        )

        payment = Payment(
            user_id=user_id,
            amount=plan.price,
            currency=order.get("currency", currency),
            payment_gateway="RAZORPAY",
            order_id=order["id"],
            status=PaymentStatus.PENDING.value,
            plan_id=plan.id,
            duration_days=plan.duration_days,
            subscription_type=plan.type,
            category_id=plan.category_id,
        )
        try:
            self.db.add(payment)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(payment)

        logger.info(f"Created order {payment.order_id} for user {user_id}, plan {plan.id}")
        return payment, order

    def verify_payment(self, user_id: int, order_id: str, payment_id: str, signature: str) -> ReconcileResult:
        """
        Client-side confirmation after checkout.

        A signature mismatch never activates anything: the payment is marked
        FAILED (unless it already succeeded) and the request is rejected.
        """
        payment = self.db.query(Payment).filter(Payment.order_id == order_id).first()
        if not payment:
            raise NotFound("Payment record not found")
        if payment.user_id != user_id:
            raise AccessDenied("This payment belongs to another user")

        if not verify_payment_signature(order_id, payment_id, signature, self.key_secret):
            logger.warning(f"Signature mismatch for order {order_id} (user {user_id})")
            self.reconciler.mark_failed(order_id, "Signature Mismatch")
            raise ValidationFailed("Payment signature verification failed")

        result = self.reconciler.reconcile(order_id, payment_id)
        if not result.activated:
            raise InvalidState("Payment already processed")
        return result

    def handle_webhook(self, raw_body: bytes, signature: Optional[str]) -> None:
        """
        Process a gateway event.

        Only a bad signature is reported back (as ``ValidationFailed``).
        Anything that goes wrong afterwards is logged and swallowed so the
        gateway gets its acknowledgement; the payment row stays as it was
        and can be reconciled by a later delivery.
        """
        if not verify_webhook_signature(raw_body, signature, self.webhook_secret):
            logger.warning("Invalid webhook signature")
            raise ValidationFailed("Invalid webhook signature")

        try:
            event = json.loads(raw_body)
            event_name = event.get("event")
            entity = event["payload"]["payment"]["entity"]
            order_id = entity.get("order_id")

            if event_name == PAYMENT_CAPTURED:
                transaction_id = entity.get("id")
                if not transaction_id:
                    logger.warning(f"Ignoring {event_name} for order {order_id}: no payment id in entity")
                    return
                result = self.reconciler.reconcile(order_id, transaction_id)
                logger.info(f"Webhook {event_name} for order {order_id}: {result.outcome.value}")
            elif event_name == PAYMENT_FAILED:
                reason = entity.get("error_description") or "Payment failed at gateway"
                self.reconciler.mark_failed(order_id, reason)
            else:
                logger.info(f"Ignoring webhook event {event_name}")
        except Exception as e:
            logger.error(f"Webhook processing failed: {e}", exc_info=True)
