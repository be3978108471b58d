"""
Idempotent payment reconciliation.

Both the client verification call and the gateway webhook end up in
``PaymentReconciler.reconcile``. The payment's status is re-checked inside
the transaction and flipped with a compare-and-swap, and the subscription
row carries a unique ``payment_id``, so one payment activates exactly one
subscription however the confirmations interleave.
"""
import enum
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from testprep.core.clock import utcnow
from testprep.core.config import settings
from testprep.core.exceptions import Conflict, NotFound
from testprep.models.billing import Payment, PaymentStatus, UserSubscription

logger = logging.getLogger(__name__)


class ReconcileOutcome(str, enum.Enum):
    ACTIVATED = "ACTIVATED"
    ALREADY_DONE = "ALREADY_DONE"


@dataclass
class ReconcileResult:
    outcome: ReconcileOutcome
    payment_id: int
    subscription_id: Optional[int] = None

    @property
    def activated(self) -> bool:
        return self.outcome == ReconcileOutcome.ACTIVATED


class PaymentReconciler:
    """Turns a confirmed gateway payment into a subscription, once."""

    def __init__(self, db: Session):
        self.db = db

    def reconcile(self, order_id: str, transaction_id: str) -> ReconcileResult:
        try:
            payment = (
                self.db.query(Payment)
                .filter(Payment.order_id == order_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not payment:
                raise NotFound("Payment record not found")
            payment_id = int(payment.id)

            if payment.status == PaymentStatus.SUCCESS.value:
                self.db.commit()
                logger.info(f"Payment {payment_id} (order {order_id}) already reconciled")
                return ReconcileResult(ReconcileOutcome.ALREADY_DONE, payment_id)

            now = utcnow()
            updated = (
                self.db.query(Payment)
                .filter(Payment.id == payment_id, Payment.status != PaymentStatus.SUCCESS.value)
                .update(
                    {
                        Payment.status: PaymentStatus.SUCCESS.value,
                        Payment.transaction_id: transaction_id,
                        Payment.failure_reason: None,
                        Payment.updated_at: now,
                    },
                    synchronize_session=False,
                )
            )
            if updated != 1:
                self.db.rollback()
                return ReconcileResult(ReconcileOutcome.ALREADY_DONE, payment_id)

            duration_days = payment.duration_days or settings.DEFAULT_SUBSCRIPTION_DAYS
            subscription = UserSubscription(
                user_id=payment.user_id,
                plan_id=payment.plan_id,
                payment_id=payment_id,
                type=payment.subscription_type,
                category_id=payment.category_id,
                start_date=now,
                end_date=now + timedelta(days=duration_days),
                is_active=True,
                auto_renew=False,
            )
            self.db.add(subscription)
            self.db.flush()
            subscription_id = int(subscription.id)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            current = self.db.query(Payment).filter(Payment.order_id == order_id).first()
            if current is not None and current.status == PaymentStatus.SUCCESS.value:
                logger.info(f"Order {order_id} reconciled concurrently")
                return ReconcileResult(ReconcileOutcome.ALREADY_DONE, int(current.id))
            logger.error(f"Could not reconcile order {order_id}: {e}")
            raise Conflict("Payment could not be reconciled")
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Payment {payment_id} (order {order_id}) succeeded; subscription {subscription_id} "
            f"active for {duration_days} days"
        )
        return ReconcileResult(ReconcileOutcome.ACTIVATED, payment_id, subscription_id)

    def mark_failed(self, order_id: str, reason: str) -> bool:
        """Mark a payment FAILED. A successful payment is never downgraded."""
        try:
            updated = (
                self.db.query(Payment)
                .filter(Payment.order_id == order_id, Payment.status != PaymentStatus.SUCCESS.value)
                .update(
                    {
                        Payment.status: PaymentStatus.FAILED.value,
                        Payment.failure_reason: reason,
                        Payment.updated_at: utcnow(),
                    },
                    synchronize_session=False,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        if updated:
            logger.warning(f"Payment for order {order_id} marked FAILED: {reason}")
        return bool(updated)
