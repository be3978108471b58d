"""
Subscription payment endpoints.
"""
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from testprep.core.clock import as_utc, utcnow
from testprep.core.config import settings
from testprep.core.dependencies import get_current_active_user, get_db, get_payment_gateway
from testprep.core.engine import PaymentCheckout
from testprep.core.engine.checkout import to_minor_units
from testprep.core.exceptions import ValidationFailed
from testprep.models.billing import SubscriptionPlan, UserSubscription
from testprep.models.user import User
from testprep.schemas.common import WebhookAck
from testprep.schemas.payment import (
    PaymentOrder,
    PaymentOrderCreate,
    PaymentVerified,
    PaymentVerify,
    PlanOut,
    SubscriptionOut,
)
from testprep.services.payment_gateway import RazorpayClient

router = APIRouter()


@router.get("/plans", response_model=List[PlanOut])
def list_plans(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """Active subscription plans in display order."""
    plans = (
        db.query(SubscriptionPlan)
        .filter(SubscriptionPlan.is_active.is_(True))
        .order_by(SubscriptionPlan.display_order, SubscriptionPlan.id)
        .all()
    )
    return [
        PlanOut(
            id=p.id,
            name=p.name,
            description=p.description,
            price=float(p.price),
            duration_days=p.duration_days,
            type=p.type,
            category_id=p.category_id,
        )
        for p in plans
    ]


@router.get("/subscriptions/me", response_model=List[SubscriptionOut])
def my_subscriptions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """
    List the current user's subscriptions, newest first.

    Expired subscriptions are listed with is_active false.
    """
    now = utcnow()
    subscriptions = (
        db.query(UserSubscription)
        .filter(UserSubscription.user_id == current_user.id)
        .order_by(UserSubscription.start_date.desc(), UserSubscription.id.desc())
        .all()
    )
    return [
        SubscriptionOut(
            id=s.id,
            plan_id=s.plan_id,
            plan_name=s.plan.name if s.plan else None,
            type=s.type,
            category_id=s.category_id,
            start_date=s.start_date,
            end_date=s.end_date,
            is_active=bool(s.is_active) and as_utc(s.end_date) > now,
            payment_id=s.payment_id,
        )
        for s in subscriptions
    ]


@router.post("/orders", response_model=PaymentOrder, status_code=status.HTTP_201_CREATED)
async def create_payment_order(
    order_data: PaymentOrderCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    gateway: RazorpayClient = Depends(get_payment_gateway),
) -> Any:
    """
    Create a gateway order for a subscription plan.

    Args:
        order_data: Plan to buy
        db: Database session
        current_user: Current authenticated user
        gateway: Gateway client

    Returns:
        Order details for the client checkout
    """
    payment, order = await PaymentCheckout(db, gateway=gateway).create_order(current_user.id, order_data.plan_id)
    return PaymentOrder(
        order_id=payment.order_id,
        amount=int(order.get("amount", to_minor_units(payment.amount))),
        currency=payment.currency,
        key=settings.RAZORPAY_KEY_ID,
        plan_name=payment.plan.name,
        description=payment.plan.description,
    )


@router.post("/verify", response_model=PaymentVerified)
def verify_payment(
    verify_data: PaymentVerify,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
) -> Any:
    """Confirm a checkout from the client and activate the subscription."""
    result = PaymentCheckout(db).verify_payment(
        current_user.id,
        verify_data.razorpay_order_id,
        verify_data.razorpay_payment_id,
        verify_data.razorpay_signature,
    )
    return PaymentVerified(
        success=True,
        payment_id=result.payment_id,
        subscription_id=result.subscription_id,
        message="Payment verified and subscription activated",
    )


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    x_razorpay_signature: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> Any:
    """
    Gateway webhook. Unauthenticated; trusted only through its signature.
    """
    raw_body = await request.body()
    try:
        PaymentCheckout(db).handle_webhook(raw_body, x_razorpay_signature)
    except ValidationFailed:
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"status": "invalid_signature"})
    return WebhookAck(status="ok")
