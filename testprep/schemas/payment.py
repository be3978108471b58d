"""
Pydantic schemas for payments.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class PaymentOrderCreate(BaseModel):
    plan_id: int


class PaymentOrder(BaseModel):
    """What the client needs to open the gateway checkout."""

    order_id: str
    amount: int = Field(..., description="Amount in paise")
    currency: str
    key: str
    plan_name: str
    description: Optional[str] = None


class PaymentVerify(BaseModel):
    razorpay_order_id: str = Field(..., min_length=1)
    razorpay_payment_id: str = Field(..., min_length=1)
    razorpay_signature: str = Field(..., min_length=1)


class PaymentVerified(BaseModel):
    success: bool
    payment_id: int
    subscription_id: Optional[int] = None
    message: str


class PlanOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: float
    duration_days: int
    type: str
    category_id: Optional[int] = None


class SubscriptionOut(BaseModel):
    """A purchased subscription; is_active is false once end_date has passed."""

    id: int
    plan_id: int
    plan_name: Optional[str] = None
    type: str
    category_id: Optional[int] = None
    start_date: datetime
    end_date: datetime
    is_active: bool
    payment_id: Optional[int] = None
