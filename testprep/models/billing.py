"""
Subscription plans, user subscriptions and gateway payments.
"""
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from testprep.core.clock import utcnow
from testprep.db.base import Base


class SubscriptionType(str, enum.Enum):
    CATEGORY_SPECIFIC = "CATEGORY_SPECIFIC"
    ALL_CATEGORIES = "ALL_CATEGORIES"


class PaymentStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class SubscriptionPlan(Base):
    """Purchasable plan."""

    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    duration_days = Column(Integer, nullable=False)
    type = Column(String(30), nullable=False)  # SubscriptionType
    category_id = Column(Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, default=True)
    display_order = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    category = relationship("Category")


class UserSubscription(Base):
    """Active access window bought by a payment."""

    __tablename__ = "user_subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=True)
    # One subscription per payment; NULL for manually granted ones
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=True, unique=True)
    type = Column(String(30), nullable=False)  # SubscriptionType
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    start_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    end_date = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    auto_renew = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", back_populates="subscriptions")
    plan = relationship("SubscriptionPlan")
    payment = relationship("Payment", back_populates="subscription")

    __table_args__ = (
        Index("ix_subscription_user_active_end", "user_id", "is_active", "end_date"),
    )


class Payment(Base):
    """
    One row per gateway order.

    The plan terms are copied onto the payment when the order is created so
    that activation does not depend on the plan still existing unchanged.
    """

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    payment_gateway = Column(String, nullable=False, default="RAZORPAY")
    order_id = Column(String, unique=True, nullable=False, index=True)
    transaction_id = Column(String, unique=True, nullable=True)
    status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)
    failure_reason = Column(String, nullable=True)

    # Plan snapshot
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=True)
    duration_days = Column(Integer, nullable=False)
    subscription_type = Column(String(30), nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    # Relationships
    user = relationship("User", back_populates="payments")
    plan = relationship("SubscriptionPlan")
    subscription = relationship("UserSubscription", back_populates="payment", uselist=False)

    __table_args__ = (
        Index("ix_payment_user_status", "user_id", "status"),
    )
