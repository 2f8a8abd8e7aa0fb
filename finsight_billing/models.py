import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Numeric, DateTime, ForeignKey

from finsight_billing.database import Base


def _uuid():
    return str(uuid.uuid4())


def utcnow():
    return datetime.now(timezone.utc)


class PaymentStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class SubscriptionStatus:
    PENDING = "pending"
    ACTIVE = "active"
    CANCELED = "canceled"
    ENDED = "ended"

    # Forward-only moves; anything else is refused
    TRANSITIONS = {
        (PENDING, ACTIVE),
        (PENDING, CANCELED),
        (ACTIVE, CANCELED),
        (ACTIVE, ENDED),
    }

    TERMINAL = {CANCELED, ENDED}

    @classmethod
    def can_move(cls, current, new):
        return (current, new) in cls.TRANSITIONS


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=_uuid)
    email = Column(String)
    tier = Column(String, default="free")                           # free | professional | business | enterprise
    subscription_status = Column(String, default="trialing")       # active | canceled | past_due | trialing


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), index=True)
    tier_id = Column(String)
    ezee_subscription_id = Column(String)
    ezee_transaction_number = Column(String, index=True)          # set on first successful payment
    amount = Column(Numeric(10, 2))
    currency = Column(String)
    frequency = Column(String)
    description = Column(String)
    status = Column(String, default=SubscriptionStatus.PENDING)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    last_payment_at = Column(DateTime(timezone=True))


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String, primary_key=True, default=_uuid)
    user_id = Column(String, ForeignKey("users.id"), index=True)
    subscription_id = Column(String, ForeignKey("subscriptions.id"), nullable=True)
    order_id = Column(String, unique=True, index=True)
    transaction_number = Column(String, index=True)               # gateway-assigned
    amount = Column(Numeric(10, 2))
    currency = Column(String)
    description = Column(String)
    customer_email = Column(String)
    status = Column(String, default=PaymentStatus.PENDING)        # pending | completed | failed
    response_code = Column(String)
    response_description = Column(String)
    processed_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), default=utcnow)
