"""Persistence for payments, subscriptions and the user mirror fields.

Every write is a single UPDATE guarded by the row's current status, so two
stateless invocations touching the same row cannot both apply a transition.
Multi-row writes share one transaction.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update

from finsight_billing.models import (
    Payment,
    PaymentStatus,
    Subscription,
    SubscriptionStatus,
    User,
)

FREE_TIER = "free"


class PaymentStore:
    def __init__(self, session_factory):
        self._sessions = session_factory

    # --- payments -----------------------------------------------------------

    def find_payment_by_order_id(self, order_id: str) -> Optional[Payment]:
        with self._sessions() as db:
            return db.execute(
                select(Payment).where(Payment.order_id == order_id)
            ).scalars().first()

    def find_payment_by_transaction_number(self, transaction_number: str) -> Optional[Payment]:
        with self._sessions() as db:
            return db.execute(
                select(Payment)
                .where(Payment.transaction_number == transaction_number)
                .order_by(Payment.created_at.desc())
            ).scalars().first()

    def record_payment_outcome(
        self,
        payment_id: str,
        *,
        status: str,
        transaction_number: str,
        response_code: str,
        response_description: Optional[str],
        processed_at: datetime,
    ) -> bool:
        """Apply a terminal status unless the row is already completed.

        Returns False when another delivery completed the payment first.
        """
        with self._sessions.begin() as db:
            result = db.execute(
                update(Payment)
                .where(Payment.id == payment_id, Payment.status != PaymentStatus.COMPLETED)
                .values(
                    status=status,
                    transaction_number=transaction_number,
                    response_code=response_code,
                    response_description=response_description,
                    processed_at=processed_at,
                )
            )
            return result.rowcount == 1

    def create_payment(self, **fields) -> Payment:
        with self._sessions.begin() as db:
            payment = Payment(status=PaymentStatus.PENDING, **fields)
            db.add(payment)
        return payment

    # --- subscriptions ------------------------------------------------------

    def get_subscription_for_user(self, subscription_id: str, user_id: str) -> Optional[Subscription]:
        with self._sessions() as db:
            return db.execute(
                select(Subscription).where(
                    Subscription.id == subscription_id,
                    Subscription.user_id == user_id,
                )
            ).scalars().first()

    def create_subscription(self, **fields) -> Subscription:
        with self._sessions.begin() as db:
            subscription = Subscription(status=SubscriptionStatus.PENDING, **fields)
            db.add(subscription)
        return subscription

    def link_subscription_payment(
        self, subscription_id: str, transaction_number: str, paid_at: datetime
    ) -> Optional[Subscription]:
        """Attach a successful transaction to its subscription.

        A pending subscription becomes active and the owner's tier mirror is
        upgraded in the same transaction.
        """
        with self._sessions.begin() as db:
            subscription = db.get(Subscription, subscription_id)
            if subscription is None:
                return None

            db.execute(
                update(Subscription)
                .where(Subscription.id == subscription_id)
                .values(ezee_transaction_number=transaction_number, last_payment_at=paid_at)
            )
            activated = db.execute(
                update(Subscription)
                .where(
                    Subscription.id == subscription_id,
                    Subscription.status == SubscriptionStatus.PENDING,
                )
                .values(status=SubscriptionStatus.ACTIVE)
            ).rowcount
            if activated and subscription.user_id:
                db.execute(
                    update(User)
                    .where(User.id == subscription.user_id)
                    .values(tier=subscription.tier_id, subscription_status="active")
                )
            db.flush()
            db.refresh(subscription)
            return subscription

    def update_subscription_status(self, subscription_id: str, current: str, new: str) -> bool:
        """Move a subscription from ``current`` to ``new`` if it is still ``current``.

        Terminal statuses downgrade the owner in the same transaction.
        """
        with self._sessions.begin() as db:
            changed = db.execute(
                update(Subscription)
                .where(Subscription.id == subscription_id, Subscription.status == current)
                .values(status=new)
            ).rowcount == 1
            if changed and new in SubscriptionStatus.TERMINAL:
                self._downgrade_owner(db, subscription_id)
            return changed

    def cancel_subscription(self, subscription_id: str) -> bool:
        """Cancel a pending or active subscription and downgrade its owner.

        Both rows commit together. Returns False when the subscription had
        already reached a terminal status.
        """
        with self._sessions.begin() as db:
            changed = db.execute(
                update(Subscription)
                .where(
                    Subscription.id == subscription_id,
                    Subscription.status.in_(
                        [SubscriptionStatus.PENDING, SubscriptionStatus.ACTIVE]
                    ),
                )
                .values(status=SubscriptionStatus.CANCELED)
            ).rowcount == 1
            if changed:
                self._downgrade_owner(db, subscription_id)
            return changed

    def _downgrade_owner(self, db, subscription_id: str) -> None:
        user_id = db.execute(
            select(Subscription.user_id).where(Subscription.id == subscription_id)
        ).scalar_one_or_none()
        if user_id is None:
            return
        db.execute(
            update(User)
            .where(User.id == user_id)
            .values(tier=FREE_TIER, subscription_status="canceled")
        )
