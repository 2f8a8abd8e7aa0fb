from dataclasses import dataclass
from typing import Optional

import structlog

from finsight_billing.models import SubscriptionStatus
from finsight_billing.reconciler import owned_subscription

logger = structlog.get_logger()

ALREADY_CANCELLED = "Subscription is already cancelled or ended"
CANCELLED = "Subscription cancelled successfully"


@dataclass(frozen=True)
class CancelResult:
    success: bool
    message: str
    status: Optional[str] = None

    def to_response(self):
        body = {"success": self.success, "message": self.message}
        if self.status is not None:
            body["status"] = self.status
        return body


def cancel(subscription_id, user, store, gateway) -> CancelResult:
    subscription = owned_subscription(store, subscription_id, user)
    log = logger.bind(subscription_id=subscription.id, user_id=user.user_id)

    if subscription.status in SubscriptionStatus.TERMINAL:
        return CancelResult(True, ALREADY_CANCELLED, subscription.status)

    if subscription.ezee_transaction_number:
        # Raises on transport or business failure before any local write
        gateway.cancel_subscription(subscription.ezee_transaction_number).unwrap()
        log.info("Subscription cancelled with gateway")
    else:
        log.info("No transaction yet, cancelling locally")

    if not store.cancel_subscription(subscription.id):
        current = store.get_subscription_for_user(subscription.id, user.user_id) or subscription
        log.info("Subscription already terminal at write time", status=current.status)
        return CancelResult(True, ALREADY_CANCELLED, current.status)

    return CancelResult(True, CANCELLED, SubscriptionStatus.CANCELED)
