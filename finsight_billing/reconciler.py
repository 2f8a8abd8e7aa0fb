from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from finsight_billing.errors import InvalidRequest, RecordNotFound
from finsight_billing.gateway import message_text
from finsight_billing.models import SubscriptionStatus

logger = structlog.get_logger()

PENDING_INITIAL_PAYMENT = "Subscription pending initial payment"

# Gateway vocabulary -> local status. Unknown strings leave the row untouched.
PROVIDER_STATUS_MAP = {
    "Active": SubscriptionStatus.ACTIVE,
    "Cancelled by user": SubscriptionStatus.CANCELED,
    "Ended": SubscriptionStatus.ENDED,
}


def map_provider_status(provider_status: Optional[str], current: str) -> str:
    if not isinstance(provider_status, str):
        return current
    return PROVIDER_STATUS_MAP.get(provider_status, current)


def owned_subscription(store, subscription_id, user):
    if not subscription_id:
        raise InvalidRequest("Subscription ID is required")
    subscription = store.get_subscription_for_user(subscription_id, user.user_id)
    if subscription is None:
        # Same answer for foreign rows so ids cannot be probed
        raise RecordNotFound("Subscription not found")
    return subscription


def _isoformat(value):
    return value.isoformat() if value is not None else None


def subscription_summary(subscription) -> Dict[str, Any]:
    return {
        "id": subscription.id,
        "tier": subscription.tier_id,
        "amount": float(subscription.amount) if subscription.amount is not None else None,
        "currency": subscription.currency,
        "frequency": subscription.frequency,
        "created_at": _isoformat(subscription.created_at),
        "last_payment_at": _isoformat(subscription.last_payment_at),
    }


@dataclass(frozen=True)
class StatusReport:
    status: str
    ezee_status: Optional[str] = None
    subscription: Optional[Dict[str, Any]] = None
    message: Optional[str] = None

    def to_response(self) -> Dict[str, Any]:
        body = {"success": True, "status": self.status}
        if self.message:
            body["message"] = self.message
        if self.ezee_status is not None:
            body["ezeeStatus"] = self.ezee_status
        if self.subscription is not None:
            body["subscription"] = self.subscription
        return body


def check_status(subscription_id, user, store, gateway) -> StatusReport:
    """Poll the gateway for a subscription and sync the local status.

    Only forward transitions are persisted; a remote status that would move
    the row backwards is reported but not written.
    """
    subscription = owned_subscription(store, subscription_id, user)
    log = logger.bind(subscription_id=subscription.id)

    if not subscription.ezee_transaction_number:
        return StatusReport(status=subscription.status, message=PENDING_INITIAL_PAYMENT)

    result = gateway.subscription_status(subscription.ezee_transaction_number).unwrap()
    ezee_status = message_text(result.get("message"))

    local_status = subscription.status
    mapped = map_provider_status(ezee_status, local_status)

    if mapped != local_status:
        if not SubscriptionStatus.can_move(local_status, mapped):
            log.warning("Ignoring backward status change", current=local_status, remote=ezee_status)
        elif store.update_subscription_status(subscription.id, local_status, mapped):
            log.info("Subscription status synced", old=local_status, new=mapped)
            local_status = mapped
        else:
            # Another invocation moved the row first; report what it holds now
            subscription = store.get_subscription_for_user(subscription.id, user.user_id) or subscription
            local_status = subscription.status
            log.info("Subscription changed concurrently", status=local_status)

    return StatusReport(
        status=local_status,
        ezee_status=ezee_status,
        subscription=subscription_summary(subscription),
    )
