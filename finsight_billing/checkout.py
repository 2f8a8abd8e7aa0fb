"""Subscription checkout: registers the plan with the gateway, records the
pending subscription and payment rows, and fetches a hosted-payment token.
The webhook later settles the payment created here.
"""

import time
from dataclasses import dataclass

import structlog

from finsight_billing.errors import InvalidRequest

logger = structlog.get_logger()

CURRENCY = "USD"

PLAN_CONFIG = {
    "professional": {
        "monthly": 99,
        "annual": 79,
        "description": "Professional Plan - Credit Analysis & AI Tools",
    },
    "business": {
        "monthly": 299,
        "annual": 249,
        "description": "Business Plan - Team Collaboration & Advanced Features",
    },
}

GATEWAY_FREQUENCY = {"monthly": "monthly", "annual": "annually"}


@dataclass(frozen=True)
class CheckoutSession:
    payment_url: str
    token: str
    amount: int
    currency: str
    order_id: str
    subscription_id: str

    def to_response(self):
        return {
            "success": True,
            "paymentUrl": self.payment_url,
            "token": self.token,
            "amount": self.amount,
            "currency": self.currency,
            "orderId": self.order_id,
            "subscriptionId": self.subscription_id,
            "recurring": True,
        }


def make_order_id(user_id: str) -> str:
    return f"SUB-{user_id[:8]}-{int(time.time() * 1000)}"


def create_checkout(plan_key, billing_cycle, user, store, gateway, settings) -> CheckoutSession:
    plan = PLAN_CONFIG.get(plan_key)
    if plan is None:
        raise InvalidRequest("Invalid plan selected")
    if billing_cycle not in GATEWAY_FREQUENCY:
        raise InvalidRequest("Invalid billing cycle")

    amount = plan[billing_cycle]
    frequency = GATEWAY_FREQUENCY[billing_cycle]
    log = logger.bind(user_id=user.user_id, plan=plan_key, billing_cycle=billing_cycle)

    created = gateway.create_subscription(
        amount=amount, currency=CURRENCY, frequency=frequency, description=plan["description"]
    ).unwrap()
    ezee_subscription_id = created.get("subscription_id")
    log.info("Gateway subscription created", ezee_subscription_id=ezee_subscription_id)

    subscription = store.create_subscription(
        user_id=user.user_id,
        tier_id=plan_key,
        ezee_subscription_id=ezee_subscription_id,
        amount=amount,
        currency=CURRENCY,
        frequency=frequency,
        description=plan["description"],
    )

    order_id = make_order_id(user.user_id)
    store.create_payment(
        user_id=user.user_id,
        subscription_id=subscription.id,
        order_id=order_id,
        amount=amount,
        currency=CURRENCY,
        customer_email=user.email,
        description=plan["description"],
    )

    base = settings.app_base_url
    token = gateway.custom_token(
        amount=amount,
        currency=CURRENCY,
        order_id=order_id,
        post_back_url=f"{base}/api/payments/webhook",
        return_url=f"{base}/payment/success?order_id={order_id}",
        cancel_url=f"{base}/payment/cancelled?order_id={order_id}",
    ).unwrap()
    log.info("Payment token generated", order_id=order_id)

    return CheckoutSession(
        payment_url=settings.gateway_secure_url,
        token=token.get("token"),
        amount=amount,
        currency=CURRENCY,
        order_id=order_id,
        subscription_id=ezee_subscription_id,
    )
