from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from finsight_billing.auth import Identity, current_user
from finsight_billing.cancellation import cancel
from finsight_billing.checkout import create_checkout
from finsight_billing.errors import WebhookInputError
from finsight_billing.reconciler import check_status
from finsight_billing.webhook import ACK_ERROR, Notification, ingest, parse_body

logger = structlog.get_logger()

router = APIRouter(prefix="/api/payments")


def get_store(request: Request):
    return request.app.state.store


def get_gateway(request: Request):
    return request.app.state.gateway


def get_settings(request: Request):
    return request.app.state.settings


class SubscriptionRequest(BaseModel):
    subscriptionId: Optional[str] = None


class CheckoutRequest(BaseModel):
    planKey: Optional[str] = None
    billingCycle: Optional[str] = None


@router.post("/webhook", response_class=PlainTextResponse)
async def payment_webhook(request: Request, store=Depends(get_store)):
    try:
        fields = await parse_body(request)
        notification = Notification.from_fields(fields)
    except WebhookInputError as e:
        logger.error("Rejected webhook", reason=e.message)
        return PlainTextResponse(e.message, status_code=400)

    logger.info(
        "Webhook received",
        ResponseCode=notification.response_code,
        ResponseDescription=notification.response_description,
        TransactionNumber=notification.transaction_number,
        order_id=notification.order_id,
    )

    try:
        outcome = await run_in_threadpool(ingest, notification, store)
    except Exception:
        # Acknowledge: the gateway retrying would not fix this
        logger.exception("Webhook processing failed", order_id=notification.order_id)
        return PlainTextResponse(ACK_ERROR)

    return PlainTextResponse(outcome.acknowledgement)


@router.api_route(
    "/webhook", methods=["GET", "HEAD", "PUT", "PATCH", "DELETE", "OPTIONS"], include_in_schema=False
)
def webhook_method_not_allowed():
    return PlainTextResponse("Method not allowed", status_code=405)


@router.post("/subscription-status")
def subscription_status(
    request: SubscriptionRequest,
    user: Identity = Depends(current_user),
    store=Depends(get_store),
    gateway=Depends(get_gateway),
):
    report = check_status(request.subscriptionId, user, store, gateway)
    return report.to_response()


@router.post("/cancel-subscription")
def cancel_subscription(
    request: SubscriptionRequest,
    user: Identity = Depends(current_user),
    store=Depends(get_store),
    gateway=Depends(get_gateway),
):
    return cancel(request.subscriptionId, user, store, gateway).to_response()


@router.post("/create-checkout")
def checkout(
    request: CheckoutRequest,
    user: Identity = Depends(current_user),
    store=Depends(get_store),
    gateway=Depends(get_gateway),
    settings=Depends(get_settings),
):
    session = create_checkout(request.planKey, request.billingCycle, user, store, gateway, settings)
    return session.to_response()
