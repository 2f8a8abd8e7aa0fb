"""Gateway postback ingestion.

``parse_body`` turns whatever the gateway posted into a flat field mapping;
``ingest`` applies the resulting notification to the payment it refers to.
``ingest`` is transport-free so it can be driven directly from tests.
"""

import json
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from urllib.parse import parse_qsl

import structlog
from sqlalchemy.exc import SQLAlchemyError

from finsight_billing.errors import MalformedBody, MissingFields
from finsight_billing.models import PaymentStatus, utcnow

logger = structlog.get_logger()

SUCCESS_CODE = "1"

ACK_OK = "OK"
ACK_NOT_FOUND = "Payment record not found"
ACK_ERROR = "Error processed"

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def _decode_json(raw: bytes) -> Optional[Dict[str, str]]:
    try:
        data = json.loads(raw.decode("utf-8"))
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    return {str(k): str(v) for k, v in data.items() if v is not None and not isinstance(v, (dict, list))}


def _decode_urlencoded(raw: bytes) -> Optional[Dict[str, str]]:
    try:
        text = raw.decode("utf-8")
    except ValueError:
        return None
    # Trailing "&" and valueless keys are fine; a body with no key=value pair is not a form
    if "=" not in text:
        return None
    return dict(parse_qsl(text, keep_blank_values=True))


def decode_fields(raw: bytes, content_type: str = "") -> Dict[str, str]:
    """Decode a JSON or form-urlencoded body, trying the declared type first."""
    if not raw or not raw.strip():
        raise MalformedBody("Empty body")

    decoders = [_decode_urlencoded, _decode_json]
    if "json" in content_type.lower() or raw.lstrip().startswith(b"{"):
        decoders.reverse()

    for decoder in decoders:
        fields = decoder(raw)
        if fields is not None:
            return fields
    raise MalformedBody()


async def parse_body(request) -> Dict[str, str]:
    content_type = request.headers.get("content-type", "")
    raw = await request.body()

    if content_type.lower().startswith(FORM_CONTENT_TYPES):
        try:
            form = await request.form()
        except Exception as e:
            raise MalformedBody(f"Malformed form body: {e}")
        return {key: value for key, value in form.items() if isinstance(value, str)}

    return decode_fields(raw, content_type)


@dataclass(frozen=True)
class Notification:
    response_code: str
    transaction_number: str
    order_id: Optional[str] = None
    response_description: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return self.response_code == SUCCESS_CODE

    @classmethod
    def from_fields(cls, fields: Dict[str, str]) -> "Notification":
        missing = [name for name in ("ResponseCode", "TransactionNumber") if not fields.get(name)]
        if missing:
            raise MissingFields(missing)
        return cls(
            response_code=fields["ResponseCode"],
            transaction_number=fields["TransactionNumber"],
            order_id=fields.get("order_id") or None,
            response_description=fields.get("ResponseDescription"),
        )


@dataclass(frozen=True)
class IngestOutcome:
    result: str
    payment_id: Optional[str] = None
    status: Optional[str] = None

    @property
    def acknowledgement(self) -> str:
        return ACK_NOT_FOUND if self.result == "not_found" else ACK_OK


def _find_payment(notification: Notification, store):
    payment = None
    if notification.order_id:
        payment = store.find_payment_by_order_id(notification.order_id)
    if payment is None:
        payment = store.find_payment_by_transaction_number(notification.transaction_number)
    return payment


def ingest(notification: Notification, store, now: Callable = utcnow) -> IngestOutcome:
    log = logger.bind(
        order_id=notification.order_id,
        transaction_number=notification.transaction_number,
        response_code=notification.response_code,
    )

    payment = _find_payment(notification, store)
    if payment is None:
        # Acknowledged anyway: a retry would not create the record.
        log.error("Payment record not found, manual reconciliation required")
        return IngestOutcome("not_found")

    if (
        payment.status == PaymentStatus.COMPLETED
        and payment.transaction_number == notification.transaction_number
    ):
        log.info("Payment already processed", payment_id=payment.id)
        return IngestOutcome("duplicate", payment.id, payment.status)

    status = PaymentStatus.COMPLETED if notification.is_success else PaymentStatus.FAILED
    processed_at = now()
    applied = store.record_payment_outcome(
        payment.id,
        status=status,
        transaction_number=notification.transaction_number,
        response_code=notification.response_code,
        response_description=notification.response_description,
        processed_at=processed_at,
    )
    if not applied:
        log.info("Payment completed by a concurrent delivery", payment_id=payment.id)
        return IngestOutcome("superseded", payment.id, PaymentStatus.COMPLETED)

    log.info("Payment updated", payment_id=payment.id, status=status)

    if notification.is_success and payment.subscription_id:
        try:
            store.link_subscription_payment(
                payment.subscription_id, notification.transaction_number, processed_at
            )
        except SQLAlchemyError:
            log.exception("Error updating subscription", subscription_id=payment.subscription_id)
        else:
            log.info("Subscription linked", subscription_id=payment.subscription_id)

    return IngestOutcome("applied", payment.id, status)
