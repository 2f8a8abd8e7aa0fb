"""eZeePayments client.

Every call returns a :class:`GatewayResult`. The gateway reports failures on
two channels: the HTTP status, and a ``result.status`` flag inside a 200
response. They come back as distinct result kinds so callers never have to
match on error strings.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

import requests
import structlog
from requests import RequestException

from finsight_billing.errors import GatewayBusinessError, GatewayTransportError

logger = structlog.get_logger()

CANCEL_ENDPOINT = "/v1/subscription/cancel/"
STATUS_ENDPOINT = "/v1/subscription/status/"
CREATE_SUBSCRIPTION_ENDPOINT = "/v1/subscription/create/"
CUSTOM_TOKEN_ENDPOINT = "/v1/custom_token/"

OK = "ok"
TRANSPORT = "transport"
BUSINESS = "business"


@dataclass(frozen=True)
class GatewayResult:
    kind: str
    data: Dict[str, Any] = field(default_factory=dict)
    status_code: Optional[int] = None
    message: Optional[str] = None

    @classmethod
    def ok(cls, data):
        return cls(OK, data=data)

    @classmethod
    def transport_error(cls, status_code):
        return cls(TRANSPORT, status_code=status_code)

    @classmethod
    def business_error(cls, message, data=None):
        return cls(BUSINESS, data=data or {}, message=message)

    @property
    def is_ok(self) -> bool:
        return self.kind == OK

    def unwrap(self) -> Dict[str, Any]:
        if self.kind == TRANSPORT:
            raise GatewayTransportError(self.status_code)
        if self.kind == BUSINESS:
            raise GatewayBusinessError(self.message)
        return self.data


def message_text(message) -> Optional[str]:
    if message is None or isinstance(message, str):
        return message
    return json.dumps(message)


class GatewayClient:
    def __init__(
        self,
        base_url: str,
        licence_key: Optional[str],
        site: Optional[str],
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {
            "licence_key": licence_key or "",
            "site": site or "",
            "Content-Type": "application/x-www-form-urlencoded",
        }
        self.session = session or requests.Session()

    @classmethod
    def from_settings(cls, settings):
        return cls(
            settings.gateway_base_url,
            settings.licence_key,
            settings.site,
            timeout=settings.gateway_timeout,
        )

    def send(self, endpoint: str, fields: Mapping[str, Any]) -> GatewayResult:
        form = {key: str(value) for key, value in fields.items() if value is not None}
        url = f"{self.base_url}{endpoint}"

        try:
            resp = self.session.post(url, data=form, headers=self.headers, timeout=self.timeout)
        except RequestException as e:
            logger.error("Gateway request failed", endpoint=endpoint, error=str(e))
            return GatewayResult.transport_error(None)

        if not 200 <= resp.status_code < 300:
            logger.error("Gateway returned error status", endpoint=endpoint, status_code=resp.status_code)
            return GatewayResult.transport_error(resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            logger.error("Gateway returned non-JSON body", endpoint=endpoint, status_code=resp.status_code)
            return GatewayResult.transport_error(resp.status_code)

        result = body.get("result") if isinstance(body, dict) else None
        if not isinstance(result, dict):
            return GatewayResult.business_error("Unexpected response from payment gateway")

        if str(result.get("status")) != "1":
            message = message_text(result.get("message")) or "Payment gateway request failed"
            logger.warning("Gateway reported failure", endpoint=endpoint, message=message)
            return GatewayResult.business_error(message, data=result)

        return GatewayResult.ok(result)

    def subscription_status(self, transaction_number: str) -> GatewayResult:
        return self.send(STATUS_ENDPOINT, {"TransactionNumber": transaction_number})

    def cancel_subscription(self, transaction_number: str) -> GatewayResult:
        return self.send(CANCEL_ENDPOINT, {"TransactionNumber": transaction_number})

    def create_subscription(self, *, amount, currency, frequency, description) -> GatewayResult:
        return self.send(
            CREATE_SUBSCRIPTION_ENDPOINT,
            {"amount": amount, "currency": currency, "frequency": frequency, "description": description},
        )

    def custom_token(self, *, amount, currency, order_id, post_back_url, return_url, cancel_url) -> GatewayResult:
        return self.send(
            CUSTOM_TOKEN_ENDPOINT,
            {
                "amount": amount,
                "currency": currency,
                "order_id": order_id,
                "post_back_url": post_back_url,
                "return_url": return_url,
                "cancel_url": cancel_url,
            },
        )
