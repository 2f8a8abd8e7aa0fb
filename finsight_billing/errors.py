"""Exceptions raised by the billing core and mapped to responses in ``main``."""

from typing import Optional, Sequence


class BillingError(Exception):
    """Base class for every error the billing service reports."""

    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class WebhookInputError(BillingError):
    """A postback that cannot be processed; the gateway should retry it."""


class MalformedBody(WebhookInputError):
    default_message = "Malformed body"


class MissingFields(WebhookInputError):
    default_message = "Missing required fields"

    def __init__(self, fields: Sequence[str]) -> None:
        self.fields = tuple(fields)
        super().__init__(f"Missing required fields: {', '.join(self.fields)}")


class InvalidRequest(BillingError):
    default_message = "Invalid request"


class Unauthorized(BillingError):
    status_code = 401
    default_message = "Invalid authentication token"


class RecordNotFound(BillingError):
    status_code = 404
    default_message = "Record not found"


class GatewayError(BillingError):
    default_message = "Payment gateway error"


class GatewayTransportError(GatewayError):
    status_code = 502

    def __init__(self, status_code: Optional[int]) -> None:
        self.gateway_status = status_code
        if status_code is None:
            message = "eZeePayments API unreachable"
        else:
            message = f"eZeePayments API error: {status_code}"
        super().__init__(message)


class GatewayBusinessError(GatewayError):
    status_code = 400
