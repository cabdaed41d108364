"""Errors raised by the payment handlers.

Each carries the HTTP status the views answer with and a message that is
safe to show to the payer.
"""


class PaymentError(Exception):
    status_code = 500
    default_message = "Payment request failed. Please try again."

    def __init__(self, message=None, details=None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(PaymentError):
    status_code = 400
    default_message = "Invalid payment request."


class GatewayRejected(PaymentError):
    """The provider declined the request synchronously."""

    status_code = 400
    default_message = "Failed to initiate payment."

    def __init__(self, message=None, result_code=None, result_desc=None, details=None):
        super().__init__(message, details)
        self.result_code = result_code
        self.result_desc = result_desc


class GatewayUnavailable(PaymentError):
    """Transport or authentication failure talking to the provider."""

    status_code = 500
    default_message = "M-Pesa is unreachable right now. Please try again shortly."


class NotFound(PaymentError):
    status_code = 404
    default_message = "Transaction not found"


class MalformedCallback(PaymentError):
    status_code = 400
    default_message = "Invalid callback format"


class StorageError(PaymentError):
    status_code = 500
    default_message = "Failed to update transaction"
