"""Error taxonomy for the payment proxy.

Every error carries the HTTP status the route answers with and a message that
is safe to show to the customer at checkout.
"""


class PaymentProxyError(Exception):
    """Base class for failures converted into `{success: false, error}`."""

    status_code = 500
    error_type = "UNKNOWN"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(PaymentProxyError):
    """Bad client input, raised before any gateway call."""

    status_code = 400
    error_type = "VALIDATION"


class ConfigError(PaymentProxyError):
    """Gateway settings missing or unusable."""

    status_code = 500
    error_type = "CONFIG"


class GatewayError(PaymentProxyError):
    """The gateway answered with an error or a response we cannot use."""

    status_code = 502
    error_type = "GATEWAY"


class NetworkError(PaymentProxyError):
    """Transport failure while talking to the gateway."""

    status_code = 502
    error_type = "NETWORK"


class GatewayTimeoutError(NetworkError):
    error_type = "TIMEOUT"


class UnknownError(PaymentProxyError):
    status_code = 500
    error_type = "UNKNOWN"
