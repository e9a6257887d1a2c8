"""Error taxonomy shared by the services and the HTTP layer."""

from typing import Optional


class EntitlementError(Exception):
    """Base class for errors raised by this service."""

    status_code: int = 500
    default_message: str = "An unexpected error occurred"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationMissing(EntitlementError):
    """A required secret or environment value is not set."""

    status_code = 503
    default_message = "Service is not configured"


class AuthenticationMissing(EntitlementError):
    """The request carries no usable identity."""

    status_code = 401
    default_message = "Authentication required"


class UpstreamUnavailable(EntitlementError):
    """The billing provider could not serve the request."""

    status_code = 502
    default_message = "Billing provider is unavailable. Please try again."


class CheckoutFailed(UpstreamUnavailable):
    """User-facing failure while creating a checkout or portal session."""

    status_code = 400
    default_message = "Failed to create checkout session. Please try again or contact support."


class SignatureInvalid(EntitlementError):
    status_code = 403
    default_message = "Webhook verification failed"


class MalformedEvent(EntitlementError):
    status_code = 400
    default_message = "Webhook failed"


class NotFound(EntitlementError):
    status_code = 404
    default_message = "Resource not found"
