from typing import Optional

from x402_sentinel.types import ErrorResponse


class SentinelError(Exception):
    """Base class for errors surfaced to callers as structured JSON."""

    status_code = 500
    kind = "internal_error"
    message = "internal error"

    def __init__(self, details: Optional[str] = None):
        self.details = details
        super().__init__(details or self.message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(error=self.message, kind=self.kind, details=self.details)


class ConfigurationError(SentinelError):
    """Raised when facilitator credentials are missing or incomplete."""

    status_code = 503
    kind = "authority_unavailable"
    message = "payment authority not configured"


class TransportError(SentinelError):
    """Raised when the facilitator cannot be reached or times out."""

    status_code = 504
    kind = "authority_transport"
    message = "payment authority unreachable"


class ProtocolError(SentinelError):
    """Raised when a facilitator response cannot be parsed."""

    status_code = 502
    kind = "authority_protocol"
    message = "malformed payment authority response"


class AuthorityError(ProtocolError):
    """Raised when the facilitator answers with a non-success status."""

    kind = "authority_error"
    message = "payment authority returned an error"

    def __init__(self, upstream_status: int, body: str = ""):
        self.upstream_status = upstream_status
        self.body = body
        super().__init__(f"facilitator returned status {upstream_status}: {body}")


class PaymentInvalidError(SentinelError):
    """Raised when the facilitator rejects the payment proof."""

    status_code = 401
    kind = "payment_invalid"
    message = "payment verification failed"


class SettlementError(SentinelError):
    """Raised when a verified payment fails to settle."""

    status_code = 401
    kind = "settlement_failed"
    message = "payment verification failed"


class RoutingError(SentinelError):
    """Raised for an unknown service name."""

    status_code = 404
    kind = "routing_error"
    message = "service not found"


class BackendError(SentinelError):
    """Raised when the resolved backend is unreachable or errored."""

    status_code = 502
    kind = "backend_error"
    message = "backend unavailable"


class BadRequestError(SentinelError):
    """Raised when the request is missing required parts."""

    status_code = 400
    kind = "bad_request"
    message = "service required"
