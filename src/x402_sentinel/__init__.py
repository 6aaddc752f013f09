"""x402 Sentinel: payment gating for metered RPC services."""

from x402_sentinel.common import x402_VERSION
from x402_sentinel.errors import (
    AuthorityError,
    BackendError,
    ConfigurationError,
    PaymentInvalidError,
    ProtocolError,
    RoutingError,
    SentinelError,
    SettlementError,
    TransportError,
)
from x402_sentinel.evidence import extract_payment_evidence
from x402_sentinel.facilitator import FacilitatorClient, FacilitatorConfig
from x402_sentinel.gate import GateResult, PaymentGate
from x402_sentinel.requirements import PricingConfig, RequirementBuilder
from x402_sentinel.retry import RetryPolicy
from x402_sentinel.routing import (
    BackendTarget,
    Dispatcher,
    ServiceRegistry,
    extract_service,
    strip_service_prefix,
)
from x402_sentinel.types import (
    PaymentRequiredResponse,
    PaymentRequirements,
    ResourceInfo,
    SettleResponse,
    VerifyResponse,
)

__all__ = [
    # Gate
    "PaymentGate",
    "GateResult",
    "RetryPolicy",
    # Requirements
    "PricingConfig",
    "RequirementBuilder",
    "extract_payment_evidence",
    # Facilitator
    "FacilitatorClient",
    "FacilitatorConfig",
    # Routing
    "BackendTarget",
    "Dispatcher",
    "ServiceRegistry",
    "extract_service",
    "strip_service_prefix",
    # Types
    "PaymentRequirements",
    "PaymentRequiredResponse",
    "ResourceInfo",
    "VerifyResponse",
    "SettleResponse",
    # Errors
    "SentinelError",
    "ConfigurationError",
    "TransportError",
    "ProtocolError",
    "AuthorityError",
    "PaymentInvalidError",
    "SettlementError",
    "RoutingError",
    "BackendError",
    # Common
    "x402_VERSION",
]
