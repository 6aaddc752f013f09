"""x402 payment gate: decides per request whether to reject or admit."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Container, Mapping, Optional

from x402_sentinel.common import (
    PAYMENT_REQUIRED_HEADER,
    PAYMENT_STATUS_HEADER,
    PAYMENT_STATUS_VERIFIED,
    SETTLEMENT_ID_HEADER,
    X402_VERSION_HEADER,
)
from x402_sentinel.encoding import encode_payment_required_header
from x402_sentinel.errors import (
    ConfigurationError,
    PaymentInvalidError,
    RoutingError,
    SentinelError,
    SettlementError,
)
from x402_sentinel.evidence import extract_payment_evidence
from x402_sentinel.facilitator import FacilitatorClient, FacilitatorConfig
from x402_sentinel.requirements import RequirementBuilder
from x402_sentinel.retry import RetryPolicy
from x402_sentinel.types import PaymentRequiredResponse

logger = logging.getLogger(__name__)

RESULT_SERVICE_NOT_FOUND = "service-not-found"
RESULT_PAYMENT_REQUIRED = "payment-required"
RESULT_PAYMENT_REJECTED = "payment-rejected"
RESULT_PAYMENT_ERROR = "payment-error"
RESULT_PAYMENT_VERIFIED = "payment-verified"

FacilitatorFactory = Callable[[], FacilitatorClient]


@dataclass
class GateResult:
    """Outcome of gating one request.

    For every type except payment-verified, ``status_code``, ``body`` and
    ``headers`` describe the rejection to send. For payment-verified,
    ``headers`` must be added to the forwarded response.
    """

    type: str
    status_code: int
    body: Optional[dict[str, Any]] = None
    headers: dict[str, str] = field(default_factory=dict)
    settlement_id: Optional[str] = None
    demo: bool = False

    @property
    def admitted(self) -> bool:
        return self.type == RESULT_PAYMENT_VERIFIED


def default_facilitator_factory(timeout: float = 30.0) -> FacilitatorFactory:
    def factory() -> FacilitatorClient:
        return FacilitatorClient(FacilitatorConfig.from_env(timeout=timeout))

    return factory


def demo_settlement_id() -> str:
    return "demo-" + datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")


class PaymentGate:
    """Payment gating state machine.

    Start -> unknown service -> 404
    Start -> no evidence -> 402 with the payment required descriptor
    Start -> evidence -> verify and settle -> admitted, 401, or an
    authority fault (503/504/502)

    The facilitator client is built lazily, at most once per gate. If it
    cannot be built, requests carrying evidence are rejected with 503
    unless demo_mode was explicitly enabled, in which case they are
    admitted with a demo settlement id and a warning is logged.
    """

    def __init__(
        self,
        builder: RequirementBuilder,
        services: Container[str],
        facilitator: Optional[FacilitatorClient] = None,
        facilitator_factory: Optional[FacilitatorFactory] = None,
        retry: Optional[RetryPolicy] = None,
        demo_mode: bool = False,
    ) -> None:
        self._builder = builder
        self._services = services
        self._retry = retry or RetryPolicy()
        self._demo_mode = demo_mode

        self._facilitator_factory = facilitator_factory or default_facilitator_factory()
        self._facilitator = facilitator
        self._facilitator_error: Optional[ConfigurationError] = None
        self._facilitator_ready = facilitator is not None
        self._init_lock = threading.Lock()

        if demo_mode:
            logger.warning(
                "x402 DEMO MODE enabled: payments are admitted without verification "
                "when facilitator credentials are missing. Never use in production."
            )

    @property
    def builder(self) -> RequirementBuilder:
        return self._builder

    @property
    def demo_mode(self) -> bool:
        return self._demo_mode

    def get_facilitator(self) -> Optional[FacilitatorClient]:
        """Return the facilitator client, building it on first use.

        Construction is attempted once; a ConfigurationError is remembered
        and None returned from then on.
        """
        if self._facilitator_ready:
            return self._facilitator

        with self._init_lock:
            if not self._facilitator_ready:
                try:
                    self._facilitator = self._facilitator_factory()
                    logger.info(f"x402 facilitator client initialized ({self._facilitator.url})")
                except ConfigurationError as e:
                    self._facilitator_error = e
                    if self._demo_mode:
                        logger.warning(f"x402 facilitator unavailable, falling back to DEMO MODE: {e}")
                    else:
                        logger.error(f"x402 facilitator unavailable, paid requests will be rejected: {e}")
                self._facilitator_ready = True
        return self._facilitator

    async def aclose(self) -> None:
        if self._facilitator is not None:
            await self._facilitator.aclose()

    def payment_required(self, service: str, resource_url: str) -> PaymentRequiredResponse:
        return self._builder.build(service, resource_url)

    async def process(
        self,
        service: str,
        resource_url: str,
        headers: Mapping[str, str],
    ) -> GateResult:
        """Gate a single request.

        Args:
            service: Service name taken from the request path
            resource_url: Full URL of the request
            headers: Request headers

        Returns:
            GateResult describing the rejection or the admission
        """
        if service not in self._services:
            return self._error_result(RESULT_SERVICE_NOT_FOUND, RoutingError(service))

        has_payment, evidence = extract_payment_evidence(headers)
        if not has_payment:
            return self._payment_required_result(service, resource_url)

        try:
            settlement_id, demo = await self._verify_and_settle(evidence)
        except (PaymentInvalidError, SettlementError) as e:
            logger.info(f"x402 payment rejected for {service}: {e}")
            return self._error_result(RESULT_PAYMENT_REJECTED, e)
        except SentinelError as e:
            logger.error(f"x402 payment verification failed for {service} ({e.kind}): {e}")
            return self._error_result(RESULT_PAYMENT_ERROR, e)

        if demo:
            logger.warning(f"x402 DEMO MODE admitted unverified payment for {service} ({settlement_id})")
        else:
            logger.info(f"x402 payment verified for {service}, settlement_id={settlement_id}")

        return GateResult(
            type=RESULT_PAYMENT_VERIFIED,
            status_code=200,
            headers={
                SETTLEMENT_ID_HEADER: settlement_id,
                PAYMENT_STATUS_HEADER: PAYMENT_STATUS_VERIFIED,
            },
            settlement_id=settlement_id,
            demo=demo,
        )

    async def _verify_and_settle(self, evidence: str) -> tuple[str, bool]:
        facilitator = self.get_facilitator()
        if facilitator is None:
            if self._demo_mode:
                return demo_settlement_id(), True
            raise self._facilitator_error or ConfigurationError()

        requirement = self._builder.settlement_requirement()
        _, settlement_id = await facilitator.verify_and_settle(
            evidence, requirement, retry=self._retry
        )
        return settlement_id, False

    def _payment_required_result(self, service: str, resource_url: str) -> GateResult:
        payment_required = self.payment_required(service, resource_url)
        return GateResult(
            type=RESULT_PAYMENT_REQUIRED,
            status_code=402,
            body=payment_required.model_dump(by_alias=True),
            headers=payment_required_headers(payment_required),
        )

    @staticmethod
    def _error_result(result_type: str, error: SentinelError) -> GateResult:
        return GateResult(
            type=result_type,
            status_code=error.status_code,
            body=error.to_response().model_dump(exclude_none=True),
            headers={"Content-Type": "application/json"},
        )


def payment_required_headers(payment_required: PaymentRequiredResponse) -> dict[str, str]:
    return {
        "Content-Type": "application/json",
        X402_VERSION_HEADER: str(payment_required.x402_version),
        PAYMENT_REQUIRED_HEADER: encode_payment_required_header(payment_required),
    }
