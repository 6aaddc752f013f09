"""Payment requirements offered for a gated RPC service."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Union

from x402_sentinel.common import apply_discount, format_percent, x402_VERSION
from x402_sentinel.networks import (
    ARKEO_MAINNET,
    BASE_MAINNET,
    ETHEREUM_MAINNET,
    get_asset,
)
from x402_sentinel.types import (
    PaymentRequiredResponse,
    PaymentRequirements,
    ResourceInfo,
)

PAYMENT_REQUIRED_ERROR = "Payment required to access this RPC endpoint"


@dataclass(frozen=True)
class PricingConfig:
    """Which rails are offered and what they cost.

    Prices are in atomic units: "1000" is 0.001 USDC (6 decimals) and
    "1000000" is 0.01 ARKEO (8 decimals).
    """

    provider_address: str
    arkeo_pay_to: Optional[str] = None
    accept_usdc: bool = True
    accept_arkeo: bool = True
    price_usdc: str = "1000"
    price_arkeo: str = "1000000"
    arkeo_discount_percent: Union[int, str, Decimal] = 15
    max_timeout_seconds: int = 60
    settlement_network: str = BASE_MAINNET
    scheme: str = "exact"

    def __post_init__(self):
        if not self.provider_address:
            raise ValueError("provider_address is required")
        if not (self.accept_usdc or self.accept_arkeo):
            raise ValueError("At least one payment rail must be enabled")
        get_asset(self.settlement_network)
        # Fail on prices that cannot be discounted exactly
        self.discounted_arkeo_price()
        apply_discount(self.price_usdc, 0)

    def discounted_arkeo_price(self) -> str:
        return apply_discount(self.price_arkeo, self.arkeo_discount_percent)


class RequirementBuilder:
    """Builds the x402 descriptor returned to unpaid requests."""

    def __init__(self, pricing: PricingConfig) -> None:
        self._pricing = pricing

    @property
    def pricing(self) -> PricingConfig:
        return self._pricing

    def build(self, service: str, resource_url: str) -> PaymentRequiredResponse:
        """Build the payment required descriptor for a service.

        Args:
            service: Logical service name, e.g. "eth"
            resource_url: URL of the requested resource

        Returns:
            PaymentRequiredResponse listing every enabled rail
        """
        return PaymentRequiredResponse(
            x402_version=x402_VERSION,
            error=PAYMENT_REQUIRED_ERROR,
            resource=ResourceInfo(
                url=resource_url,
                description=f"Arkeo RPC Service: {service}",
                mime_type="application/json",
            ),
            accepts=self.accepts(),
            extensions={},
        )

    def accepts(self) -> list[PaymentRequirements]:
        pricing = self._pricing
        accepts: list[PaymentRequirements] = []

        if pricing.accept_usdc:
            accepts.append(
                self._requirement(
                    ETHEREUM_MAINNET,
                    pricing.price_usdc,
                    pricing.provider_address,
                    extra={"name": get_asset(ETHEREUM_MAINNET)["name"], "version": "2"},
                )
            )
            # Same price on Base, listed as the cheaper option
            base = get_asset(BASE_MAINNET)
            accepts.append(
                self._requirement(
                    BASE_MAINNET,
                    pricing.price_usdc,
                    pricing.provider_address,
                    extra={
                        "name": base["name"],
                        "version": "2",
                        "chain": base["chain"],
                        "gasSaving": "true",
                    },
                )
            )

        if pricing.accept_arkeo:
            discount = format_percent(pricing.arkeo_discount_percent)
            accepts.append(
                self._requirement(
                    ARKEO_MAINNET,
                    pricing.discounted_arkeo_price(),
                    pricing.arkeo_pay_to or pricing.provider_address,
                    extra={
                        "name": get_asset(ARKEO_MAINNET)["name"],
                        "discount": discount,
                        "note": f"Pay with ARKEO for {discount} off!",
                    },
                )
            )

        return accepts

    def settlement_requirement(self) -> PaymentRequirements:
        """Pick the rail the facilitator verifies payments against."""
        accepts = self.accepts()
        for requirement in accepts:
            if requirement.network == self._pricing.settlement_network:
                return requirement
        return accepts[0]

    def _requirement(
        self, network: str, amount: str, pay_to: str, extra: dict
    ) -> PaymentRequirements:
        return PaymentRequirements(
            scheme=self._pricing.scheme,
            network=network,
            amount=amount,
            asset=get_asset(network)["address"],
            pay_to=pay_to,
            max_timeout_seconds=self._pricing.max_timeout_seconds,
            extra=extra,
        )
