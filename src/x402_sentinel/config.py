from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional

from dotenv import load_dotenv

from x402_sentinel.networks import BASE_MAINNET
from x402_sentinel.requirements import PricingConfig
from x402_sentinel.retry import RetryPolicy
from x402_sentinel.routing import parse_services

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off", "")


def _get_bool(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in TRUE_VALUES:
        return True
    if value in FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")


def _get_number(environ: Mapping[str, str], name: str, default, cast):
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass
class SentinelSettings:
    """Process configuration, normally read from the environment."""

    pricing: PricingConfig
    services: dict[str, str] = field(default_factory=dict)
    demo_mode: bool = False
    facilitator_timeout: float = 30.0
    backend_timeout: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    host: str = "0.0.0.0"
    port: int = 8402
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> SentinelSettings:
        """Build settings from environment variables.

        Loads a .env file first when reading the real process environment.

        Raises:
            ValueError: If a variable is missing or malformed
        """
        if environ is None:
            load_dotenv()
            environ = os.environ

        provider_address = environ.get("X402_PROVIDER_ADDRESS", "").strip()
        if not provider_address:
            raise ValueError("Missing required environment variable X402_PROVIDER_ADDRESS")

        pricing = PricingConfig(
            provider_address=provider_address,
            arkeo_pay_to=environ.get("X402_ARKEO_ADDRESS") or None,
            accept_usdc=_get_bool(environ, "X402_ACCEPT_USDC", True),
            accept_arkeo=_get_bool(environ, "X402_ACCEPT_ARKEO", True),
            price_usdc=environ.get("X402_PRICE_USDC", "1000"),
            price_arkeo=environ.get("X402_PRICE_ARKEO", "1000000"),
            arkeo_discount_percent=environ.get("X402_ARKEO_DISCOUNT_PERCENT", "15"),
            max_timeout_seconds=_get_number(environ, "X402_MAX_TIMEOUT_SECONDS", 60, int),
            settlement_network=environ.get("X402_SETTLEMENT_NETWORK", BASE_MAINNET),
        )

        return cls(
            pricing=pricing,
            services=parse_services(environ.get("X402_SERVICES", "")),
            demo_mode=_get_bool(environ, "X402_DEMO_MODE", False),
            facilitator_timeout=_get_number(environ, "X402_FACILITATOR_TIMEOUT", 30.0, float),
            backend_timeout=_get_number(environ, "X402_BACKEND_TIMEOUT", 30.0, float),
            retry=RetryPolicy(max_attempts=_get_number(environ, "X402_RETRY_ATTEMPTS", 3, int)),
            host=environ.get("HOST", "0.0.0.0"),
            port=_get_number(environ, "PORT", 8402, int),
            log_level=environ.get("LOG_LEVEL", "INFO").upper(),
        )
