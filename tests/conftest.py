import json
from typing import Callable

import httpx
import pytest

from x402_sentinel.config import SentinelSettings
from x402_sentinel.credentials import Credentials
from x402_sentinel.facilitator import FacilitatorClient, FacilitatorConfig
from x402_sentinel.requirements import PricingConfig, RequirementBuilder
from x402_sentinel.retry import RetryPolicy

PROVIDER_ADDRESS = "0x1234567890abcdef1234567890abcdef12345678"
FACILITATOR_URL = "https://facilitator.test"
BACKEND_URL = "http://eth-backend.test:8545"


class FacilitatorStub:
    """Records facilitator calls and answers with canned JSON."""

    def __init__(
        self,
        verify: dict | None = None,
        settle: dict | None = None,
        verify_status: int = 200,
        settle_status: int = 200,
    ):
        self.verify_body = verify if verify is not None else {"valid": True}
        self.settle_body = (
            settle
            if settle is not None
            else {"success": True, "settlementId": "settle-123", "txHash": "0xabc"}
        )
        self.verify_status = verify_status
        self.settle_status = settle_status
        self.requests: list[httpx.Request] = []

    def paths(self) -> list[str]:
        return [request.url.path for request in self.requests]

    def bodies(self) -> list[dict]:
        return [json.loads(request.content) for request in self.requests]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/verify":
            return httpx.Response(self.verify_status, json=self.verify_body)
        if request.url.path == "/settle":
            return httpx.Response(self.settle_status, json=self.settle_body)
        return httpx.Response(404, text="not found")

    def client(self) -> FacilitatorClient:
        return make_facilitator(self.handler)


def make_facilitator(handler: Callable) -> FacilitatorClient:
    return FacilitatorClient(
        FacilitatorConfig(
            url=FACILITATOR_URL,
            credentials=Credentials(api_key="test-key", api_secret="test-secret"),
            timeout=5.0,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
    )


@pytest.fixture
def pricing() -> PricingConfig:
    return PricingConfig(provider_address=PROVIDER_ADDRESS)


@pytest.fixture
def builder(pricing) -> RequirementBuilder:
    return RequirementBuilder(pricing)


@pytest.fixture
def facilitator_stub() -> FacilitatorStub:
    return FacilitatorStub()


@pytest.fixture
def settings(pricing) -> SentinelSettings:
    return SentinelSettings(
        pricing=pricing,
        services={"eth": BACKEND_URL},
        retry=RetryPolicy(max_attempts=2, base_delay=0, max_delay=0),
    )


@pytest.fixture
def no_credentials(monkeypatch, tmp_path):
    """Point credential resolution at an empty home and environment."""
    monkeypatch.setenv("X402_CREDENTIALS_FILE", str(tmp_path / "missing-credentials"))
    monkeypatch.delenv("X402_API_KEY", raising=False)
    monkeypatch.delenv("X402_API_SECRET", raising=False)
