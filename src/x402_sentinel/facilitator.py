"""HTTP client for the x402 settlement facilitator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from x402_sentinel.credentials import (
    Credentials,
    resolve_credentials,
    resolve_facilitator_url,
)
from x402_sentinel.errors import (
    AuthorityError,
    PaymentInvalidError,
    ProtocolError,
    SettlementError,
    TransportError,
)
from x402_sentinel.retry import NO_RETRY, RetryPolicy
from x402_sentinel.types import (
    PaymentRequirements,
    SettleRequest,
    SettleResponse,
    VerifyRequest,
    VerifyResponse,
)

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


@dataclass
class FacilitatorConfig:
    """Configuration for the facilitator client."""

    url: str
    credentials: Credentials
    timeout: float = 30.0
    http_client: Any = None  # Optional httpx.AsyncClient

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        credentials_path: Optional[Path] = None,
        timeout: float = 30.0,
    ) -> FacilitatorConfig:
        """Resolve credentials and URL from the credential file and environment.

        Raises:
            ConfigurationError: If no complete set of credentials is found
        """
        return cls(
            url=resolve_facilitator_url(environ),
            credentials=resolve_credentials(credentials_path, environ),
            timeout=timeout,
        )


class FacilitatorClient:
    """Calls the facilitator's /verify and /settle endpoints.

    Holds configuration only; every call is independent. Calls are bounded
    by the configured timeout and are not retried unless a RetryPolicy is
    passed to verify_and_settle.
    """

    def __init__(self, config: FacilitatorConfig) -> None:
        if config.timeout <= 0:
            raise ValueError("timeout must be positive")
        self._url = config.url.rstrip("/")
        self._timeout = config.timeout
        self._credentials = config.credentials
        self._http_client: Optional[httpx.AsyncClient] = config.http_client
        self._owns_client = config.http_client is None

    @property
    def url(self) -> str:
        return self._url

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._timeout)
        return self._http_client

    async def aclose(self) -> None:
        """Close HTTP client if we own it."""
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None

    async def __aenter__(self) -> FacilitatorClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "X-API-Key": self._credentials.api_key,
            "Authorization": f"Bearer {self._credentials.api_secret}",
        }

    async def _post(self, endpoint: str, body: BaseModel, response_model: type[ResponseT]) -> ResponseT:
        client = self._get_client()
        try:
            response = await client.post(
                f"{self._url}/{endpoint}",
                headers=self._headers(),
                content=body.model_dump_json(by_alias=True),
                timeout=self._timeout,
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"facilitator {endpoint} timed out after {self._timeout}s") from e
        except httpx.TransportError as e:
            raise TransportError(f"facilitator {endpoint} request failed: {e}") from e

        if not response.is_success:
            raise AuthorityError(response.status_code, response.text)

        try:
            return response_model.model_validate_json(response.content)
        except ValidationError as e:
            raise ProtocolError(f"failed to parse facilitator {endpoint} response: {e}") from e

    async def verify(self, evidence: str, requirement: PaymentRequirements) -> VerifyResponse:
        """Verify a payment proof against a payment requirement.

        Args:
            evidence: Opaque payment token taken from the request
            requirement: Payment terms the proof must satisfy

        Returns:
            VerifyResponse

        Raises:
            TransportError: If the facilitator is unreachable or times out
            AuthorityError: If the facilitator returns a non-2xx status
            ProtocolError: If the response cannot be parsed
        """
        return await self._post(
            "verify",
            VerifyRequest(payment_payload=evidence, requirements=requirement),
            VerifyResponse,
        )

    async def settle(self, evidence: str) -> SettleResponse:
        """Settle a verified payment on-chain.

        Raises the same errors as verify.
        """
        return await self._post(
            "settle",
            SettleRequest(payment_payload=evidence),
            SettleResponse,
        )

    async def verify_and_settle(
        self,
        evidence: str,
        requirement: PaymentRequirements,
        retry: Optional[RetryPolicy] = None,
    ) -> tuple[bool, str]:
        """Verify, then settle only if verification passed.

        Args:
            evidence: Opaque payment token
            requirement: Payment terms to verify against
            retry: Applied separately to verify and settle; defaults to one attempt

        Returns:
            (True, settlement_id)

        Raises:
            PaymentInvalidError: If the facilitator reports the proof invalid
            SettlementError: If settlement reports failure
            TransportError, ProtocolError: As for verify/settle
        """
        retry = retry or NO_RETRY

        verify_response = await retry.call(lambda: self.verify(evidence, requirement), "verify")
        if not verify_response.valid:
            raise PaymentInvalidError(verify_response.error or "payment not valid")

        settle_response = await retry.call(lambda: self.settle(evidence), "settle")
        if not settle_response.success:
            raise SettlementError(settle_response.error or "settlement failed")

        settlement_id = settle_response.settlement_id or settle_response.transaction_hash
        if not settlement_id:
            raise ProtocolError("facilitator settled without a settlement id")
        return True, settlement_id
