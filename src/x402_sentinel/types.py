from __future__ import annotations

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Values allowed in the open "extra" and "extensions" maps
ExtraValue = Union[str, int, float, bool, dict[str, str]]
ExtraMap = dict[str, ExtraValue]


class PaymentRequirements(BaseModel):
    scheme: str
    network: str
    amount: str
    asset: str
    pay_to: str
    max_timeout_seconds: int
    extra: Optional[ExtraMap] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
        frozen=True,
    )

    @field_validator("scheme", "network", "asset", "pay_to")
    def validate_not_empty(cls, v):
        if not v or not v.strip():
            raise ValueError("field must not be empty")
        return v

    @field_validator("amount")
    def validate_amount(cls, v):
        try:
            value = int(v)
        except ValueError:
            raise ValueError("amount must be an integer encoded as a string")
        if value < 0:
            raise ValueError("amount must not be negative")
        return v

    @field_validator("max_timeout_seconds")
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError("max_timeout_seconds must be positive")
        return v


class ResourceInfo(BaseModel):
    url: str
    description: str = ""
    mime_type: str = ""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# Returned by the gate as json alongside a 402 response code
class PaymentRequiredResponse(BaseModel):
    x402_version: int
    error: str = ""
    resource: ResourceInfo
    accepts: list[PaymentRequirements]
    extensions: ExtraMap = Field(default_factory=dict)

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    @field_validator("accepts")
    def validate_accepts(cls, v):
        if not v:
            raise ValueError("accepts must list at least one payment option")
        return v


class VerifyRequest(BaseModel):
    payment_payload: str
    requirements: PaymentRequirements

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class VerifyResponse(BaseModel):
    valid: bool
    settlement_id: Optional[str] = None
    transaction_hash: Optional[str] = Field(None, alias="txHash")
    error: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SettleRequest(BaseModel):
    payment_payload: str

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


class SettleResponse(BaseModel):
    success: bool
    settlement_id: Optional[str] = None
    transaction_hash: Optional[str] = Field(None, alias="txHash")
    error: Optional[str] = None

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorResponse(BaseModel):
    """Body of every non-402 rejection."""

    error: str
    kind: str
    details: Optional[str] = None

    model_config = ConfigDict(
        populate_by_name=True,
    )
