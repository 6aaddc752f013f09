import pytest
from pydantic import ValidationError

from x402_sentinel.types import (
    ErrorResponse,
    PaymentRequiredResponse,
    PaymentRequirements,
    ResourceInfo,
    SettleResponse,
    VerifyRequest,
    VerifyResponse,
)


def make_requirement(**overrides) -> PaymentRequirements:
    fields = dict(
        scheme="exact",
        network="eip155:8453",
        amount="1000",
        asset="0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        pay_to="0x123",
        max_timeout_seconds=60,
        extra={"name": "USDC", "version": "2"},
    )
    fields.update(overrides)
    return PaymentRequirements(**fields)


def test_payment_requirements_serde():
    original = make_requirement()
    expected = {
        "scheme": "exact",
        "network": "eip155:8453",
        "amount": "1000",
        "asset": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
        "payTo": "0x123",
        "maxTimeoutSeconds": 60,
        "extra": {"name": "USDC", "version": "2"},
    }
    assert original.model_dump(by_alias=True) == expected
    assert PaymentRequirements(**expected) == original


def test_payment_requirements_reject_empty_fields():
    for field in ("scheme", "network", "asset", "pay_to"):
        with pytest.raises(ValidationError):
            make_requirement(**{field: ""})


def test_payment_requirements_amount_must_be_integer_string():
    with pytest.raises(ValidationError):
        make_requirement(amount="0.5")
    with pytest.raises(ValidationError):
        make_requirement(amount="-1")


def test_payment_requirements_are_immutable():
    requirement = make_requirement()
    with pytest.raises(ValidationError):
        requirement.amount = "2000"


def test_payment_required_response_round_trip():
    original = PaymentRequiredResponse(
        x402_version=2,
        error="Payment required to access this RPC endpoint",
        resource=ResourceInfo(
            url="/x402/eth/blockNumber",
            description="Arkeo RPC Service: eth",
            mime_type="application/json",
        ),
        accepts=[
            make_requirement(),
            make_requirement(
                network="arkeo:arkeo-main-1",
                asset="uarkeo",
                amount="850000",
                extra={"name": "ARKEO", "discount": "15%", "nested": {"chain": "arkeo"}},
            ),
        ],
        extensions={"bazaar": {"listed": "yes"}, "priority": 1, "beta": True},
    )

    parsed = PaymentRequiredResponse.model_validate_json(original.model_dump_json(by_alias=True))

    assert parsed == original
    assert parsed.accepts[1].extra == {
        "name": "ARKEO",
        "discount": "15%",
        "nested": {"chain": "arkeo"},
    }
    assert parsed.extensions["beta"] is True
    assert parsed.extensions["priority"] == 1


def test_payment_required_response_wire_names():
    data = PaymentRequiredResponse(
        x402_version=2,
        resource=ResourceInfo(url="/x402/eth"),
        accepts=[make_requirement()],
    ).model_dump(by_alias=True)

    assert data["x402Version"] == 2
    assert data["resource"] == {"url": "/x402/eth", "description": "", "mimeType": ""}
    assert data["extensions"] == {}


def test_payment_required_response_requires_accepts():
    with pytest.raises(ValidationError):
        PaymentRequiredResponse(
            x402_version=2, resource=ResourceInfo(url="/x402/eth"), accepts=[]
        )


def test_verify_request_wire_format():
    request = VerifyRequest(payment_payload="token", requirements=make_requirement())
    data = request.model_dump(by_alias=True)
    assert data["paymentPayload"] == "token"
    assert data["requirements"]["payTo"] == "0x123"


def test_verify_response_parses_facilitator_json():
    response = VerifyResponse.model_validate(
        {"valid": True, "settlementId": "s-1", "txHash": "0xabc"}
    )
    assert response.valid is True
    assert response.settlement_id == "s-1"
    assert response.transaction_hash == "0xabc"
    assert response.error is None


def test_settle_response_parses_failure():
    response = SettleResponse.model_validate({"success": False, "error": "insufficient funds"})
    assert response.success is False
    assert response.error == "insufficient funds"
    assert response.settlement_id is None


def test_error_response_omits_missing_details():
    body = ErrorResponse(error="service not found", kind="routing_error").model_dump(
        exclude_none=True
    )
    assert body == {"error": "service not found", "kind": "routing_error"}
