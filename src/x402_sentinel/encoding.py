import base64
from typing import Union

from x402_sentinel.types import PaymentRequiredResponse


def safe_base64_encode(data: Union[str, bytes]) -> str:
    """Safely encode string or bytes to base64 string.

    Args:
        data: String or bytes to encode

    Returns:
        Base64 encoded string
    """
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("utf-8")


def safe_base64_decode(data: str) -> str:
    """Safely decode base64 string to bytes and then to utf-8 string.

    Args:
        data: Base64 encoded string

    Returns:
        Decoded utf-8 string
    """
    return base64.b64decode(data, validate=True).decode("utf-8")


def encode_payment_required_header(payment_required: PaymentRequiredResponse) -> str:
    """Encode a payment required descriptor to a base64 header value.

    Args:
        payment_required: Descriptor returned with a 402 response

    Returns:
        Base64 encoded string
    """
    return safe_base64_encode(payment_required.model_dump_json(by_alias=True))


def decode_payment_required_header(header: str) -> PaymentRequiredResponse:
    """Decode a base64 PAYMENT-REQUIRED header.

    Args:
        header: Base64 encoded payment required header

    Returns:
        Decoded PaymentRequiredResponse object
    """
    json_str = safe_base64_decode(header)
    return PaymentRequiredResponse.model_validate_json(json_str)
