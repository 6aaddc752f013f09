from typing import Mapping

from x402_sentinel.common import LEGACY_PAYMENT_HEADER, PAYMENT_HEADER

EVIDENCE_HEADERS = (PAYMENT_HEADER, LEGACY_PAYMENT_HEADER)


def _get_header(headers: Mapping[str, str], name: str) -> str:
    value = headers.get(name)
    if value is None:
        # Plain dicts are case sensitive, Starlette headers are not
        lowered = name.lower()
        for key, candidate in headers.items():
            if key.lower() == lowered:
                value = candidate
                break
    return (value or "").strip()


def extract_payment_evidence(headers: Mapping[str, str]) -> tuple[bool, str]:
    """Find the payment proof carried by a request.

    Checks the X-PAYMENT header first and falls back to the older
    X-Payment-Signature header. The token is never parsed here.

    Args:
        headers: Request headers

    Returns:
        (present, evidence); evidence is "" when nothing was found
    """
    for name in EVIDENCE_HEADERS:
        value = _get_header(headers, name)
        if value:
            return True, value
    return False, ""
