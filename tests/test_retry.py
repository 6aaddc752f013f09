from unittest.mock import AsyncMock, patch

import pytest

from x402_sentinel.errors import PaymentInvalidError, TransportError
from x402_sentinel.retry import RetryPolicy


def test_delay_is_exponential_and_capped():
    policy = RetryPolicy(max_attempts=5, base_delay=0.25, max_delay=1.0)
    assert [policy.delay_for(n) for n in (1, 2, 3, 4)] == [0.25, 0.5, 1.0, 1.0]


def test_invalid_policy():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)
    with pytest.raises(ValueError):
        RetryPolicy(base_delay=-1)


@pytest.mark.asyncio
async def test_retries_transport_errors_then_succeeds():
    operation = AsyncMock(side_effect=[TransportError("timeout"), "ok"])

    with patch("x402_sentinel.retry.asyncio.sleep", new=AsyncMock()) as sleep:
        result = await RetryPolicy(max_attempts=3, base_delay=0.1).call(operation, "verify")

    assert result == "ok"
    assert operation.await_count == 2
    sleep.assert_awaited_once_with(0.1)


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    operation = AsyncMock(side_effect=TransportError("down"))

    with patch("x402_sentinel.retry.asyncio.sleep", new=AsyncMock()):
        with pytest.raises(TransportError):
            await RetryPolicy(max_attempts=3).call(operation)

    assert operation.await_count == 3


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    operation = AsyncMock(side_effect=PaymentInvalidError("bad signature"))

    with pytest.raises(PaymentInvalidError):
        await RetryPolicy(max_attempts=3).call(operation)

    assert operation.await_count == 1
