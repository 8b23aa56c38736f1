"""Unit tests for RetryPolicy and the retry_api_call decorator."""

from unittest.mock import AsyncMock, patch

import pytest

from utils.retry import RetryPolicy, retry_api_call


class FlakyError(Exception):
    pass


@pytest.mark.unit
@pytest.mark.asyncio
async def test_succeeds_after_transient_failures():
    fn = AsyncMock(side_effect=[FlakyError("1"), FlakyError("2"), "ok"])
    policy = RetryPolicy(max_attempts=3, base_delay=0.0)

    result = await policy.call(fn, "arg", description="flaky")

    assert result == "ok"
    assert fn.await_count == 3
    fn.assert_awaited_with("arg")


@pytest.mark.unit
@pytest.mark.asyncio
async def test_raises_last_error_when_exhausted():
    fn = AsyncMock(side_effect=[FlakyError("first"), FlakyError("last")])
    policy = RetryPolicy(max_attempts=2, base_delay=0.0)

    with pytest.raises(FlakyError, match="last"):
        await policy.call(fn)
    assert fn.await_count == 2


@pytest.mark.unit
@pytest.mark.asyncio
async def test_does_not_retry_unlisted_exceptions():
    fn = AsyncMock(side_effect=KeyError("nope"))
    policy = RetryPolicy(max_attempts=5, base_delay=0.0, retry_on=(FlakyError,))

    with pytest.raises(KeyError):
        await policy.call(fn)
    assert fn.await_count == 1


@pytest.mark.unit
@pytest.mark.asyncio
async def test_fixed_backoff_sleeps_between_attempts():
    fn = AsyncMock(side_effect=[FlakyError(), FlakyError(), "ok"])
    policy = RetryPolicy(max_attempts=3, base_delay=3.0)

    with patch("utils.retry.asyncio.sleep", new=AsyncMock()) as mock_sleep:
        await policy.call(fn)

    assert [c.args[0] for c in mock_sleep.await_args_list] == [3.0, 3.0]


@pytest.mark.unit
def test_exponential_delay_is_capped():
    policy = RetryPolicy(max_attempts=10, base_delay=1.0, backoff_factor=2.0, max_delay=5.0)
    assert [policy.delay_for(n) for n in range(1, 6)] == [1.0, 2.0, 4.0, 5.0, 5.0]


@pytest.mark.unit
def test_rejects_zero_attempts():
    with pytest.raises(ValueError):
        RetryPolicy(max_attempts=0)


@pytest.mark.unit
def test_from_config(sample_config):
    policy = RetryPolicy.from_config(sample_config)
    assert policy.max_attempts == 3
    assert policy.base_delay == 0.0


@pytest.mark.unit
@pytest.mark.asyncio
async def test_decorator_retries():
    attempts = []

    @retry_api_call(max_retries=3, base_delay=0.0)
    async def sometimes():
        attempts.append(1)
        if len(attempts) < 2:
            raise FlakyError("again")
        return len(attempts)

    assert await sometimes() == 2
    assert sometimes.retry_policy.max_attempts == 3
