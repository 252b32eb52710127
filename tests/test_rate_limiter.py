import asyncio

import pytest

from coti_mcp.rate_limiter import PerKeyRateLimiter


@pytest.mark.asyncio
async def test_per_key_rate_limiter_allows_then_blocks():
    limiter = PerKeyRateLimiter(rate_per_sec=1, burst=1)
    assert await limiter.allow("transfer_native")
    # Immediately requesting again should fail due to no tokens
    assert not await limiter.allow("transfer_native")
    # Other tools have their own bucket
    assert await limiter.allow("list_accounts")
    # After waiting ~1s, should allow again
    await asyncio.sleep(1.05)
    assert await limiter.allow("transfer_native")


@pytest.mark.asyncio
async def test_per_tool_override():
    limiter = PerKeyRateLimiter(rate_per_sec=10, burst=5, per_tool={"transfer_native": 0.1})
    assert await limiter.allow("transfer_native")
    assert await limiter.allow("list_accounts")
    assert limiter._buckets["transfer_native"].rate == pytest.approx(0.1)
    assert limiter._buckets["list_accounts"].rate == pytest.approx(10)


@pytest.mark.asyncio
async def test_zero_rate_disables_limiting():
    limiter = PerKeyRateLimiter(rate_per_sec=0)
    for _ in range(20):
        assert await limiter.allow("sign_message")
    assert limiter._buckets == {}


@pytest.mark.asyncio
async def test_capacity_defaults_to_rate():
    limiter = PerKeyRateLimiter(rate_per_sec=3)
    results = [await limiter.allow("get_native_balance") for _ in range(4)]
    assert results == [True, True, True, False]
