from datetime import datetime, timedelta, timezone

import pytest

from app.features.scan.schemas.scan import ClientTier
from app.features.scan.services.rate_limit.scan_rate_limiter import ScanRateLimiter, rate_limit_headers
from app.platform.cache.store import KeyValueStore
from app.platform.exceptions import StoreUnavailableError

# 12:30 UTC, half way through the hourly window
WINDOW_START = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


class UnavailableStore(KeyValueStore):
    async def get(self, key):
        raise StoreUnavailableError("down")

    async def set(self, key, value, ttl=None):
        raise StoreUnavailableError("down")

    async def incr(self, key, ttl=None):
        raise StoreUnavailableError("down")


@pytest.mark.asyncio
@pytest.mark.parametrize("tier,limit", [(ClientTier.ANONYMOUS, 5), (ClientTier.AUTHENTICATED, 20)])
async def test_quota_boundary(rate_limiter, now, tier, limit):
    decisions = [await rate_limiter.check_and_consume("client-a", tier, now) for _ in range(limit + 2)]

    assert [d.allowed for d in decisions] == [True] * (limit - 1) + [False] * 3
    assert decisions[0].limit == limit
    assert decisions[0].remaining == limit - 2
    assert decisions[limit - 2].remaining == 0


@pytest.mark.asyncio
async def test_denied_requests_still_count(rate_limiter, now):
    for _ in range(7):
        decision = await rate_limiter.check_and_consume("client-a", ClientTier.ANONYMOUS, now)

    assert decision.count == 7
    assert decision.allowed is False


@pytest.mark.asyncio
async def test_identities_are_independent(rate_limiter, now):
    for _ in range(5):
        await rate_limiter.check_and_consume("client-a", ClientTier.ANONYMOUS, now)

    decision = await rate_limiter.check_and_consume("client-b", ClientTier.ANONYMOUS, now)
    assert decision.allowed is True
    assert decision.count == 1


@pytest.mark.asyncio
async def test_new_window_resets(rate_limiter, now):
    for _ in range(5):
        await rate_limiter.check_and_consume("client-a", ClientTier.ANONYMOUS, now)

    next_hour = WINDOW_START + timedelta(hours=1)
    decision = await rate_limiter.check_and_consume("client-a", ClientTier.ANONYMOUS, next_hour)

    assert decision.allowed is True
    assert decision.count == 1


@pytest.mark.asyncio
async def test_retry_after_points_at_window_end(rate_limiter, now):
    for _ in range(5):
        decision = await rate_limiter.check_and_consume("client-a", ClientTier.ANONYMOUS, now)

    assert decision.allowed is False
    assert decision.retry_after == 30 * 60
    assert decision.reset_at == WINDOW_START + timedelta(hours=1)


@pytest.mark.asyncio
async def test_retry_after_is_at_least_one_second(rate_limiter):
    almost_next_hour = WINDOW_START + timedelta(minutes=59, seconds=59, milliseconds=900)
    for _ in range(5):
        decision = await rate_limiter.check_and_consume("client-a", ClientTier.ANONYMOUS, almost_next_hour)

    assert decision.retry_after == 1


@pytest.mark.asyncio
async def test_store_failure_fails_open(now):
    limiter = ScanRateLimiter(UnavailableStore(), window_seconds=3600, fail_open=True)
    decision = await limiter.check_and_consume("client-a", ClientTier.ANONYMOUS, now)

    assert decision.allowed is True
    assert decision.retry_after is None


@pytest.mark.asyncio
async def test_store_failure_fails_closed(now):
    limiter = ScanRateLimiter(UnavailableStore(), window_seconds=3600, fail_open=False)
    decision = await limiter.check_and_consume("client-a", ClientTier.ANONYMOUS, now)

    assert decision.allowed is False
    assert decision.retry_after == 30 * 60


@pytest.mark.asyncio
async def test_custom_limits(store, now):
    limiter = ScanRateLimiter(store, window_seconds=60, limits={ClientTier.ANONYMOUS: 2, ClientTier.AUTHENTICATED: 3})

    first = await limiter.check_and_consume("client-a", ClientTier.ANONYMOUS, now)
    second = await limiter.check_and_consume("client-a", ClientTier.ANONYMOUS, now)

    assert first.allowed is True
    assert second.allowed is False


@pytest.mark.asyncio
async def test_headers(rate_limiter, now):
    allowed = await rate_limiter.check_and_consume("client-a", ClientTier.AUTHENTICATED, now)
    headers = rate_limit_headers(allowed)

    assert headers["X-RateLimit-Limit"] == "20"
    assert headers["X-RateLimit-Remaining"] == "18"
    assert headers["X-RateLimit-Reset"] == str(int((WINDOW_START + timedelta(hours=1)).timestamp()))
    assert "Retry-After" not in headers

    for _ in range(5):
        denied = await rate_limiter.check_and_consume("client-b", ClientTier.ANONYMOUS, now)
    assert rate_limit_headers(denied)["Retry-After"] == "1800"
