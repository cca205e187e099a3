import math
from datetime import datetime, timezone
from typing import Dict, Optional

from app.features.scan.schemas.scan import ClientTier, RateLimitDecision
from app.platform.cache.store import KeyValueStore
from app.platform.config import settings
from app.platform.exceptions import StoreUnavailableError
from app.platform.logger import get_logger

logger = get_logger(__name__)


class ScanRateLimiter:
    """
    Fixed-window scan quota per client identity.

    Windows are wall-clock buckets (floor(now / window)). Every call increments
    the counter, denied ones included, so hammering the endpoint does not help.
    Within a window requests 1..limit-1 are allowed and request ``limit`` and
    later are denied.
    """

    def __init__(
        self,
        store: KeyValueStore,
        window_seconds: Optional[int] = None,
        limits: Optional[Dict[ClientTier, int]] = None,
        fail_open: Optional[bool] = None,
    ):
        self.store = store
        self.window_seconds = window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
        self.limits = limits or {
            ClientTier.ANONYMOUS: settings.RATE_LIMIT_ANONYMOUS,
            ClientTier.AUTHENTICATED: settings.RATE_LIMIT_AUTHENTICATED,
        }
        self.fail_open = settings.RATE_LIMIT_FAIL_OPEN if fail_open is None else fail_open

    def get_limit(self, tier: ClientTier) -> int:
        return self.limits[tier]

    def _window(self, now: datetime):
        timestamp = now.timestamp()
        window = int(timestamp // self.window_seconds)
        window_end = (window + 1) * self.window_seconds
        retry_after = max(1, math.ceil(window_end - timestamp))
        return window, datetime.fromtimestamp(window_end, tz=timezone.utc), retry_after

    async def check_and_consume(
        self,
        identity: str,
        tier: ClientTier,
        now: Optional[datetime] = None,
    ) -> RateLimitDecision:
        now = now or datetime.now(timezone.utc)
        limit = self.get_limit(tier)
        window, reset_at, retry_after = self._window(now)
        key = f"rl:scan:{tier.value}:{identity}:{window}"

        try:
            count = await self.store.incr(key, ttl=self.window_seconds)
        except StoreUnavailableError as e:
            if self.fail_open:
                logger.warning(f"Rate limiter store unavailable, allowing {identity} (fail-open): {e}")
                return RateLimitDecision(
                    allowed=True, identity=identity, tier=tier, count=0,
                    limit=limit, remaining=limit - 1, reset_at=reset_at,
                )
            logger.warning(f"Rate limiter store unavailable, denying {identity} (fail-closed): {e}")
            return RateLimitDecision(
                allowed=False, identity=identity, tier=tier, count=0,
                limit=limit, remaining=0, retry_after=retry_after, reset_at=reset_at,
            )

        allowed = count < limit
        if not allowed:
            logger.warning(f"Scan quota exceeded for {identity} ({tier.value}): count={count}, limit={limit}")

        return RateLimitDecision(
            allowed=allowed,
            identity=identity,
            tier=tier,
            count=count,
            limit=limit,
            remaining=max(0, limit - 1 - count),
            retry_after=None if allowed else retry_after,
            reset_at=reset_at,
        )


def rate_limit_headers(decision: RateLimitDecision) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(decision.limit),
        "X-RateLimit-Remaining": str(decision.remaining),
        "X-RateLimit-Reset": str(int(decision.reset_at.timestamp())),
    }
    if decision.retry_after is not None:
        headers["Retry-After"] = str(decision.retry_after)
    return headers
