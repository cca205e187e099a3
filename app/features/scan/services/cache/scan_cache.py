from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import ValidationError

from app.features.scan.schemas.scan import CacheEntry
from app.platform.cache.store import KeyValueStore
from app.platform.config import settings
from app.platform.exceptions import StoreUnavailableError
from app.platform.logger import get_logger

logger = get_logger(__name__)

CACHE_PREFIX = "scan:result:"


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class ScanCache:
    """
    Scan results keyed by normalized URL.

    Entries older than the TTL are reported as a miss but left in the store;
    the next successful scan overwrites them.
    """

    def __init__(self, store: KeyValueStore, ttl_seconds: Optional[int] = None, retention_seconds: Optional[int] = None):
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds or settings.SCAN_CACHE_TTL_SECONDS)
        self.retention_seconds = retention_seconds or settings.SCAN_CACHE_RETENTION_SECONDS

    @staticmethod
    def _store_key(key: str) -> str:
        return f"{CACHE_PREFIX}{key}"

    def is_fresh(self, entry: CacheEntry, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return _utc(now) - _utc(entry.scanned_at) < self.ttl

    async def get(self, key: str, now: Optional[datetime] = None) -> Optional[CacheEntry]:
        try:
            raw = await self.store.get(self._store_key(key))
        except StoreUnavailableError as e:
            logger.warning(f"Cache read failed for {key}, treating as miss: {e}")
            return None

        if raw is None:
            return None

        try:
            entry = CacheEntry.model_validate_json(raw)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable cache entry for {key}: {e}")
            return None

        if not self.is_fresh(entry, now):
            logger.debug(f"Cache entry for {key} is stale (scanned_at={entry.scanned_at.isoformat()})")
            return None
        return entry

    async def put(self, key: str, entry: CacheEntry) -> None:
        try:
            await self.store.set(self._store_key(key), entry.model_dump_json(), ttl=self.retention_seconds)
        except StoreUnavailableError as e:
            logger.warning(f"Cache write failed for {key}: {e}")

    @staticmethod
    def cache_age_minutes(entry: CacheEntry, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        return max(0, int((_utc(now) - _utc(entry.scanned_at)).total_seconds() // 60))
