from datetime import datetime, timezone
from typing import NamedTuple, Optional, Union

from app.features.scan.schemas.scan import (
    CacheEntry,
    ClientTier,
    RateLimitDecision,
    RepositoryScanResult,
    ScanResponseData,
    URLKind,
    URLReference,
    WebsiteScanResult,
)
from app.features.scan.services.analysis.diagnostics import generate_diagnostics, generate_summary_message
from app.features.scan.services.analysis.sr_calculator import calculate_score
from app.features.scan.services.cache.scan_cache import ScanCache
from app.features.scan.services.detection.url_detector import detect, is_valid_url, normalize_url
from app.features.scan.services.extraction.io_extractor import extract_modalities
from app.features.scan.services.rate_limit.scan_rate_limiter import ScanRateLimiter, rate_limit_headers
from app.features.scan.services.scanning.repository_scanner import RepositoryScanner
from app.features.scan.services.scanning.website_scanner import WebsiteScanner
from app.platform.exceptions import SelfRateLimitedError
from app.platform.logger import get_logger

logger = get_logger(__name__)


class ScanOutcome(NamedTuple):
    data: ScanResponseData
    rate_limit: RateLimitDecision


def generate_slug(ref: URLReference) -> str:
    if ref.kind == URLKind.SOURCE_REPO and ref.owner_slug and ref.repo_slug:
        return f"{ref.owner_slug}-{ref.repo_slug}".lower()
    host = ref.normalized.split("://", 1)[-1].split("/", 1)[0].split(":", 1)[0]
    if host.startswith("www."):
        host = host[4:]
    return host.replace(".", "-")


def generate_name(ref: URLReference) -> str:
    if ref.kind == URLKind.SOURCE_REPO and ref.repo_slug:
        return ref.repo_slug
    host = ref.normalized.split("://", 1)[-1].split("/", 1)[0]
    return host[4:] if host.startswith("www.") else host


class ScanService:
    """
    Runs one scan request end to end:
    rate check -> cache lookup -> detect -> scan -> modalities -> score -> diagnose -> cache.

    Nothing is retried; the first failing step ends the request with its error.
    """

    def __init__(
        self,
        cache: ScanCache,
        rate_limiter: ScanRateLimiter,
        repository_scanner: Optional[RepositoryScanner] = None,
        website_scanner: Optional[WebsiteScanner] = None,
    ):
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.repository_scanner = repository_scanner or RepositoryScanner()
        self.website_scanner = website_scanner or WebsiteScanner()

    async def run(
        self,
        url: str,
        identity: str,
        tier: ClientTier,
        force_rescan: bool = False,
        now: Optional[datetime] = None,
    ) -> ScanOutcome:
        decision = await self.rate_limiter.check_and_consume(identity, tier, now)
        if not decision.allowed:
            raise SelfRateLimitedError(
                f"Rate limit exceeded. Try again in {decision.retry_after} seconds.",
                retry_after=decision.retry_after,
                headers=rate_limit_headers(decision),
            )

        if not force_rescan:
            cached = await self._lookup(url, now)
            if cached is not None:
                logger.info(f"Cache hit for {cached.key}")
                return ScanOutcome(self._build_response(cached, cached=True, now=now), decision)

        ref = detect(url)
        logger.info(f"Scanning {ref.normalized} as {ref.kind.value}")
        result = await self._scan(ref)

        modalities = extract_modalities(result.text)
        breakdown = calculate_score(result, modalities, now)
        diagnostics = generate_diagnostics(breakdown, result)

        entry = CacheEntry(
            key=ref.normalized,
            result=result,
            breakdown=breakdown,
            modalities=modalities,
            diagnostics=diagnostics,
            scanned_at=now or datetime.now(timezone.utc),
        )
        await self.cache.put(ref.normalized, entry)
        logger.info(f"Scan of {ref.normalized} finished: overall={breakdown.overall}, tier={breakdown.tier.value}")

        return ScanOutcome(self._build_response(entry, cached=False, now=now), decision)

    async def _lookup(self, url: str, now: Optional[datetime]) -> Optional[CacheEntry]:
        if not is_valid_url(url):
            # detect() reports the error in the next step
            return None
        return await self.cache.get(normalize_url(url), now)

    async def _scan(self, ref: URLReference) -> Union[RepositoryScanResult, WebsiteScanResult]:
        if ref.kind == URLKind.SOURCE_REPO:
            return await self.repository_scanner.scan(ref)
        return await self.website_scanner.scan(ref)

    def _build_response(self, entry: CacheEntry, cached: bool, now: Optional[datetime] = None) -> ScanResponseData:
        ref = entry.result.source_url
        return ScanResponseData(
            url=entry.key,
            kind=ref.kind,
            slug=generate_slug(ref),
            name=generate_name(ref),
            cached=cached,
            cache_age_minutes=ScanCache.cache_age_minutes(entry, now) if cached else None,
            scanned_at=entry.scanned_at,
            summary=generate_summary_message(entry.breakdown.overall),
            breakdown=entry.breakdown,
            diagnostics=entry.diagnostics,
            modalities=entry.modalities,
            result=entry.result,
        )
