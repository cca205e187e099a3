from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.features.scan.schemas.scan import (
    ClientTier,
    Modality,
    RepositoryScanResult,
    SRTier,
    URLKind,
    WebsiteScanResult,
)
from app.features.scan.services.detection.url_detector import detect
from app.features.scan.services.scan.scan import ScanService, generate_name, generate_slug
from app.platform.exceptions import (
    FetchTimeoutError,
    InvalidURLError,
    RepositoryNotFoundError,
    SelfRateLimitedError,
)

ANON = ClientTier.ANONYMOUS


@pytest.fixture
def repository_scanner(now):
    scanner = AsyncMock()

    async def scan(ref):
        return RepositoryScanResult(
            source_url=ref,
            fetched_at=now,
            full_name="facebook/react",
            stars=200_000,
            forks=41_000,
            last_activity_at=now - timedelta(hours=2),
            has_license=True,
            has_tests=True,
            has_ci=True,
            has_docs=True,
            has_readme=True,
            description="Accepts text prompts and generates images and video.",
        )

    scanner.scan.side_effect = scan
    return scanner


@pytest.fixture
def website_scanner(now):
    scanner = AsyncMock()

    async def scan(ref):
        return WebsiteScanResult(
            source_url=ref,
            fetched_at=now,
            status_code=200,
            final_url=ref.raw,
            is_https=ref.raw.lower().startswith("https"),
            title="Clipmaker",
            body_text="Upload an image and get a video.",
        )

    scanner.scan.side_effect = scan
    return scanner


@pytest.fixture
def service(scan_cache, rate_limiter, repository_scanner, website_scanner):
    return ScanService(
        cache=scan_cache,
        rate_limiter=rate_limiter,
        repository_scanner=repository_scanner,
        website_scanner=website_scanner,
    )


class TestScanService:
    @pytest.mark.asyncio
    async def test_repository_scan(self, service, repository_scanner, website_scanner, now):
        outcome = await service.run("https://github.com/facebook/react", "client-a", ANON, now=now)
        data = outcome.data

        assert data.cached is False
        assert data.cache_age_minutes is None
        assert data.kind == URLKind.SOURCE_REPO
        assert data.url == "https://github.com/facebook/react"
        assert data.slug == "facebook-react"
        assert data.name == "react"
        assert data.breakdown.dimensions["popularity"].score == 100.0
        assert data.breakdown.tier == SRTier.S
        assert data.diagnostics == []
        assert data.scanned_at == now
        assert outcome.rate_limit.allowed is True
        repository_scanner.scan.assert_awaited_once()
        website_scanner.scan.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_website_scan_modalities(self, service, website_scanner, now):
        outcome = await service.run("https://clipmaker.example/", "client-a", ANON, now=now)
        data = outcome.data

        assert data.kind == URLKind.GENERIC_SITE
        assert data.slug == "clipmaker-example"
        assert Modality.IMAGE in data.modalities.input_modalities
        assert Modality.VIDEO in data.modalities.output_modalities
        assert data.diagnostics
        assert data.diagnostics[0].score <= data.diagnostics[-1].score
        website_scanner.scan.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_second_request_is_cached(self, service, repository_scanner, now):
        await service.run("https://github.com/facebook/react", "client-a", ANON, now=now)
        outcome = await service.run(
            "https://github.com/Facebook/React/", "client-a", ANON, now=now + timedelta(minutes=42)
        )

        assert outcome.data.cached is True
        assert outcome.data.cache_age_minutes == 42
        assert outcome.data.scanned_at == now
        repository_scanner.scan.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_case_and_trailing_slash_share_a_cache_key(self, service, website_scanner, now):
        first = await service.run("HTTPS://Example.com/Path/", "client-a", ANON, now=now)
        second = await service.run("https://example.com/path", "client-a", ANON, now=now)

        assert first.data.url == second.data.url == "https://example.com/path"
        assert second.data.cached is True
        website_scanner.scan.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_force_rescan_skips_cache(self, service, website_scanner, now):
        await service.run("https://example.com", "client-a", ANON, now=now)
        outcome = await service.run("https://example.com", "client-a", ANON, force_rescan=True, now=now)

        assert outcome.data.cached is False
        assert website_scanner.scan.await_count == 2

    @pytest.mark.asyncio
    async def test_stale_cache_triggers_rescan(self, service, website_scanner, now):
        await service.run("https://example.com", "client-a", ANON, now=now - timedelta(days=2))
        outcome = await service.run("https://example.com", "client-b", ANON, now=now)

        assert outcome.data.cached is False
        assert website_scanner.scan.await_count == 2

    @pytest.mark.asyncio
    async def test_rate_limit_checked_before_cache(self, service, website_scanner, now):
        for _ in range(4):
            await service.run("https://example.com", "client-a", ANON, now=now)

        with pytest.raises(SelfRateLimitedError) as exc_info:
            await service.run("https://example.com", "client-a", ANON, now=now)

        assert exc_info.value.retry_after == 1800
        assert exc_info.value.headers["Retry-After"] == "1800"
        assert exc_info.value.headers["X-RateLimit-Remaining"] == "0"
        website_scanner.scan.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_authenticated_quota(self, service, now):
        for _ in range(19):
            await service.run("https://example.com", "user-1", ClientTier.AUTHENTICATED, now=now)

        with pytest.raises(SelfRateLimitedError):
            await service.run("https://example.com", "user-1", ClientTier.AUTHENTICATED, now=now)

    @pytest.mark.asyncio
    async def test_invalid_url(self, service, website_scanner, now):
        with pytest.raises(InvalidURLError):
            await service.run("ftp://example.com", "client-a", ANON, now=now)

        website_scanner.scan.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_scanner_error_is_not_cached(self, service, repository_scanner, scan_cache, now):
        repository_scanner.scan.side_effect = RepositoryNotFoundError("Repository ghost/repo was not found on GitHub")

        with pytest.raises(RepositoryNotFoundError):
            await service.run("https://github.com/ghost/repo", "client-a", ANON, now=now)

        assert await scan_cache.get("https://github.com/ghost/repo", now) is None

    @pytest.mark.asyncio
    async def test_timeout_propagates(self, service, website_scanner, now):
        website_scanner.scan.side_effect = FetchTimeoutError("Timed out after 30s loading https://slow.example")

        with pytest.raises(FetchTimeoutError):
            await service.run("https://slow.example", "client-a", ANON, now=now)


def test_slug_and_name():
    repo = detect("https://github.com/LangChain-AI/LangChain")
    site = detect("https://www.Clipmaker.example/pricing")

    assert generate_slug(repo) == "langchain-ai-langchain"
    assert generate_name(repo) == "LangChain"
    assert generate_slug(site) == "clipmaker-example"
    assert generate_name(site) == "clipmaker.example"
