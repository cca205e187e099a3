"""
Test configuration and fixtures for the Agent Signals Scanner API.

Every test runs against the in-memory key-value store; outbound HTTP calls are
mocked with respx so no test touches the network.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Generator

os.environ["FORCE_IN_MEMORY_STORE"] = "true"
os.environ["LOG_TO_FILE"] = "false"
os.environ.pop("REDIS_URL", None)
os.environ.pop("GITHUB_TOKEN", None)

import pytest
from fastapi.testclient import TestClient

from app.features.scan.routes.scan import get_scan_service
from app.features.scan.schemas.scan import URLKind, URLReference
from app.features.scan.services.cache.scan_cache import ScanCache
from app.features.scan.services.rate_limit.scan_rate_limiter import ScanRateLimiter
from app.features.scan.services.scan.scan import ScanService
from app.platform.cache.store import InMemoryStore

NOW = datetime(2026, 10, 18, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def scan_cache(store) -> ScanCache:
    return ScanCache(store, ttl_seconds=24 * 60 * 60)


@pytest.fixture
def rate_limiter(store) -> ScanRateLimiter:
    return ScanRateLimiter(store, window_seconds=3600, fail_open=True)


@pytest.fixture
def scan_service(scan_cache, rate_limiter) -> ScanService:
    return ScanService(cache=scan_cache, rate_limiter=rate_limiter)


@pytest.fixture
def repo_ref() -> URLReference:
    return URLReference(
        raw="https://github.com/facebook/react",
        normalized="https://github.com/facebook/react",
        kind=URLKind.SOURCE_REPO,
        owner_slug="facebook",
        repo_slug="react",
    )


@pytest.fixture
def site_ref() -> URLReference:
    return URLReference(
        raw="https://example.com/",
        normalized="https://example.com",
        kind=URLKind.GENERIC_SITE,
    )


@pytest.fixture
def recent(now) -> datetime:
    return now - timedelta(days=1)


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app, scan_service) -> Generator[TestClient, None, None]:
    """
    Test client whose scan endpoint uses a fresh in-memory store per test,
    so rate-limit counters and cache entries never leak between tests.
    """
    test_app.dependency_overrides[get_scan_service] = lambda: scan_service
    with TestClient(test_app, raise_server_exceptions=False) as test_client:
        yield test_client
    test_app.dependency_overrides.pop(get_scan_service, None)
