"""GitHub repository scanner."""
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from app.features.scan.schemas.scan import RepositoryScanResult, URLKind, URLReference
from app.features.scan.services.extraction.io_extractor import detect_mcp
from app.platform.config import settings
from app.platform.exceptions import (
    RepositoryNotFoundError,
    UpstreamError,
    UpstreamRateLimitedError,
)
from app.platform.logger import get_logger

logger = get_logger(__name__)

LICENSE_FILES = {"license", "license.md", "license.txt", "licence", "licence.md", "copying", "unlicense"}
TEST_DIRS = {"test", "tests", "__tests__", "spec", "specs", "testing"}
TEST_FILES = {"pytest.ini", "tox.ini", "conftest.py", "jest.config.js", "jest.config.ts", "vitest.config.ts"}
CI_ENTRIES = {
    ".github", ".gitlab-ci.yml", ".travis.yml", ".circleci", "jenkinsfile",
    "azure-pipelines.yml", ".drone.yml", "bitbucket-pipelines.yml", ".buildkite",
}
DOCS_ENTRIES = {"docs", "doc", "documentation", "mkdocs.yml", "website"}
DOCKER_FILES = {"dockerfile", "docker-compose.yml", "docker-compose.yaml", "compose.yaml"}
OPENAPI_FILES = {"openapi.json", "openapi.yaml", "openapi.yml", "swagger.json", "swagger.yaml", "swagger.yml"}


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable GitHub timestamp: {value}")
        return None


def quality_signals(contents: List[Dict[str, Any]]) -> Dict[str, bool]:
    """Derive presence flags from a repository root listing."""
    names = {str(item.get("name", "")).lower() for item in contents if isinstance(item, dict)}
    dirs = {
        str(item.get("name", "")).lower()
        for item in contents
        if isinstance(item, dict) and item.get("type") == "dir"
    }
    return {
        "has_license": bool(names & LICENSE_FILES),
        "has_tests": bool(dirs & TEST_DIRS) or bool(names & TEST_FILES),
        "has_ci": bool(names & CI_ENTRIES),
        "has_docs": bool(names & DOCS_ENTRIES),
        "has_readme": any(name.startswith("readme") for name in names),
        "has_dockerfile": bool(names & DOCKER_FILES),
        "has_openapi": bool(names & OPENAPI_FILES),
    }


class RepositoryScanner:
    """Fetch repository metadata and quality signals from the GitHub REST API."""

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.token = token if token is not None else settings.GITHUB_TOKEN
        self.api_url = (api_url or settings.GITHUB_API_URL).rstrip("/")
        self.timeout = timeout or settings.GITHUB_TIMEOUT
        self._client = client

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": settings.SCANNER_USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    @staticmethod
    def _retry_after(response: httpx.Response) -> Optional[int]:
        retry_after = response.headers.get("retry-after")
        if retry_after and retry_after.isdigit():
            return int(retry_after)
        reset = response.headers.get("x-ratelimit-reset")
        if reset and reset.isdigit():
            return max(1, int(reset) - int(time.time()))
        return None

    @staticmethod
    def _is_rate_limited(response: httpx.Response) -> bool:
        if response.status_code == 429:
            return True
        return response.status_code == 403 and response.headers.get("x-ratelimit-remaining") == "0"

    async def _get(self, client: httpx.AsyncClient, path: str) -> httpx.Response:
        url = f"{self.api_url}{path}"
        try:
            return await client.get(url, headers=self._headers())
        except httpx.HTTPError as e:
            logger.warning(f"GitHub request failed for {url}: {e}")
            raise UpstreamError(f"GitHub API request failed: {e}") from e

    def _raise_for_rate_limit(self, response: httpx.Response, full_name: str) -> None:
        if self._is_rate_limited(response):
            retry_after = self._retry_after(response)
            logger.warning(f"GitHub API quota exhausted while scanning {full_name} (retry_after={retry_after})")
            raise UpstreamRateLimitedError(
                "GitHub API rate limit exceeded. Try again later.", retry_after=retry_after
            )

    async def scan(self, ref: URLReference) -> RepositoryScanResult:
        if ref.kind != URLKind.SOURCE_REPO or not ref.owner_slug or not ref.repo_slug:
            raise ValueError(f"RepositoryScanner cannot scan {ref.kind.value} reference {ref.normalized}")

        full_name = f"{ref.owner_slug}/{ref.repo_slug}"
        if self._client is not None:
            return await self._scan(self._client, ref, full_name)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await self._scan(client, ref, full_name)

    async def _scan(self, client: httpx.AsyncClient, ref: URLReference, full_name: str) -> RepositoryScanResult:
        response = await self._get(client, f"/repos/{full_name}")
        self._raise_for_rate_limit(response, full_name)
        if response.status_code == 404:
            raise RepositoryNotFoundError(f"Repository {full_name} was not found on GitHub")
        if response.status_code >= 400:
            raise UpstreamError(f"GitHub API error: {response.status_code} for {full_name}")

        try:
            repo = response.json()
        except ValueError as e:
            logger.warning(f"GitHub returned a non-JSON body for {full_name}: {e}")
            raise UpstreamError(f"GitHub API returned an unreadable response for {full_name}") from e
        if not isinstance(repo, dict):
            raise UpstreamError(f"GitHub API returned an unexpected payload for {full_name}")

        signals = await self._fetch_quality_signals(client, full_name)

        topics = frozenset(str(topic) for topic in (repo.get("topics") or []))
        description = repo.get("description") or ""
        mcp_text = " ".join([description, " ".join(sorted(topics)), str(repo.get("name") or "")])

        result = RepositoryScanResult(
            source_url=ref,
            fetched_at=datetime.now(timezone.utc),
            full_name=str(repo.get("full_name") or full_name),
            stars=max(0, int(repo.get("stargazers_count") or 0)),
            forks=max(0, int(repo.get("forks_count") or 0)),
            last_activity_at=_parse_timestamp(repo.get("pushed_at")),
            has_license=repo.get("license") is not None or signals["has_license"],
            has_tests=signals["has_tests"],
            has_ci=signals["has_ci"],
            has_docs=signals["has_docs"],
            has_readme=signals["has_readme"],
            has_dockerfile=signals["has_dockerfile"],
            has_openapi=signals["has_openapi"],
            is_mcp=detect_mcp(mcp_text),
            topics=topics,
            description=description,
            homepage=repo.get("homepage") or None,
        )
        logger.info(f"Scanned repository {result.full_name}: stars={result.stars}, license={result.has_license}")
        return result

    async def _fetch_quality_signals(self, client: httpx.AsyncClient, full_name: str) -> Dict[str, bool]:
        try:
            response = await self._get(client, f"/repos/{full_name}/contents")
        except UpstreamError:
            return quality_signals([])
        self._raise_for_rate_limit(response, full_name)
        if response.status_code >= 400:
            # Empty repositories answer 404 here
            logger.warning(f"No contents listing for {full_name} (status={response.status_code})")
            return quality_signals([])

        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"Contents listing for {full_name} is not JSON")
            return quality_signals([])
        if not isinstance(payload, list):
            return quality_signals([])
        return quality_signals(payload)
