"""Product website scanner: one bounded GET, then static HTML parsing."""
import json
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup

from app.features.scan.schemas.scan import URLKind, URLReference, WebsiteScanResult
from app.platform.config import settings
from app.platform.exceptions import FetchFailedError, FetchTimeoutError
from app.platform.logger import get_logger

logger = get_logger(__name__)

SOCIAL_DOMAINS = (
    "twitter.com", "x.com", "github.com", "discord.gg", "discord.com",
    "linkedin.com", "youtube.com", "facebook.com", "reddit.com", "t.me",
)
API_DOCS_PATHS = ("/docs", "/api", "/developers", "/documentation", "/api-docs", "/reference")
INTEGRATION_KEYWORDS = (
    "sdk", "webhook", "zapier", "plugin", "integration", "api key",
    "rest api", "graphql", "openapi", "slack", "make.com",
)

_WHITESPACE = re.compile(r"\s+")


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def _content_text(soup: BeautifulSoup, content_class: str) -> str:
    candidates = [
        soup.find("article"),
        soup.find("main"),
        soup.find(class_=content_class) if content_class else None,
        soup.body,
    ]
    for candidate in candidates:
        if candidate is None:
            continue
        text = collapse_whitespace(candidate.get_text(" "))
        if text:
            return text
    return ""


def _meta_content(soup: BeautifulSoup, **attrs) -> str:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return ""
    return collapse_whitespace(tag.get("content") or "")


def _has_json_ld(soup: BeautifulSoup) -> bool:
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            json.loads(script.string or "")
            return True
        except ValueError:
            continue
    return False


def parse_page(html: str, max_chars: Optional[int] = None, content_class: Optional[str] = None) -> Dict[str, Any]:
    """Extract scoring signals from raw page markup."""
    if max_chars is None:
        max_chars = settings.PAGE_MAX_TEXT_CHARS
    if content_class is None:
        content_class = settings.PAGE_CONTENT_CLASS

    soup = BeautifulSoup(html or "", "html.parser")

    title = collapse_whitespace(soup.title.get_text()) if soup.title else ""
    meta_description = _meta_content(soup, name="description")
    has_og_tags = bool(_meta_content(soup, property="og:title") and _meta_content(soup, property="og:image"))
    has_json_ld = _has_json_ld(soup)

    hrefs: List[str] = [a.get("href") or "" for a in soup.find_all("a")]
    social_links = {href for href in hrefs if any(domain in href for domain in SOCIAL_DOMAINS)}
    has_api_docs_link = any(path in href for href in hrefs for path in API_DOCS_PATHS)

    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()

    body_text = _content_text(soup, content_class)[:max_chars]

    lowered = body_text.lower()
    integration_keywords = [keyword for keyword in INTEGRATION_KEYWORDS if keyword in lowered]

    return {
        "title": title,
        "meta_description": meta_description,
        "body_text": body_text,
        "has_og_tags": has_og_tags,
        "has_json_ld": has_json_ld,
        "social_link_count": len(social_links),
        "has_api_docs_link": has_api_docs_link,
        "integration_keywords": integration_keywords,
    }


class WebsiteScanner:
    def __init__(
        self,
        timeout: Optional[float] = None,
        max_redirects: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout or settings.PAGE_FETCH_TIMEOUT
        self.max_redirects = max_redirects if max_redirects is not None else settings.PAGE_MAX_REDIRECTS
        self._client = client

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            follow_redirects=True,
            max_redirects=self.max_redirects,
        )

    async def fetch(self, url: str) -> httpx.Response:
        client = self._client or self._build_client()
        try:
            return await client.get(url, headers={"User-Agent": settings.SCANNER_USER_AGENT})
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout loading {url}: {e}")
            raise FetchTimeoutError(f"Timed out after {self.timeout:g}s loading {url}") from e
        except httpx.TooManyRedirects as e:
            logger.warning(f"Too many redirects loading {url}")
            raise FetchFailedError(f"Too many redirects (max {self.max_redirects}) loading {url}") from e
        except httpx.HTTPError as e:
            logger.warning(f"Error loading {url}: {e}")
            raise FetchFailedError(f"Could not load {url}: {e}") from e
        finally:
            if self._client is None:
                await client.aclose()

    async def scan(self, ref: URLReference) -> WebsiteScanResult:
        if ref.kind != URLKind.GENERIC_SITE:
            raise ValueError(f"WebsiteScanner cannot scan {ref.kind.value} reference {ref.normalized}")

        target = ref.raw.strip()
        response = await self.fetch(target)
        if response.status_code >= 400:
            logger.warning(f"Page {target} answered with status {response.status_code}")
            raise FetchFailedError(f"Page responded with HTTP {response.status_code}")

        final_url = str(response.url)
        parsed = parse_page(response.text)
        result = WebsiteScanResult(
            source_url=ref,
            fetched_at=datetime.now(timezone.utc),
            status_code=response.status_code,
            final_url=final_url,
            is_https=final_url.lower().startswith("https://"),
            **parsed,
        )
        logger.info(f"Scanned website {target}: status={result.status_code}, text_chars={len(result.body_text)}")
        return result
