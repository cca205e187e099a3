"""
URL detection for the scanner.

Classifies a raw URL as a GitHub repository or a generic product website and
produces the normalized form used as the cache key.
"""
import re
from typing import Iterable, Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urlsplit

from app.features.scan.schemas.scan import URLKind, URLReference
from app.platform.config import settings
from app.platform.exceptions import InvalidURLError

VALID_SCHEMES = ("http", "https")
DEFAULT_PORTS = {"http": 80, "https": 443}

CODE_HOSTS = {"github.com", "www.github.com"}

# Top-level GitHub paths that are not user or organisation accounts
RESERVED_OWNER_PATHS = {
    "settings", "explore", "topics", "trending", "collections",
    "events", "sponsors", "login", "signup", "pricing",
    "features", "enterprise", "team", "marketplace", "pulls",
    "issues", "notifications", "new", "organizations", "orgs",
    "about", "security", "contact", "support", "blog", "apps",
    "codespaces", "copilot", "actions", "packages", "discussions",
}

OWNER_PATTERN = re.compile(r"^[a-zA-Z0-9](?:[a-zA-Z0-9]|-(?=[a-zA-Z0-9])){0,38}$")
REPO_PATTERN = re.compile(r"^[a-zA-Z0-9._-]+$")

TRACKING_PARAMS = {
    "gclid", "fbclid", "msclkid", "dclid", "yclid", "mc_cid", "mc_eid",
    "ref", "ref_src", "_ga", "_hsenc", "_hsmi", "igshid",
}
TRACKING_PREFIXES = ("utm_",)


def _is_tracking_param(name: str) -> bool:
    name = name.lower()
    return name in TRACKING_PARAMS or name.startswith(TRACKING_PREFIXES)


def _split(raw: str):
    if not raw or not isinstance(raw, str) or not raw.strip():
        raise InvalidURLError("URL cannot be empty")

    candidate = raw.strip()
    try:
        parsed = urlsplit(candidate)
        port = parsed.port
    except ValueError as e:
        raise InvalidURLError(f"URL parsing error: {e}") from e

    scheme = parsed.scheme.lower()
    if scheme not in VALID_SCHEMES:
        raise InvalidURLError(
            f"Invalid URL scheme: {parsed.scheme or 'missing'} (must be http or https)"
        )

    host = (parsed.hostname or "").lower()
    if not host:
        raise InvalidURLError("Invalid URL format: missing domain")
    if "." not in host and host != "localhost":
        raise InvalidURLError(f"Invalid URL format: '{host}' is not a public host name")

    return parsed, scheme, host, port


def _repository_slugs(host: str, path: str) -> Optional[Tuple[str, str]]:
    """Return (owner, repo) when host/path point at a GitHub repository."""
    if host not in CODE_HOSTS:
        return None

    segments = [segment for segment in path.split("/") if segment]
    if len(segments) < 2:
        return None

    owner, repo = segments[0], segments[1]
    while repo.lower().endswith(".git"):
        repo = repo[:-4]

    if owner.lower() in RESERVED_OWNER_PATHS:
        return None
    if not OWNER_PATTERN.match(owner) or not REPO_PATTERN.match(repo):
        return None

    return owner, repo


def _normalized_query(query: str, retained: Iterable[str]) -> str:
    keep = {name.lower() for name in retained}
    if not keep or not query:
        return ""
    pairs = [
        (name.lower(), value)
        for name, value in parse_qsl(query, keep_blank_values=True)
        if name.lower() in keep and not _is_tracking_param(name)
    ]
    return urlencode(sorted(pairs))


def normalize_url(raw: str, retained_params: Optional[Iterable[str]] = None) -> str:
    """
    Normalize a URL into its canonical cache key.

    Lower-cases the whole URL, drops default ports, trailing slashes, the
    fragment and every query parameter that is not explicitly retained.
    Tracking parameters are dropped even when retained. GitHub repository URLs
    collapse to https://github.com/<owner>/<repo>.
    """
    if retained_params is None:
        retained_params = settings.URL_RETAINED_QUERY_PARAMS

    parsed, scheme, host, port = _split(raw)

    slugs = _repository_slugs(host, parsed.path)
    if slugs:
        owner, repo = slugs
        return f"https://github.com/{owner}/{repo}".lower()

    netloc = host
    if port is not None and port != DEFAULT_PORTS[scheme]:
        netloc = f"{host}:{port}"

    path = parsed.path.rstrip("/")
    normalized = f"{scheme}://{netloc}{path}"

    query = _normalized_query(parsed.query, retained_params)
    if query:
        normalized = f"{normalized}?{query}"

    return normalized.lower()


def detect(raw: str) -> URLReference:
    """Validate and classify ``raw``. Raises InvalidURLError."""
    parsed, _, host, _ = _split(raw)
    normalized = normalize_url(raw)

    slugs = _repository_slugs(host, parsed.path)
    if slugs:
        owner, repo = slugs
        return URLReference(
            raw=raw,
            normalized=normalized,
            kind=URLKind.SOURCE_REPO,
            owner_slug=owner,
            repo_slug=repo,
        )

    return URLReference(raw=raw, normalized=normalized, kind=URLKind.GENERIC_SITE)


def is_valid_url(raw: str) -> bool:
    try:
        _split(raw)
    except InvalidURLError:
        return False
    return True
