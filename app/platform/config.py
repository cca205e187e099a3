from pathlib import Path
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Agent Signals Scanner"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True
    LOG_DIR: str = "logs"
    LOG_LEVEL: str = "INFO"
    LOG_TO_FILE: bool = True

    # ── Key-value store (cache + rate limits) ───
    REDIS_URL: Optional[str] = None
    FORCE_IN_MEMORY_STORE: bool = False

    # ── GitHub API ──────────────────────────────
    GITHUB_API_URL: str = "https://api.github.com"
    GITHUB_TOKEN: Optional[str] = None
    GITHUB_TIMEOUT: float = 10.0

    # ── Website fetch ───────────────────────────
    PAGE_FETCH_TIMEOUT: float = 30.0
    PAGE_MAX_REDIRECTS: int = 5
    PAGE_MAX_TEXT_CHARS: int = 20_000
    PAGE_CONTENT_CLASS: str = "content"
    SCANNER_USER_AGENT: str = "Mozilla/5.0 (compatible; AgentSignalsBot/1.0; +https://agentsignals.ai)"

    # ── Scan cache ──────────────────────────────
    SCAN_CACHE_TTL_SECONDS: int = 24 * 60 * 60
    # Stale entries are ignored, not deleted; the store drops them after this
    SCAN_CACHE_RETENTION_SECONDS: int = 7 * 24 * 60 * 60

    # ── Rate limiting ───────────────────────────
    RATE_LIMIT_WINDOW_SECONDS: int = 60 * 60
    RATE_LIMIT_ANONYMOUS: int = 5
    RATE_LIMIT_AUTHENTICATED: int = 20
    RATE_LIMIT_FAIL_OPEN: bool = True
    # X-Forwarded-For, X-Real-IP and X-Account-Id are only honoured when a gateway
    # in front of the service sets them and strips client-supplied copies
    TRUST_PROXY_HEADERS: bool = True

    # ── URL normalization ───────────────────────
    URL_RETAINED_QUERY_PARAMS: List[str] = []

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
