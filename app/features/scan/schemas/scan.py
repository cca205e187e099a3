"""
Scan Schemas

Value objects passed between the scan pipeline steps, plus the request and
response models for the scan API endpoint.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Dict, FrozenSet, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_serializer


# ============================================================================
# URL Detection
# ============================================================================

class URLKind(str, Enum):
    SOURCE_REPO = "source_repo"
    GENERIC_SITE = "generic_site"


class URLReference(BaseModel):
    """A classified, normalized scan target."""
    raw: str
    normalized: str
    kind: URLKind
    owner_slug: Optional[str] = None
    repo_slug: Optional[str] = None

    class Config:
        frozen = True


# ============================================================================
# Scan Results
# ============================================================================

class RepositoryScanResult(BaseModel):
    """Signals collected from the code-hosting provider for one repository."""
    kind: Literal["source_repo"] = "source_repo"
    source_url: URLReference
    fetched_at: datetime
    full_name: str
    stars: int = Field(ge=0)
    forks: int = Field(default=0, ge=0)
    last_activity_at: Optional[datetime] = None
    has_license: bool = False
    has_tests: bool = False
    has_ci: bool = False
    has_docs: bool = False
    has_readme: bool = False
    has_dockerfile: bool = False
    has_openapi: bool = False
    is_mcp: bool = False
    topics: FrozenSet[str] = frozenset()
    description: str = ""
    homepage: Optional[str] = None

    class Config:
        frozen = True

    @field_serializer("topics")
    def _serialize_topics(self, topics: FrozenSet[str]) -> List[str]:
        return sorted(topics)

    @property
    def text(self) -> str:
        """Free text used for modality extraction."""
        return " ".join([self.description, " ".join(sorted(self.topics))]).strip()


class WebsiteScanResult(BaseModel):
    """Signals parsed out of a fetched product page."""
    kind: Literal["generic_site"] = "generic_site"
    source_url: URLReference
    fetched_at: datetime
    title: str = ""
    meta_description: str = ""
    body_text: str = ""
    status_code: int
    final_url: Optional[str] = None
    is_https: bool = False
    has_og_tags: bool = False
    has_json_ld: bool = False
    social_link_count: int = 0
    has_api_docs_link: bool = False
    integration_keywords: List[str] = Field(default_factory=list)

    class Config:
        frozen = True

    @property
    def text(self) -> str:
        return " ".join(part for part in (self.title, self.meta_description, self.body_text) if part)


ScanResult = Annotated[Union[RepositoryScanResult, WebsiteScanResult], Field(discriminator="kind")]


# ============================================================================
# IO Modalities
# ============================================================================

class Modality(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    AUDIO = "audio"
    VIDEO = "video"
    FILE = "file"


class IOModalityResult(BaseModel):
    input_modalities: FrozenSet[Modality] = frozenset()
    output_modalities: FrozenSet[Modality] = frozenset()

    class Config:
        frozen = True

    @field_serializer("input_modalities", "output_modalities")
    def _serialize_modalities(self, modalities: FrozenSet[Modality]) -> List[str]:
        return sorted(m.value for m in modalities)


# ============================================================================
# SR Score
# ============================================================================

class DimensionStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"


class SRTier(str, Enum):
    C = "C"
    B = "B"
    A = "A"
    S = "S"


class DimensionScore(BaseModel):
    score: float = Field(ge=0, le=100)
    weight: float = Field(gt=0, le=1)
    status: DimensionStatus

    class Config:
        frozen = True


class SRScoreBreakdown(BaseModel):
    overall: float = Field(ge=0, le=100)
    dimensions: Dict[str, DimensionScore]
    tier: SRTier

    class Config:
        frozen = True


class DiagnosticItem(BaseModel):
    dimension: str
    label: str
    status: DimensionStatus = DimensionStatus.FAIL
    score: float
    suggestion: str = Field(min_length=1)

    class Config:
        frozen = True


# ============================================================================
# Cache / Rate limiting
# ============================================================================

class CacheEntry(BaseModel):
    key: str
    result: ScanResult
    breakdown: SRScoreBreakdown
    modalities: IOModalityResult
    diagnostics: List[DiagnosticItem] = Field(default_factory=list)
    scanned_at: datetime


class ClientTier(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


class RateLimitDecision(BaseModel):
    allowed: bool
    identity: str
    tier: ClientTier
    count: int
    limit: int
    remaining: int
    retry_after: Optional[int] = None
    reset_at: datetime


# ============================================================================
# API Schemas
# ============================================================================

class ScanRequest(BaseModel):
    """Request to scan a repository or product URL."""
    url: str = Field(min_length=1)
    force_rescan: bool = False

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://github.com/facebook/react",
                "force_rescan": False
            }
        }


class ScanResponseData(BaseModel):
    """Payload returned inside the api_response envelope."""
    url: str
    kind: URLKind
    slug: str
    name: str
    cached: bool
    cache_age_minutes: Optional[int] = None
    scanned_at: datetime
    summary: str
    breakdown: SRScoreBreakdown
    diagnostics: List[DiagnosticItem]
    modalities: IOModalityResult
    result: ScanResult
