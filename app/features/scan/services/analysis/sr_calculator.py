"""
Signal Rank (SR) calculator.

Maps a scan result and its IO modalities to per-dimension sub-scores on a
0-100 scale, a weighted overall score and a tier. Sub-scores and the overall
score are rounded to one decimal place, the same precision used for display.
"""
import math
from datetime import datetime, timezone
from typing import Dict, Optional, Union

from app.features.scan.schemas.scan import (
    DimensionScore,
    DimensionStatus,
    IOModalityResult,
    RepositoryScanResult,
    SRScoreBreakdown,
    SRTier,
    WebsiteScanResult,
)

# Dimension weights per scan kind; each table sums to 1
REPOSITORY_WEIGHTS: Dict[str, float] = {
    "popularity": 0.25,
    "adoption": 0.05,
    "activity": 0.15,
    "license": 0.15,
    "tests": 0.10,
    "ci": 0.10,
    "documentation": 0.10,
    "capabilities": 0.10,
}

WEBSITE_WEIGHTS: Dict[str, float] = {
    "security": 0.15,
    "trust": 0.05,
    "metadata": 0.20,
    "content": 0.15,
    "discoverability": 0.15,
    "interoperability": 0.15,
    "capabilities": 0.15,
}

# A dimension fails when its sub-score is below the threshold
PASS_THRESHOLDS: Dict[str, float] = {
    "popularity": 40,
    "adoption": 50,
    "activity": 50,
    "license": 100,
    "tests": 100,
    "ci": 100,
    "documentation": 50,
    "capabilities": 50,
    "security": 100,
    "trust": 50,
    "metadata": 100,
    "content": 50,
    "discoverability": 50,
    "interoperability": 40,
}

# Lower bound of each tier, highest first. S includes 100.
TIER_THRESHOLDS = (
    (SRTier.S, 90.0),
    (SRTier.A, 75.0),
    (SRTier.B, 50.0),
    (SRTier.C, 0.0),
)

STARS_SATURATION = 10_000
FORK_RATIO_TARGET = 0.1
ACTIVITY_FRESH_DAYS = 30
ACTIVITY_STALE_DAYS = 180
SOCIAL_LINKS_TARGET = 2
CONTENT_SATURATION_WORDS = 300


def _clamp(score: float) -> float:
    if not math.isfinite(score):
        return 0.0
    return max(0.0, min(100.0, score))


def round_score(score: float) -> float:
    return round(_clamp(score), 1)


def stars_score(stars: int, cap: int = STARS_SATURATION) -> float:
    """
    Logarithmic popularity curve saturating at ``cap`` stars.
    0 stars = 0, 10 = 26, 100 = 50, 1k = 75, >= 10k = 100.
    """
    if stars <= 0:
        return 0.0
    return _clamp(100 * math.log10(stars + 1) / math.log10(cap + 1))


def forks_score(forks: int, stars: int, target_ratio: float = FORK_RATIO_TARGET) -> float:
    """
    Full marks once forks exceed ``target_ratio`` of the stars, scaled linearly below.
    A repository without stars only needs one fork.
    """
    if forks <= 0:
        return 0.0
    if stars <= 0:
        return 100.0
    return _clamp(100 * forks / (stars * target_ratio))


def activity_score(
    last_activity_at: Optional[datetime],
    now: Optional[datetime] = None,
    fresh_days: float = ACTIVITY_FRESH_DAYS,
    stale_days: float = ACTIVITY_STALE_DAYS,
) -> float:
    """
    100 for a push within the last ``fresh_days``, then linear decay
    down to 0 at ``stale_days``.
    """
    if last_activity_at is None:
        return 0.0
    now = now or datetime.now(timezone.utc)
    if last_activity_at.tzinfo is None:
        last_activity_at = last_activity_at.replace(tzinfo=timezone.utc)
    days = max(0.0, (now - last_activity_at).total_seconds() / 86400)
    if days <= fresh_days:
        return 100.0
    return _clamp(100 * (stale_days - days) / (stale_days - fresh_days))


def flag_score(present: bool) -> float:
    return 100.0 if present else 0.0


def capabilities_score(modalities: IOModalityResult) -> float:
    return _clamp(25 * (len(modalities.input_modalities) + len(modalities.output_modalities)))


def interface_score(result: RepositoryScanResult) -> float:
    # MCP server > OpenAPI spec > container image
    if result.is_mcp:
        return 100.0
    return 75 * result.has_openapi + 25 * result.has_dockerfile


def trust_score(social_link_count: int, target: int = SOCIAL_LINKS_TARGET) -> float:
    if social_link_count <= 0:
        return 0.0
    return _clamp(100 * social_link_count / target)


def content_score(body_text: str, saturation_words: int = CONTENT_SATURATION_WORDS) -> float:
    words = len(body_text.split()) if body_text else 0
    return _clamp(100 * words / saturation_words)


def repository_dimension_scores(
    result: RepositoryScanResult,
    modalities: IOModalityResult,
    now: Optional[datetime] = None,
) -> Dict[str, float]:
    return {
        "popularity": stars_score(result.stars),
        "adoption": forks_score(result.forks, result.stars),
        "activity": activity_score(result.last_activity_at, now),
        "license": flag_score(result.has_license),
        "tests": flag_score(result.has_tests),
        "ci": flag_score(result.has_ci),
        "documentation": 50 * result.has_readme + 50 * result.has_docs,
        # stated modalities or a machine interface, whichever is stronger
        "capabilities": max(capabilities_score(modalities), interface_score(result)),
    }


def website_dimension_scores(result: WebsiteScanResult, modalities: IOModalityResult) -> Dict[str, float]:
    return {
        "security": flag_score(result.is_https),
        "trust": trust_score(result.social_link_count),
        "metadata": 50 * bool(result.title) + 50 * bool(result.meta_description),
        "content": content_score(result.body_text),
        "discoverability": 50 * result.has_og_tags + 50 * result.has_json_ld,
        "interoperability": 60 * result.has_api_docs_link + 40 * bool(result.integration_keywords),
        "capabilities": capabilities_score(modalities),
    }


def get_tier(score: float) -> SRTier:
    if not math.isfinite(score) or score < 0:
        return SRTier.C
    for tier, lower_bound in TIER_THRESHOLDS:
        if score >= lower_bound:
            return tier
    return SRTier.C


def dimension_status(dimension: str, score: float) -> DimensionStatus:
    threshold = PASS_THRESHOLDS.get(dimension, 50)
    return DimensionStatus.PASS if score >= threshold else DimensionStatus.FAIL


def build_breakdown(raw_scores: Dict[str, float], weights: Dict[str, float]) -> SRScoreBreakdown:
    dimensions = {}
    for name, weight in weights.items():
        score = round_score(raw_scores.get(name, 0.0))
        dimensions[name] = DimensionScore(score=score, weight=weight, status=dimension_status(name, score))

    overall = round_score(sum(d.score * d.weight for d in dimensions.values()))
    return SRScoreBreakdown(overall=overall, dimensions=dimensions, tier=get_tier(overall))


def calculate_score(
    scan_result: Union[RepositoryScanResult, WebsiteScanResult],
    modalities: IOModalityResult,
    now: Optional[datetime] = None,
) -> SRScoreBreakdown:
    if isinstance(scan_result, RepositoryScanResult):
        return build_breakdown(repository_dimension_scores(scan_result, modalities, now), REPOSITORY_WEIGHTS)
    return build_breakdown(website_dimension_scores(scan_result, modalities), WEBSITE_WEIGHTS)
