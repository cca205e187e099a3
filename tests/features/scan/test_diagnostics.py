from datetime import timedelta

import pytest

from app.features.scan.schemas.scan import (
    DimensionScore,
    DimensionStatus,
    IOModalityResult,
    RepositoryScanResult,
    SRScoreBreakdown,
    SRTier,
    WebsiteScanResult,
)
from app.features.scan.services.analysis.diagnostics import (
    DIAGNOSTIC_SUGGESTIONS,
    generate_diagnostics,
    generate_summary_message,
    get_suggestion,
)
from app.features.scan.services.analysis.sr_calculator import calculate_score


@pytest.fixture
def weak_repository(repo_ref, now):
    return RepositoryScanResult(
        source_url=repo_ref,
        fetched_at=now,
        full_name="someone/tiny-agent",
        stars=3,
        last_activity_at=now - timedelta(days=10),
        has_license=True,
        has_readme=True,
    )


@pytest.fixture
def website(site_ref, now):
    return WebsiteScanResult(source_url=site_ref, fetched_at=now, status_code=200, is_https=True)


def breakdown_of(**scores):
    dimensions = {
        name: DimensionScore(
            score=score,
            weight=1 / len(scores),
            status=DimensionStatus.PASS if score >= 50 else DimensionStatus.FAIL,
        )
        for name, score in scores.items()
    }
    return SRScoreBreakdown(overall=0, dimensions=dimensions, tier=SRTier.C)


def test_one_item_per_failing_dimension(weak_repository, now):
    breakdown = calculate_score(weak_repository, IOModalityResult(), now)
    diagnostics = generate_diagnostics(breakdown, weak_repository)

    failing = {n for n, d in breakdown.dimensions.items() if d.status == DimensionStatus.FAIL}
    assert {item.dimension for item in diagnostics} == failing
    assert len(diagnostics) == len(failing)
    assert "license" not in failing
    for item in diagnostics:
        assert item.status == DimensionStatus.FAIL
        assert item.suggestion.strip()


def test_all_passing_gives_no_diagnostics(website):
    assert generate_diagnostics(breakdown_of(security=100, metadata=80), website) == []


def test_worst_score_first(website):
    diagnostics = generate_diagnostics(breakdown_of(content=30, metadata=0, security=100), website)
    assert [item.dimension for item in diagnostics] == ["metadata", "content"]


def test_ties_use_dimension_priority(website):
    diagnostics = generate_diagnostics(
        breakdown_of(capabilities=0, interoperability=0, security=0, metadata=0),
        website,
    )
    assert [item.dimension for item in diagnostics] == ["security", "metadata", "interoperability", "capabilities"]


def test_fork_and_social_gaps_get_suggestions(weak_repository, website, now):
    repository_items = generate_diagnostics(calculate_score(weak_repository, IOModalityResult(), now), weak_repository)
    website_items = generate_diagnostics(calculate_score(website, IOModalityResult(), now), website)

    adoption = next(item for item in repository_items if item.dimension == "adoption")
    trust = next(item for item in website_items if item.dimension == "trust")
    assert adoption.label == "Forks"
    assert adoption.suggestion == DIAGNOSTIC_SUGGESTIONS["adoption"]
    assert trust.label == "Social Presence"
    assert "social profiles" in trust.suggestion
    assert "MCP" in get_suggestion("capabilities", weak_repository)


def test_suggestions_are_dimension_specific(weak_repository):
    assert get_suggestion("license", weak_repository) == DIAGNOSTIC_SUGGESTIONS["license"]
    assert len(set(DIAGNOSTIC_SUGGESTIONS.values())) == len(DIAGNOSTIC_SUGGESTIONS)


def test_capability_suggestion_depends_on_kind(weak_repository, website):
    assert get_suggestion("capabilities", weak_repository) != get_suggestion("capabilities", website)


@pytest.mark.parametrize(
    "score,phrase",
    [(100, "every signal"), (93.5, "excellent"), (80, "strong"), (60, "fair"), (12.3, "Most signals")],
)
def test_summary_message(score, phrase):
    assert phrase in generate_summary_message(score)
