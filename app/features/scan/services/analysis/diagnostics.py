from typing import Dict, List, Union

from app.features.scan.schemas.scan import (
    DiagnosticItem,
    DimensionStatus,
    RepositoryScanResult,
    SRScoreBreakdown,
    WebsiteScanResult,
)

# Tie-break order when two failing dimensions have the same score
DIMENSION_PRIORITY = (
    "popularity",
    "activity",
    "security",
    "license",
    "adoption",
    "trust",
    "metadata",
    "content",
    "documentation",
    "tests",
    "ci",
    "discoverability",
    "interoperability",
    "capabilities",
)

DIMENSION_LABELS: Dict[str, str] = {
    "popularity": "GitHub Stars",
    "adoption": "Forks",
    "activity": "Recent Activity",
    "license": "License",
    "tests": "Test Suite",
    "ci": "Continuous Integration",
    "documentation": "Documentation",
    "capabilities": "Declared Capabilities",
    "security": "HTTPS",
    "trust": "Social Presence",
    "metadata": "Meta Tags",
    "content": "Page Content",
    "discoverability": "Structured Data",
    "interoperability": "API & Integrations",
}

DIAGNOSTIC_SUGGESTIONS: Dict[str, str] = {
    "popularity": "Grow visibility: share the project on social media, submit it to awesome lists and write a launch post.",
    "adoption": "Make the project easy to build on: add contribution guidelines, good first issues and templates people can fork.",
    "activity": "Keep the project alive: push regular commits, triage open issues and cut releases.",
    "license": "Add an open source license: create a LICENSE file in the repository root, MIT or Apache 2.0 are common choices.",
    "tests": "Add an automated test suite in a tests/ directory so users can trust changes.",
    "ci": "Set up continuous integration, for example a GitHub Actions workflow that runs the tests on every push.",
    "documentation": "Improve the docs: add a README with installation steps and usage examples, plus a docs/ directory.",
    "security": "Serve the site over HTTPS with a valid TLS certificate.",
    "trust": "Link the product's official social profiles (GitHub, X, LinkedIn, Discord) from the page so visitors can verify who runs it.",
    "metadata": "Complete the meta tags: make sure the page has a meaningful <title> and <meta name=\"description\">.",
    "content": "Describe the product on the page itself: explain what it does, its inputs and outputs, in plain text.",
    "discoverability": "Add Open Graph tags (og:title, og:image) and a JSON-LD SoftwareApplication block to the page <head>.",
    "interoperability": "Link to API documentation (e.g. /docs) and mention the SDKs, webhooks or integrations you offer.",
}

CAPABILITY_SUGGESTIONS: Dict[str, str] = {
    "source_repo": "State what the agent consumes and produces (text, images, audio, video, files) in the repository description and topics, or ship an MCP server or OpenAPI spec.",
    "generic_site": "State on the page what the agent accepts as input and what it generates (text, images, audio, video, files).",
}


def get_suggestion(dimension: str, raw_result: Union[RepositoryScanResult, WebsiteScanResult]) -> str:
    if dimension == "capabilities":
        return CAPABILITY_SUGGESTIONS[raw_result.kind]
    return DIAGNOSTIC_SUGGESTIONS.get(
        dimension,
        f"Improve the {dimension.replace('_', ' ')} signal to raise this score above its pass threshold.",
    )


def _priority(dimension: str) -> int:
    try:
        return DIMENSION_PRIORITY.index(dimension)
    except ValueError:
        return len(DIMENSION_PRIORITY)


def generate_diagnostics(
    breakdown: SRScoreBreakdown,
    raw_result: Union[RepositoryScanResult, WebsiteScanResult],
) -> List[DiagnosticItem]:
    """
    One actionable item per failing dimension, worst score first.
    Passing dimensions are left out.
    """
    failing = [
        (name, dimension)
        for name, dimension in breakdown.dimensions.items()
        if dimension.status == DimensionStatus.FAIL
    ]
    failing.sort(key=lambda item: (item[1].score, _priority(item[0]), item[0]))

    return [
        DiagnosticItem(
            dimension=name,
            label=DIMENSION_LABELS.get(name, name.replace("_", " ").title()),
            status=DimensionStatus.FAIL,
            score=dimension.score,
            suggestion=get_suggestion(name, raw_result),
        )
        for name, dimension in failing
    ]


def generate_summary_message(score: float) -> str:
    """Generate summary message dynamically based on score ranges."""
    if score >= 100:
        return "This agent sends every signal we look for, with a score of 100/100."
    elif score >= 90:
        return f"This agent sends excellent signals with a score of {score:g}/100."
    elif score >= 75:
        return f"This agent sends strong signals with a score of {score:g}/100. A few fixes would push it to the top tier."
    elif score >= 50:
        return f"This agent has a fair score of {score:g}/100. Addressing the failing checks below will raise it noticeably."
    else:
        return f"This agent scores {score:g}/100. Most signals are missing, start with the first suggestions below."
