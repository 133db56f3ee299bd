"""Normalization of raw Lighthouse reports.

The extractor merges a RawAuditReport and the independent FetchResult into a
NormalizedResult whose shape never depends on which engine fields were
present. Named audits are looked up through static tables rather than one
call site per audit, and anything missing is replaced by a safe default.
"""

from __future__ import annotations

from typing import Any

from beacon.data_types import (
    AuditOutcome,
    CategoryScores,
    FetchResult,
    NormalizedResult,
    PerformanceMetrics,
    RawAuditReport,
    SeoAudits,
)

# Lighthouse audit id -> output key
SEO_AUDITS: dict[str, str] = {
    "document-title": "document_title",
    "meta-description": "meta_description",
    "viewport": "viewport",
    "canonical": "canonical",
    "hreflang": "hreflang",
    "robots-txt": "robots_txt",
    "crawlable-anchors": "crawlable_anchors",
    "link-text": "link_text",
    "image-alt": "image_alt",
    "http-status-code": "http_status_code",
    "is-crawlable": "is_crawlable",
}

PERFORMANCE_METRICS: dict[str, str] = {
    "first-contentful-paint": "first_contentful_paint",
    "largest-contentful-paint": "largest_contentful_paint",
    "speed-index": "speed_index",
    "interactive": "time_to_interactive",
    "total-blocking-time": "total_blocking_time",
    "cumulative-layout-shift": "cumulative_layout_shift",
}

# Lighthouse category id -> output key
CATEGORIES: dict[str, str] = {
    "performance": "performance",
    "accessibility": "accessibility",
    "best-practices": "best_practices",
    "seo": "seo",
}

DEFAULT_STATUS_CODE = 200


def _as_float(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def extract_audit(audits: dict[str, Any], audit_id: str) -> AuditOutcome:
    """Extract one named audit, substituting a default when it is absent.

    Args:
        audits: The ``audits`` mapping of a Lighthouse result.
        audit_id: Lighthouse audit identifier, e.g. ``"document-title"``.

    Returns:
        AuditOutcome; never raises for missing or malformed entries.
    """
    audit = audits.get(audit_id)
    if not isinstance(audit, dict):
        return AuditOutcome.not_available()

    score = _as_float(audit.get("score"))
    value = audit.get("displayValue") or audit.get("title") or None
    return AuditOutcome(
        passed=score == 1.0,
        value=str(value) if value is not None else None,
        score=min(max(score or 0.0, 0.0), 1.0),
        description=str(audit.get("description") or ""),
    )


def extract_scores(categories: dict[str, Any]) -> CategoryScores:
    """Extract the four category scores, null where a category is absent."""
    scores: dict[str, float | None] = {}
    for category_id, key in CATEGORIES.items():
        category = categories.get(category_id)
        scores[key] = (
            _as_float(category.get("score"))
            if isinstance(category, dict)
            else None
        )
    return CategoryScores(**scores)


def extract_metrics(audits: dict[str, Any]) -> PerformanceMetrics:
    """Extract numeric lab metrics, null where an audit is absent."""
    metrics: dict[str, float | None] = {}
    for audit_id, key in PERFORMANCE_METRICS.items():
        audit = audits.get(audit_id)
        metrics[key] = (
            _as_float(audit.get("numericValue"))
            if isinstance(audit, dict)
            else None
        )
    return PerformanceMetrics(**metrics)


def resolve_final_url(lhr: dict[str, Any], requested_url: str) -> str:
    """Resolve the post-redirect URL reported by the engine.

    Prefers ``finalDisplayedUrl``, then ``finalUrl``, then the requested URL,
    so the pre-redirect URL is never reported as canonical when the engine
    knows better.
    """
    return (
        lhr.get("finalDisplayedUrl") or lhr.get("finalUrl") or requested_url
    )


def status_from_devtools_log(
    devtools_log: list[dict[str, Any]], final_url: str
) -> int | None:
    """Find the main document's status code in the DevTools log.

    Returns the status of the first ``Network.responseReceived`` event whose
    response URL equals *final_url*, or None.
    """
    for event in devtools_log:
        if not isinstance(event, dict):
            continue
        if event.get("method") != "Network.responseReceived":
            continue
        response = (event.get("params") or {}).get("response") or {}
        if response.get("url") != final_url:
            continue
        status = response.get("status")
        if isinstance(status, (int, float)) and not isinstance(status, bool):
            if status:
                return int(status)
    return None


def normalize(
    report: RawAuditReport,
    fetch: FetchResult | None,
    requested_url: str,
) -> NormalizedResult:
    """Merge an engine report and a fetch result into a NormalizedResult.

    Args:
        report: Raw Lighthouse output.
        fetch: Result of the independent fetch, or None if it failed.
        requested_url: The URL originally submitted.

    Returns:
        A NormalizedResult with every catalogue entry present.
    """
    lhr = report.lhr
    audits = lhr.get("audits") or {}
    categories = lhr.get("categories") or {}
    final_url = resolve_final_url(lhr, requested_url)
    fetch_time = lhr.get("fetchTime")

    status_code = status_from_devtools_log(report.devtools_log, final_url)
    if status_code is None:
        status_code = (
            fetch.status_code if fetch is not None else DEFAULT_STATUS_CODE
        )

    if fetch is not None:
        html = fetch.html
    else:
        html = report.artifacts.get("MainDocumentContent") or ""
        if not isinstance(html, str):
            html = ""

    seo_audits = SeoAudits(
        **{
            key: extract_audit(audits, audit_id)
            for audit_id, key in SEO_AUDITS.items()
        }
    )

    return NormalizedResult(
        url=final_url,
        requested_url=requested_url,
        fetch_time=fetch_time if isinstance(fetch_time, str) else None,
        status_code=status_code,
        html=html,
        content_size=len(html),
        load_time_ms=fetch.elapsed_ms if fetch is not None else None,
        scores=extract_scores(categories),
        seo_audits=seo_audits,
        performance_metrics=extract_metrics(audits),
    )
