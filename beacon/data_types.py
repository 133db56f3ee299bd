"""Data types for the audit worker.

This module defines the records exchanged between the worker's components
and the JSON shapes written to its output stream. Internal, engine-specific
structures are plain dataclasses; everything that crosses the process
boundary is a Pydantic model so that the output schema stays fixed no matter
which engine fields were actually present.

Wire keys are snake_case throughout.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    Field,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from beacon.common.exceptions import (
    RequestParseException,
    UnknownActionException,
)

# =============================================================================
# Engine and fetch records
# =============================================================================


@dataclass(frozen=True)
class FetchResult:
    """Result of the independent HTML fetch.

    Attributes:
        html: Decoded response body of the final response.
        status_code: Status code of the final response.
        elapsed_ms: Wall-clock time of the whole fetch, redirects included.
        url: URL of the final response.
        redirects: Number of redirect hops followed.
    """

    html: str
    status_code: int
    elapsed_ms: int
    url: str = ""
    redirects: int = 0


@dataclass
class RawAuditReport:
    """Engine-specific output of one Lighthouse run.

    Attributes:
        lhr: The Lighthouse result (categories, audits, final URLs).
        artifacts: Gathered artifacts, when the engine saved them.
        devtools_log: DevTools protocol events of the main navigation.
    """

    lhr: dict[str, Any]
    artifacts: dict[str, Any] = field(default_factory=dict)
    devtools_log: list[dict[str, Any]] = field(default_factory=list)


# =============================================================================
# Normalized output
# =============================================================================


class AuditOutcome(BaseModel):
    """Outcome of one named audit."""

    passed: bool
    value: str | None = None
    score: float = Field(ge=0.0, le=1.0)
    description: str = ""

    @classmethod
    def not_available(cls) -> AuditOutcome:
        """Outcome substituted for an audit the engine did not report."""
        return cls(
            passed=False,
            value=None,
            score=0.0,
            description="Audit not available",
        )


class CategoryScores(BaseModel):
    """Category scores on a 0-1 scale, null when the category was not run."""

    performance: float | None = None
    accessibility: float | None = None
    best_practices: float | None = None
    seo: float | None = None


class SeoAudits(BaseModel):
    """The fixed catalogue of SEO checks."""

    document_title: AuditOutcome
    meta_description: AuditOutcome
    viewport: AuditOutcome
    canonical: AuditOutcome
    hreflang: AuditOutcome
    robots_txt: AuditOutcome
    crawlable_anchors: AuditOutcome
    link_text: AuditOutcome
    image_alt: AuditOutcome
    http_status_code: AuditOutcome
    is_crawlable: AuditOutcome


class PerformanceMetrics(BaseModel):
    """Lab metrics in milliseconds (layout shift is unitless)."""

    first_contentful_paint: float | None = None
    largest_contentful_paint: float | None = None
    speed_index: float | None = None
    time_to_interactive: float | None = None
    total_blocking_time: float | None = None
    cumulative_layout_shift: float | None = None


class NormalizedResult(BaseModel):
    """Stable output contract of a successful audit."""

    success: Literal[True] = True
    url: str
    requested_url: str
    fetch_time: str | None = None
    status_code: int
    html: str
    content_size: int
    load_time_ms: int | None = None
    scores: CategoryScores
    seo_audits: SeoAudits
    performance_metrics: PerformanceMetrics


class FailureRecord(BaseModel):
    """Substitutes for a NormalizedResult wherever an attempt fails."""

    success: Literal[False] = False
    url: str
    error: str


AuditResult = Union[NormalizedResult, FailureRecord]


class BatchSummary(BaseModel):
    """Ordered results of a sequential batch."""

    success: Literal[True] = True
    batch: Literal[True] = True
    total: int
    completed: int
    failed: int
    results: list[AuditResult]

    @model_validator(mode="after")
    def _check_counts(self) -> BatchSummary:
        if self.completed + self.failed != self.total:
            raise ValueError("completed + failed must equal total")
        if len(self.results) != self.total:
            raise ValueError("results must contain one entry per URL")
        return self

    @classmethod
    def from_results(cls, results: list[AuditResult]) -> BatchSummary:
        """Build a summary whose counts are derived from *results*."""
        completed = sum(1 for r in results if r.success)
        return cls(
            total=len(results),
            completed=completed,
            failed=len(results) - completed,
            results=results,
        )


# =============================================================================
# Persistent-mode protocol
# =============================================================================


class PingRequest(BaseModel):
    action: Literal["ping"]


class AnalyzeRequest(BaseModel):
    action: Literal["analyze"]
    url: str = Field(min_length=1)


class BatchRequest(BaseModel):
    action: Literal["batch"]
    urls: list[str]


class ShutdownRequest(BaseModel):
    action: Literal["shutdown"]


ProtocolRequest = Annotated[
    Union[PingRequest, AnalyzeRequest, BatchRequest, ShutdownRequest],
    Field(discriminator="action"),
]

KNOWN_ACTIONS = frozenset({"ping", "analyze", "batch", "shutdown"})

_request_adapter: TypeAdapter[ProtocolRequest] = TypeAdapter(ProtocolRequest)


def _field_path(loc: tuple[Any, ...]) -> str:
    # The first element is the union tag chosen by the discriminator.
    return ".".join(str(part) for part in loc[1:])


def parse_request(line: str) -> ProtocolRequest:
    """Parse one input line into a request variant.

    Args:
        line: A single line read from the input stream.

    Returns:
        The validated request.

    Raises:
        RequestParseException: If the line is not JSON or has the wrong shape.
        UnknownActionException: If the action is not recognized.
    """
    try:
        payload = json.loads(line)
    except (json.JSONDecodeError, RecursionError) as e:
        raise RequestParseException(f"Invalid JSON: {e}") from e

    if not isinstance(payload, dict):
        raise RequestParseException(
            "Invalid request: expected a JSON object"
        )

    action = payload.get("action")
    if not isinstance(action, str) or action not in KNOWN_ACTIONS:
        raise UnknownActionException(
            action if isinstance(action, str) else None
        )

    try:
        return _request_adapter.validate_python(payload)
    except ValidationError as e:
        problems = ", ".join(
            f"{_field_path(err['loc']) or action}: {err['msg']}"
            for err in e.errors()
        )
        raise RequestParseException(
            f"Invalid request for action '{action}': {problems}"
        ) from e


class ReadyResponse(BaseModel):
    success: Literal[True] = True
    ready: Literal[True] = True


class PongResponse(BaseModel):
    success: Literal[True] = True
    action: Literal["pong"] = "pong"


class ShutdownResponse(BaseModel):
    success: Literal[True] = True
    action: Literal["shutdown"] = "shutdown"


class ErrorResponse(BaseModel):
    success: Literal[False] = False
    error: str
