"""Test utilities: in-memory stand-ins for the browser, engine and fetcher.

The fakes record every call so tests can assert on handle lifecycle (which
handle audited which URL, when handles were killed) without a real browser.
"""

import json
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel

from beacon.common.exceptions import (
    AuditEngineException,
    BrowserLaunchException,
    FetchException,
)
from beacon.common.extractor import PERFORMANCE_METRICS, SEO_AUDITS
from beacon.data_types import FetchResult, RawAuditReport


def make_lhr(
    final_url: str = "https://example.com/",
    omit: Iterable[str] = (),
    score: float = 1.0,
) -> dict[str, Any]:
    """Build a Lighthouse result as produced in SEO-only mode.

    Args:
        final_url: Value for finalDisplayedUrl and finalUrl.
        omit: Audit ids to leave out.
        score: Score given to every SEO audit.
    """
    omitted = set(omit)
    audits: dict[str, Any] = {}
    for audit_id in SEO_AUDITS:
        if audit_id in omitted:
            continue
        audits[audit_id] = {
            "id": audit_id,
            "title": f"{audit_id} title",
            "description": f"{audit_id} description",
            "score": score,
        }
    for index, audit_id in enumerate(PERFORMANCE_METRICS, start=1):
        if audit_id in omitted:
            continue
        audits[audit_id] = {"id": audit_id, "numericValue": index * 100.0}
    return {
        "fetchTime": "2024-06-01T12:00:00.000Z",
        "requestedUrl": final_url,
        "finalUrl": final_url,
        "finalDisplayedUrl": final_url,
        "categories": {"seo": {"id": "seo", "score": 0.92}},
        "audits": audits,
    }


class FakeHandle:
    """Stands in for BrowserHandle."""

    def __init__(self, port: int) -> None:
        self.port = port
        self.kill_calls = 0

    @property
    def alive(self) -> bool:
        return self.kill_calls == 0

    async def kill(self) -> None:
        self.kill_calls += 1


class FakeLauncher:
    """Stands in for BrowserLauncher.

    Args:
        fail_on: 1-based launch attempt numbers that raise.
    """

    def __init__(self, fail_on: Iterable[int] = ()) -> None:
        self.fail_on = set(fail_on)
        self.attempts = 0
        self.handles: list[FakeHandle] = []

    async def launch(self) -> FakeHandle:
        self.attempts += 1
        if self.attempts in self.fail_on:
            raise BrowserLaunchException("chromium exited during startup")
        handle = FakeHandle(port=9000 + self.attempts)
        self.handles.append(handle)
        return handle


class FakeEngine:
    """Stands in for LighthouseEngine.

    Args:
        failures: URLs whose audit raises AuditEngineException.
        reports: Per-URL Lighthouse results overriding make_lhr().
        errors: Per-URL arbitrary exceptions to raise.
    """

    def __init__(
        self,
        failures: Iterable[str] = (),
        reports: dict[str, dict[str, Any]] | None = None,
        errors: dict[str, Exception] | None = None,
    ) -> None:
        self.failures = set(failures)
        self.reports = reports or {}
        self.errors = errors or {}
        self.calls: list[tuple[str, FakeHandle]] = []
        self._busy: set[int] = set()

    async def audit(self, url: str, handle: FakeHandle) -> RawAuditReport:
        assert handle.alive, f"audit of {url} on a killed handle"
        assert id(handle) not in self._busy, "concurrent audits on one handle"
        self._busy.add(id(handle))
        try:
            self.calls.append((url, handle))
            if url in self.errors:
                raise self.errors[url]
            if url in self.failures:
                raise AuditEngineException(
                    "Lighthouse did not return valid results", url=url
                )
            lhr = self.reports.get(url) or make_lhr(final_url=url)
            return RawAuditReport(lhr=lhr)
        finally:
            self._busy.discard(id(handle))


class FakeFetcher:
    """Stands in for HTMLFetcher.

    Args:
        failures: URLs whose fetch raises FetchException.
    """

    def __init__(self, failures: Iterable[str] = ()) -> None:
        self.failures = set(failures)
        self.calls: list[str] = []

    async def fetch(self, url: str) -> FetchResult:
        self.calls.append(url)
        if url in self.failures:
            raise FetchException(f"Request to {url} timed out", url=url)
        return FetchResult(
            html="<html><head><title>Fake</title></head></html>",
            status_code=200,
            elapsed_ms=42,
            url=url,
        )

    async def __aenter__(self) -> "FakeFetcher":
        return self

    async def __aexit__(self, *args: Any) -> None:
        pass


def collect_emitted() -> tuple[Any, list[dict[str, Any]]]:
    """Create an emit callback that records each output line as a dict.

    The callback serializes exactly like the CLI does, so the recorded
    values are what the orchestrator would read.

    Returns:
        A tuple of (emit_function, emitted_list).
    """
    emitted: list[dict[str, Any]] = []

    def emit(model: BaseModel) -> None:
        line = model.model_dump_json()
        assert "\n" not in line
        emitted.append(json.loads(line))

    return emit, emitted


async def lines_from(*lines: str):
    """Async iterator over the given input lines."""
    for line in lines:
        yield line + "\n"
