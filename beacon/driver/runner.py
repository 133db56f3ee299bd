"""Single and sequential batch audit execution.

The runner ties the launcher, the audit engine and the fetcher together:

- run_single() launches a fresh browser, audits one URL and kills it.
- run_batch() reuses one browser across consecutive successful audits and
  replaces it after every failure, since a browser that took part in a
  failed audit is never trusted again.

Every attempt-level failure is turned into a FailureRecord. A single bad
page never aborts the rest of a batch, and results mirror input order.
"""

from __future__ import annotations

import logging
import time

from beacon.common.exceptions import (
    AuditAttemptException,
    BeaconException,
    FetchException,
)
from beacon.common.extractor import normalize, resolve_final_url
from beacon.common.html_fetcher import HTMLFetcher
from beacon.common.url_utils import validate_url
from beacon.data_types import (
    AuditResult,
    BatchSummary,
    FailureRecord,
    FetchResult,
    NormalizedResult,
)
from beacon.driver.browser import BrowserHandle, BrowserLauncher
from beacon.driver.lighthouse import LighthouseEngine

logger = logging.getLogger(__name__)


def failure_record(url: str, error: Exception) -> FailureRecord:
    """Build the FailureRecord reported for *error*."""
    if isinstance(error, BeaconException):
        message = error.message
    else:
        message = str(error) or type(error).__name__
    return FailureRecord(url=url, error=message)


class AuditRunner:
    """Runs audits one at a time against freshly launched browsers.

    Args:
        launcher: Starts browser handles.
        engine: Audits one URL against one handle.
        fetcher: Performs the independent HTML fetch.

    Example::

        async with HTMLFetcher(config) as fetcher:
            runner = AuditRunner(
                BrowserLauncher(config), LighthouseEngine(config), fetcher
            )
            summary = await runner.run_batch(urls)
    """

    def __init__(
        self,
        launcher: BrowserLauncher,
        engine: LighthouseEngine,
        fetcher: HTMLFetcher,
    ) -> None:
        self.launcher = launcher
        self.engine = engine
        self.fetcher = fetcher

    async def analyze(
        self, url: str, handle: BrowserHandle
    ) -> NormalizedResult:
        """Audit, fetch and normalize one URL using *handle*.

        Raises:
            AuditEngineException: If the engine returns no usable report.
        """
        report = await self.engine.audit(url, handle)

        fetch: FetchResult | None = None
        try:
            final_url = resolve_final_url(report.lhr, url)
            fetch = await self.fetcher.fetch(final_url)
        except FetchException as e:
            logger.warning(f"Could not fetch HTML for {url}: {e.message}")

        return normalize(report, fetch, url)

    async def run_single(self, url: str) -> AuditResult:
        """Audit one URL with a browser launched for this call only."""
        started = time.monotonic()
        handle: BrowserHandle | None = None
        try:
            url = validate_url(url)
            handle = await self.launcher.launch()
            result = await self.analyze(url, handle)
        except AuditAttemptException as e:
            logger.error(f"Failed: {url} - {e.message}")
            return failure_record(url, e)
        except Exception as e:
            logger.exception(f"Unexpected error analyzing {url}")
            return failure_record(url, e)
        finally:
            if handle is not None:
                await handle.kill()

        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"Completed in {elapsed_ms}ms: {url}")
        return result

    async def run_batch(self, urls: list[str]) -> BatchSummary:
        """Audit *urls* sequentially, in order, sharing one browser.

        The browser is killed and replaced after any failed attempt.
        """
        total = len(urls)
        started = time.monotonic()
        logger.info(f"Starting batch analysis of {total} URLs")

        results: list[AuditResult] = []
        handle: BrowserHandle | None = None
        try:
            for index, url in enumerate(urls, start=1):
                logger.info(f"Analyzing {index}/{total}: {url}")
                try:
                    url = validate_url(url)
                except AuditAttemptException as e:
                    logger.warning(e.message)
                    results.append(failure_record(url, e))
                    continue

                try:
                    if handle is None:
                        handle = await self.launcher.launch()
                    results.append(await self.analyze(url, handle))
                except Exception as e:
                    if isinstance(e, AuditAttemptException):
                        logger.error(f"Failed: {url} - {e.message}")
                    else:
                        logger.exception(f"Unexpected error analyzing {url}")
                    results.append(failure_record(url, e))
                    if handle is not None:
                        await handle.kill()
                        handle = None
        finally:
            if handle is not None:
                await handle.kill()

        summary = BatchSummary.from_results(results)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Batch completed in {elapsed_ms}ms: "
            f"{summary.completed} completed, {summary.failed} failed"
        )
        return summary
