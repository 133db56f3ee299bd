"""Beacon CLI: audit pages with Lighthouse in a headless browser.

Usage:
    beacon https://example.com                  # One URL, one result line
    beacon --batch https://a.test https://b.test  # Sequential batch summary
    beacon --persistent                         # Line-delimited JSON server

Exactly one JSON value is written per line to stdout. All diagnostics go to
stderr through logging.
"""

from __future__ import annotations

import asyncio
import logging
import shlex
import sys

import click
from pydantic import BaseModel

from beacon.common.exceptions import InvalidURLException
from beacon.common.html_fetcher import HTMLFetcher
from beacon.common.url_utils import validate_url
from beacon.config import WorkerConfig
from beacon.data_types import AuditResult, BatchSummary, ErrorResponse
from beacon.driver.browser import BrowserLauncher
from beacon.driver.lighthouse import LighthouseEngine
from beacon.driver.persistent_server import PersistentServer, stdin_lines
from beacon.driver.runner import AuditRunner

logger = logging.getLogger(__name__)


def emit(model: BaseModel) -> None:
    """Write one model as one JSON line on stdout."""
    click.echo(model.model_dump_json())


def _build_runner(config: WorkerConfig, fetcher: HTMLFetcher) -> AuditRunner:
    return AuditRunner(
        launcher=BrowserLauncher(config),
        engine=LighthouseEngine(config),
        fetcher=fetcher,
    )


def _collect_urls(tokens: tuple[str, ...]) -> list[str]:
    """Validate positional tokens, skipping invalid ones with a warning."""
    urls: list[str] = []
    for token in tokens:
        try:
            urls.append(validate_url(token))
        except InvalidURLException as e:
            logger.warning(f"Invalid URL skipped: {token} ({e.reason})")
    return urls


@click.command()
@click.argument("urls", nargs=-1)
@click.option(
    "--batch",
    "batch_mode",
    is_flag=True,
    help="Emit a batch summary even for a single URL.",
)
@click.option(
    "--persistent",
    is_flag=True,
    help="Serve line-delimited JSON requests from stdin.",
)
@click.option(
    "--lighthouse-bin",
    envvar="BEACON_LIGHTHOUSE_BIN",
    default="lighthouse",
    show_default=True,
    help="Command used to run Lighthouse (may include arguments).",
)
@click.option(
    "--chrome-path",
    envvar="BEACON_CHROME_PATH",
    type=click.Path(dir_okay=False),
    default=None,
    help="Chromium executable (default: Playwright's bundled Chromium).",
)
@click.option(
    "--launch-timeout",
    envvar="BEACON_LAUNCH_TIMEOUT",
    type=click.FloatRange(min=0, min_open=True),
    default=30.0,
    show_default=True,
    help="Browser startup timeout in seconds.",
)
@click.option(
    "--fetch-timeout",
    envvar="BEACON_FETCH_TIMEOUT",
    type=click.FloatRange(min=0, min_open=True),
    default=10.0,
    show_default=True,
    help="HTML fetch timeout in seconds.",
)
@click.option(
    "--max-redirects",
    envvar="BEACON_MAX_REDIRECTS",
    type=click.IntRange(min=0),
    default=10,
    show_default=True,
    help="Redirect hops followed by the HTML fetch.",
)
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging.")
@click.version_option(package_name="beacon")
@click.pass_context
def cli(
    ctx: click.Context,
    urls: tuple[str, ...],
    batch_mode: bool,
    persistent: bool,
    lighthouse_bin: str,
    chrome_path: str | None,
    launch_timeout: float,
    fetch_timeout: float,
    max_redirects: int,
    verbose: bool,
) -> None:
    """Audit URLS with Lighthouse and print JSON results.

    One valid URL prints a single result; several URLs (or --batch) print
    one batch summary. URLs are audited one after another in a single
    process; run several beacon processes side by side for throughput.

    \b
    Examples:
        beacon https://example.com
        beacon --batch https://example.com https://example.org
        beacon --persistent < requests.jsonl
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    lighthouse_command = tuple(shlex.split(lighthouse_bin))
    if not lighthouse_command:
        raise click.BadParameter(
            "must not be empty", param_hint="--lighthouse-bin"
        )

    config = WorkerConfig(
        lighthouse_command=lighthouse_command,
        chrome_path=chrome_path,
        launch_timeout=launch_timeout,
        fetch_timeout=fetch_timeout,
        max_redirects=max_redirects,
    )

    if persistent:
        if urls or batch_mode:
            logger.warning(
                "Ignoring URL arguments and --batch in persistent mode"
            )
        asyncio.run(_run_persistent(config))
        return

    valid_urls = _collect_urls(urls)
    if not valid_urls:
        emit(ErrorResponse(error="No valid URLs provided"))
        ctx.exit(1)

    if len(valid_urls) == 1 and not batch_mode:
        result = asyncio.run(_run_single(config, valid_urls[0]))
        emit(result)
        ctx.exit(0 if result.success else 1)

    emit(asyncio.run(_run_batch(config, valid_urls)))


async def _run_single(config: WorkerConfig, url: str) -> AuditResult:
    async with HTMLFetcher(config) as fetcher:
        return await _build_runner(config, fetcher).run_single(url)


async def _run_batch(config: WorkerConfig, urls: list[str]) -> BatchSummary:
    async with HTMLFetcher(config) as fetcher:
        return await _build_runner(config, fetcher).run_batch(urls)


async def _run_persistent(config: WorkerConfig) -> None:
    async with HTMLFetcher(config) as fetcher:
        server = PersistentServer(_build_runner(config, fetcher), emit=emit)
        await server.serve(stdin_lines())


def main() -> None:
    """Entry point for the ``beacon`` console script.

    This is the only place the process exits. Anything not handled below
    the top level is reported once as an error line before exiting 1.
    """
    try:
        exit_code = cli.main(standalone_mode=False)
    except click.ClickException as e:
        e.show()
        emit(ErrorResponse(error=e.format_message()))
        exit_code = e.exit_code
    except click.Abort:
        click.echo("Aborted!", err=True)
        exit_code = 1
    except Exception as e:
        logger.exception("Unhandled error")
        emit(ErrorResponse(error=str(e) or type(e).__name__))
        exit_code = 1
    sys.exit(exit_code or 0)
