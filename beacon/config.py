"""Operational settings for the audit worker."""

from __future__ import annotations

from dataclasses import dataclass

# Fixed across all modes; deliberately not configurable per request.
CHROME_FLAGS: tuple[str, ...] = (
    "--disable-gpu",
    "--no-sandbox",
    "--disable-dev-shm-usage",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-default-apps",
    "--disable-sync",
    "--disable-translate",
    "--mute-audio",
    "--hide-scrollbars",
    "--no-first-run",
    "--no-default-browser-check",
)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (compatible; SEOBot/1.0; +https://example.com/bot)"
)


@dataclass(frozen=True)
class WorkerConfig:
    """Settings shared by the launcher, the engine adapter and the fetcher.

    Attributes:
        lighthouse_command: Command prefix used to run the Lighthouse CLI.
        chrome_path: Chromium executable; None uses Playwright's bundled one.
        launch_timeout: Browser startup timeout in seconds.
        fetch_timeout: Timeout of the independent HTML fetch in seconds.
        max_redirects: Redirect hops the fetcher follows before failing.
        user_agent: User agent sent by the fetcher.
        only_categories: Lighthouse categories to run.
    """

    lighthouse_command: tuple[str, ...] = ("lighthouse",)
    chrome_path: str | None = None
    launch_timeout: float = 30.0
    fetch_timeout: float = 10.0
    max_redirects: int = 10
    user_agent: str = DEFAULT_USER_AGENT
    only_categories: tuple[str, ...] = ("seo",)
