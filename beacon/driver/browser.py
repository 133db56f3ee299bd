"""Headless browser lifecycle.

The launcher starts one Chromium per BrowserHandle through Playwright and
exposes Chromium's remote debugging port so that Lighthouse can drive the
same process over the DevTools protocol. A handle owns both the Playwright
instance and the browser and tears both down on kill().
"""

from __future__ import annotations

import logging
import socket
from contextlib import closing
from typing import Any

from playwright.async_api import Browser, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from beacon.common.exceptions import BrowserLaunchException
from beacon.config import CHROME_FLAGS, WorkerConfig

logger = logging.getLogger(__name__)


def find_free_port() -> int:
    """Find a free port on localhost."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(("127.0.0.1", 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


class BrowserHandle:
    """Owning reference to one running headless browser.

    Attributes:
        port: Remote debugging port (the control endpoint).
    """

    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        port: int,
    ) -> None:
        self._playwright = playwright
        self._browser = browser
        self.port = port
        self._killed = False

    @property
    def alive(self) -> bool:
        return not self._killed

    async def kill(self) -> None:
        """Terminate the browser. Idempotent and never raises."""
        if self._killed:
            return
        self._killed = True

        try:
            await self._browser.close()
        except Exception as e:
            logger.debug(
                f"Ignoring browser close error on port {self.port}: {e}"
            )

        try:
            await self._playwright.stop()
        except Exception as e:
            logger.debug(f"Ignoring Playwright stop error: {e}")

    async def __aenter__(self) -> BrowserHandle:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.kill()

    def __repr__(self) -> str:
        state = "alive" if self.alive else "killed"
        return f"BrowserHandle(port={self.port}, {state})"


class BrowserLauncher:
    """Launches headless Chromium with the fixed hardened flag set.

    Example::

        launcher = BrowserLauncher(config)
        async with await launcher.launch() as handle:
            print(handle.port)
    """

    def __init__(self, config: WorkerConfig | None = None) -> None:
        self.config = config or WorkerConfig()

    def chrome_args(self, port: int) -> list[str]:
        """Command-line flags for a browser listening on *port*."""
        return [*CHROME_FLAGS, f"--remote-debugging-port={port}"]

    async def launch(self) -> BrowserHandle:
        """Start one browser.

        Returns:
            A live BrowserHandle.

        Raises:
            BrowserLaunchException: If Playwright or Chromium cannot start
                within the configured startup timeout.
        """
        port = find_free_port()

        try:
            playwright = await async_playwright().start()
        except (PlaywrightError, OSError) as e:
            raise BrowserLaunchException(
                f"Playwright failed to start: {e}"
            ) from e

        launch_kwargs: dict[str, Any] = {
            "headless": True,
            "args": self.chrome_args(port),
            "timeout": self.config.launch_timeout * 1000,
        }
        if self.config.chrome_path:
            launch_kwargs["executable_path"] = self.config.chrome_path

        try:
            browser = await playwright.chromium.launch(**launch_kwargs)
        except (PlaywrightError, OSError) as e:
            try:
                await playwright.stop()
            except Exception as stop_error:
                logger.debug(f"Ignoring Playwright stop error: {stop_error}")
            raise BrowserLaunchException(str(e)) from e

        logger.debug(f"Launched browser on port {port}")
        return BrowserHandle(playwright, browser, port)
