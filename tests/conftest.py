"""Shared fixtures for audit worker tests."""

import asyncio
import threading
from collections.abc import Iterator

import pytest
from aiohttp import web

from tests.mock_server import create_app
from tests.utils import (
    FakeEngine,
    FakeFetcher,
    FakeLauncher,
)

# =============================================================================
# Mock page server
# =============================================================================


class PageServer:
    """Serves the mock pages from an event loop on a daemon thread.

    The fetcher under test runs in the test's own event loop, so the server
    gets a loop of its own. The port is chosen by the OS at bind time.
    """

    host = "127.0.0.1"

    def __init__(self, app: web.Application) -> None:
        self._runner = web.AppRunner(app)
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(
            target=self._loop.run_forever, daemon=True
        )
        self.port = 0

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"

    def _submit(self, coro, timeout: float = 5.0):
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout=timeout)

    async def _bind(self) -> int:
        await self._runner.setup()
        await web.TCPSite(self._runner, self.host, 0).start()
        _, port = self._runner.addresses[0][:2]
        return port

    def __enter__(self) -> "PageServer":
        self._thread.start()
        self.port = self._submit(self._bind())
        return self

    def __exit__(self, *exc_info) -> None:
        try:
            self._submit(self._runner.cleanup())
        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=2.0)
            self._loop.close()


@pytest.fixture
def page_server() -> Iterator[PageServer]:
    """The mock pages, served for the duration of one test."""
    with PageServer(create_app()) as server:
        yield server


@pytest.fixture
def server_url(page_server: PageServer) -> str:
    """Base URL of the mock page server."""
    return page_server.url


# =============================================================================
# In-memory collaborators
# =============================================================================


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()

