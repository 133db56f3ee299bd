"""Independent HTML fetcher.

Lighthouse's own timing is unreliable in SEO-only mode because it skips the
performance instrumentation, so the real load time of a page is measured
out-of-band with a plain HTTP fetch that does not involve the browser.

The fetcher is responsible for:

- Owning the httpx.AsyncClient
- Following redirects in a bounded loop
- Accumulating the body and timing the whole fetch
"""

from __future__ import annotations

import logging
import time
from typing import Any
from urllib.parse import urljoin

import httpx

from beacon.common.exceptions import FetchException
from beacon.config import WorkerConfig
from beacon.data_types import FetchResult

logger = logging.getLogger(__name__)


class HTMLFetcher:
    """Fetches raw page HTML independently of the browser.

    Example::

        async with HTMLFetcher(config) as fetcher:
            result = await fetcher.fetch("https://example.com")
            print(result.status_code, result.elapsed_ms)
    """

    def __init__(
        self,
        config: WorkerConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the fetcher.

        Args:
            config: Worker settings (timeout, redirect cap, user agent).
            transport: Optional httpx transport, used by tests.
        """
        self.config = config or WorkerConfig()
        self._client = httpx.AsyncClient(
            timeout=self.config.fetch_timeout,
            follow_redirects=False,
            headers={"User-Agent": self.config.user_agent},
            transport=transport,
        )

    async def close(self) -> None:
        """Close the HTTP client and release resources."""
        await self._client.aclose()

    async def __aenter__(self) -> HTMLFetcher:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def fetch(self, url: str) -> FetchResult:
        """Fetch *url*, following at most ``max_redirects`` redirects.

        Args:
            url: Absolute URL to fetch.

        Returns:
            FetchResult of the final response.

        Raises:
            FetchException: On timeout, connection error, or a redirect
                chain longer than the configured cap.
        """
        started = time.monotonic()
        current = url
        hops_left = self.config.max_redirects

        while True:
            status_code, location, body = await self._get_once(current)

            if 300 <= status_code < 400 and location:
                if hops_left == 0:
                    raise FetchException(
                        f"Too many redirects (more than "
                        f"{self.config.max_redirects}) fetching {url}",
                        url=url,
                    )
                hops_left -= 1
                current = urljoin(current, location)
                logger.debug(f"Redirect {status_code} -> {current}")
                continue

            elapsed_ms = int((time.monotonic() - started) * 1000)
            return FetchResult(
                html=body,
                status_code=status_code,
                elapsed_ms=elapsed_ms,
                url=current,
                redirects=self.config.max_redirects - hops_left,
            )

    async def _get_once(self, url: str) -> tuple[int, str | None, str]:
        """Issue one GET and return (status, Location header, body text)."""
        try:
            async with self._client.stream("GET", url) as response:
                location = response.headers.get("location")
                if 300 <= response.status_code < 400 and location:
                    return response.status_code, location, ""
                chunks = [chunk async for chunk in response.aiter_bytes()]
                encoding = response.encoding or "utf-8"
                body = b"".join(chunks).decode(encoding, errors="replace")
                return response.status_code, None, body
        except httpx.TimeoutException as e:
            raise FetchException(
                f"Request to {url} timed out after "
                f"{self.config.fetch_timeout}s",
                url=url,
            ) from e
        except httpx.HTTPError as e:
            raise FetchException(
                f"Request to {url} failed: {e}", url=url
            ) from e
