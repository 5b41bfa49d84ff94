import asyncio
import logging
import time
from typing import Optional, Tuple

import httpx

from app.config import Settings

logger = logging.getLogger(__name__)


class ShellFetchError(Exception):
    pass


class ShellClient:
    """
    Fetches the single-page app HTML shell from its hosting origin.

    One GET per call, bounded by `shell_timeout`. When
    `shell_cache_seconds` is positive, the last good body is reused for
    every listing: the shell does not vary by id, tags are injected afterwards.
    """

    def __init__(self, settings: Settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.url = f"{settings.shell_origin}{settings.shell_path}"
        self.timeout = settings.shell_timeout
        self._transport = transport
        self._cached: Optional[Tuple[float, str]] = None
        self._cache_duration = settings.shell_cache_seconds
        self._lock = asyncio.Lock()

    async def _get(self, listing_id: Optional[str]) -> str:
        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.get(self.url, params={"id": listing_id or ""})
        except httpx.TimeoutException as e:
            raise ShellFetchError(f"Timed out fetching {self.url} after {self.timeout}s: {e!r}")
        except httpx.HTTPError as e:
            raise ShellFetchError(f"Failed to fetch {self.url}: {e!r}")

        if not response.is_success:
            raise ShellFetchError(f"Status {response.status_code} from {self.url}")
        return response.text

    async def fetch(self, listing_id: Optional[str]) -> str:
        if self._cache_duration <= 0:
            return await self._get(listing_id)

        if self._is_fresh():
            return self._cached[1]
        # Concurrent misses wait for one upstream fetch
        async with self._lock:
            if self._is_fresh():
                return self._cached[1]
            html = await self._get(listing_id)
            self._cached = (time.time(), html)
            logger.debug("Shell cached", extra={"url": self.url})
            return html

    def _is_fresh(self) -> bool:
        return self._cached is not None and time.time() - self._cached[0] <= self._cache_duration
