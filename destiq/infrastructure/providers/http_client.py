"""Lazily created shared `httpx.AsyncClient` for provider adapters."""

import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

USER_AGENT = "destiq/0.1"


class HttpClientMixin:
    """Gives a provider one lazily created async HTTP client."""

    timeout: float = 10.0
    _client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get HTTP client, creating if needed."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
            logger.debug(f"Closed HTTP client for {type(self).__name__}")
