"""Scraping backends used by tier 3.

Firecrawl returns LLM-ready markdown and is preferred; ScraperAPI handles
anti-bot measures and has a larger quota. Both raise `httpx.HTTPStatusError`
on non-2xx responses so the error normalizer can classify 429/402 as
rate-limit/quota failures.
"""

import logging
import re
import time
from typing import Optional

from destiq.domain.interfaces.providers import ScraperBackend
from destiq.domain.models.common import ProviderName
from destiq.domain.models.errors import ApiErrorKind, ExternalApiError
from destiq.domain.models.scraper import ExtractionRules, ScrapeFormat, ScrapeResult
from destiq.infrastructure.providers.http_client import HttpClientMixin

logger = logging.getLogger(__name__)

FIRECRAWL_URL = "https://api.firecrawl.dev/v0/scrape"
SCRAPERAPI_URL = "https://api.scraperapi.com"
# ScraperAPI bills JS-rendered requests at ten credits each
SCRAPERAPI_RENDER_CREDITS = 10


class FirecrawlBackend(HttpClientMixin, ScraperBackend):
    name = ProviderName("firecrawl")

    def __init__(self, api_key: Optional[str], timeout: float = 45.0):
        self.api_key = api_key
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def scrape(
        self,
        url: str,
        format: ScrapeFormat = "markdown",
        extraction_rules: Optional[ExtractionRules] = None,
    ) -> ScrapeResult:
        if not self.api_key:
            raise ExternalApiError(ApiErrorKind.AUTH_FAILED, "Firecrawl API key not configured")

        start = time.perf_counter()
        payload = {
            "url": url,
            "formats": [format],
            "waitFor": 5000 if extraction_rules and extraction_rules.wait_for_selector else 0,
            "timeout": int(self.timeout * 1000),
            "removeBase64Images": True,
            "onlyMainContent": True,
        }
        response = await self._get_client().post(
            FIRECRAWL_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        response.raise_for_status()
        body = response.json()
        # v0 nests content under "data"
        content_source = body.get("data", body) if isinstance(body, dict) else {}
        content = (
            content_source.get("markdown")
            or content_source.get("html")
            or content_source.get("text")
            or ""
        )
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"Firecrawl scraped {url} in {elapsed_ms:.0f}ms ({len(content)} chars)")
        return ScrapeResult(
            provider=self.name,
            url=url,
            data=content,
            format=format,
            credits_used=1,
            processing_time_ms=elapsed_ms,
        )


class ScraperApiBackend(HttpClientMixin, ScraperBackend):
    name = ProviderName("scraperapi")

    def __init__(self, api_key: Optional[str], timeout: float = 45.0):
        self.api_key = api_key
        self.timeout = timeout

    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def scrape(
        self,
        url: str,
        format: ScrapeFormat = "html",
        extraction_rules: Optional[ExtractionRules] = None,
    ) -> ScrapeResult:
        if not self.api_key:
            raise ExternalApiError(ApiErrorKind.AUTH_FAILED, "ScraperAPI key not configured")

        start = time.perf_counter()
        params = {"api_key": self.api_key, "url": url, "render": "false"}
        if extraction_rules and extraction_rules.wait_for_selector:
            params["render"] = "true"
            params["wait_for"] = extraction_rules.wait_for_selector

        response = await self._get_client().get(SCRAPERAPI_URL, params=params)
        response.raise_for_status()
        content = response.text
        if extraction_rules and extraction_rules.remove_elements:
            content = strip_elements(content, extraction_rules.remove_elements)

        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.debug(f"ScraperAPI scraped {url} in {elapsed_ms:.0f}ms ({len(content)} chars)")
        return ScrapeResult(
            provider=self.name,
            url=url,
            data=content,
            format=format,
            credits_used=SCRAPERAPI_RENDER_CREDITS if params["render"] == "true" else 1,
            processing_time_ms=elapsed_ms,
        )


def strip_elements(html: str, tags: list) -> str:
    """Removes whole `<tag ...>...</tag>` blocks. Not a real DOM parser."""
    for tag in tags:
        pattern = re.compile(rf"<{re.escape(tag)}[^>]*>.*?</{re.escape(tag)}>", re.IGNORECASE | re.DOTALL)
        html = pattern.sub("", html)
    return html
