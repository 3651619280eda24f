import json

import httpx
import pytest

from destiq.domain.models.errors import ApiErrorKind, ExternalApiError
from destiq.domain.models.scraper import ExtractionRules
from destiq.infrastructure.providers.scrapers import FirecrawlBackend, ScraperApiBackend, strip_elements
from destiq.infrastructure.resilience.error_normalizer import normalize_error


async def test_firecrawl_posts_and_reads_markdown():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"success": True, "data": {"markdown": "# Lisbon"}})

    backend = FirecrawlBackend("fc-key")
    backend._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    result = await backend.scrape("https://www.numbeo.com/cost-of-living/in/Lisbon")

    assert result.provider == "firecrawl"
    assert result.data == "# Lisbon"
    assert seen["auth"] == "Bearer fc-key"
    assert seen["body"]["formats"] == ["markdown"]
    await backend.close()


async def test_firecrawl_rate_limit_is_classified():
    backend = FirecrawlBackend("fc-key")
    backend._client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(429)))

    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        await backend.scrape("https://example.org")
    assert normalize_error(exc_info.value, "firecrawl").kind is ApiErrorKind.RATE_LIMITED
    await backend.close()


async def test_scraperapi_render_and_strip():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(200, text="<main>Rent</main><script>track()</script>")

    backend = ScraperApiBackend("sa-key")
    backend._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    rules = ExtractionRules(remove_elements=["script"], wait_for_selector=".price")

    result = await backend.scrape("https://example.org", "html", rules)

    assert result.data == "<main>Rent</main>"
    assert seen["params"]["render"] == "true"
    assert result.credits_used == 10
    assert seen["params"]["wait_for"] == ".price"
    assert seen["params"]["api_key"] == "sa-key"
    await backend.close()


async def test_missing_key_raises_auth_failed():
    with pytest.raises(ExternalApiError) as exc_info:
        await ScraperApiBackend(None).scrape("https://example.org")
    assert exc_info.value.kind is ApiErrorKind.AUTH_FAILED


def test_strip_elements_is_case_insensitive():
    html = "<p>keep</p><STYLE type='x'>a{}</STYLE><nav>menu</nav>"
    assert strip_elements(html, ["style", "nav"]) == "<p>keep</p>"
