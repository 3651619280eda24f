import httpx
import pytest

from destiq.domain.models.errors import ApiErrorKind, ExternalApiError, NoDataFound
from destiq.domain.models.fallback import DestinationQuery, FallbackContext, ParsedLocation, UserOrigin
from destiq.infrastructure.providers.free_apis import (
    CurrencySource, NewsSource, VideoSource, assess_safety_level, cross_rate,
)


@pytest.fixture
def context():
    return FallbackContext(
        location=ParsedLocation(city="Lisbon", country="Portugal", currency="EUR"),
        origin=UserOrigin(country="USA", city="Richmond"),
        query=DestinationQuery(budget=2000, duration_months=3, interests=["food"]),
    )


def _mock_client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_cross_rate():
    rates = {"EUR": 0.9, "GBP": 0.75}
    assert cross_rate(rates, "USD", "EUR") == pytest.approx(0.9)
    assert cross_rate(rates, "GBP", "EUR") == pytest.approx(1.2)
    assert cross_rate({}, "EUR", "EUR") == 1.0
    with pytest.raises(NoDataFound):
        cross_rate(rates, "USD", "JPY")


def test_assess_safety_level():
    calm = [{"title": "New museum opens", "description": ""}]
    tense = [{"title": "Protest downtown", "description": ""}] * 2
    bad = [{"title": "", "description": "Rising crime"}] * 5
    assert assess_safety_level(calm) == "safe"
    assert assess_safety_level(tense) == "caution"
    assert assess_safety_level(bad) == "warning"


async def test_currency_fetch_uses_cache(context, cache_engine):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"rates": {"USD": 1.0, "EUR": 0.5}})

    source = CurrencySource("app-id", cache=cache_engine)
    source._client = _mock_client(handler)

    first = await source.fetch(context)
    second = await source.fetch(context)

    assert first == {"from": "USD", "to": "EUR", "rate": 0.5, "budget_local": 1000.0}
    assert second == first
    assert len(requests) == 1
    assert requests[0].url.params["app_id"] == "app-id"
    await source.close()


async def test_missing_key_is_auth_failure(context):
    for source in (CurrencySource(None), NewsSource(""), VideoSource(None)):
        assert source.is_configured() is False
        with pytest.raises(ExternalApiError) as exc_info:
            await source.fetch(context)
        assert exc_info.value.kind is ApiErrorKind.AUTH_FAILED


async def test_news_fetch_assesses_safety(context):
    articles = [
        {"title": f"Theft report {i}", "description": "", "url": f"https://n/{i}", "source": {"name": "N"}}
        for i in range(6)
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["q"] == "Lisbon Portugal"
        return httpx.Response(200, json={"articles": articles})

    source = NewsSource("key")
    source._client = _mock_client(handler)

    result = await source.fetch(context)

    assert result["safety_level"] == "warning"
    assert len(result["articles"]) == 6
    assert result["articles"][0]["source"] == "N"
    await source.close()


async def test_news_http_error_propagates(context):
    source = NewsSource("key")
    source._client = _mock_client(lambda request: httpx.Response(429))

    with pytest.raises(httpx.HTTPStatusError):
        await source.fetch(context)
    await source.close()


async def test_video_fetch_skips_items_without_id(context):
    payload = {
        "items": [
            {"id": {"videoId": "abc"}, "snippet": {"title": "Living in Lisbon", "channelTitle": "C"}},
            {"id": {"channelId": "zzz"}, "snippet": {}},
        ]
    }
    source = VideoSource("key")
    source._client = _mock_client(lambda request: httpx.Response(200, json=payload))

    result = await source.fetch(context)

    assert result["query_topic"] == "food"
    assert [v["id"] for v in result["videos"]] == ["abc"]
    assert result["videos"][0]["url"] == "https://www.youtube.com/watch?v=abc"
    await source.close()


async def test_video_no_results_is_no_data(context):
    source = VideoSource("key")
    source._client = _mock_client(lambda request: httpx.Response(200, json={"items": []}))

    with pytest.raises(NoDataFound):
        await source.fetch(context)
    await source.close()
