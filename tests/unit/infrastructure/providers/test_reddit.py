import httpx
import pytest

from destiq.domain.models.errors import ApiErrorKind, ExternalApiError, NoDataFound
from destiq.domain.models.fallback import DestinationQuery, FallbackContext, ParsedLocation, UserOrigin
from destiq.infrastructure.providers.reddit import (
    RedditSource, build_insights, calculate_confidence, relevant_subreddits,
)
from destiq.infrastructure.resilience.error_normalizer import normalize_error

NOW = 1_700_000_000.0


@pytest.fixture
def context():
    return FallbackContext(
        location=ParsedLocation(city="Rio de Janeiro", country="Brazil", currency="BRL"),
        origin=UserOrigin(country="USA"),
        query=DestinationQuery(budget=1500, duration_months=4, interests=["surf"]),
    )


def _post(id, title, selftext="", score=10, comments=0, subreddit="travel", age_days=10):
    return {
        "kind": "t3",
        "data": {
            "id": id,
            "title": title,
            "selftext": selftext,
            "author": "someone",
            "subreddit": subreddit,
            "score": score,
            "num_comments": comments,
            "url": f"https://reddit.com/{id}",
            "created_utc": NOW - age_days * 86400,
            "permalink": f"/r/{subreddit}/comments/{id}",
        },
    }


class FakeReddit:
    """Routes token and search requests; records what the source sent."""

    def __init__(self, listings, failing=()):
        self.listings = listings
        self.failing = set(failing)
        self.token_requests = []
        self.searches = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.host == "www.reddit.com":
            self.token_requests.append(request)
            return httpx.Response(200, json={"access_token": f"tok-{len(self.token_requests)}", "expires_in": 3600})
        subreddit = request.url.path.split("/")[2]
        self.searches.append(request)
        if subreddit in self.failing:
            return httpx.Response(503)
        children = self.listings.get(subreddit, [])
        return httpx.Response(200, json={"data": {"children": children}})


def _source(fake, **kwargs) -> RedditSource:
    source = RedditSource("client", "secret", user_agent="destiq-tests/1.0", **kwargs)
    source._client = httpx.AsyncClient(transport=httpx.MockTransport(fake))
    return source


def test_relevant_subreddits():
    assert relevant_subreddits("Rio de Janeiro", "Brazil") == [
        "studyabroad", "IWantOut", "travel", "riodejaneiro", "brazil",
    ]
    assert relevant_subreddits("Singapore", "Singapore") == ["studyabroad", "IWantOut", "travel", "singapore"]


async def test_fetch_merges_subreddits_and_skips_failures(context):
    fake = FakeReddit(
        listings={
            "studyabroad": [_post("a", "Semester in Rio as a student", score=40)],
            "riodejaneiro": [_post("b", "Best neighborhoods to rent an apartment", score=120)],
        },
        failing={"travel"},
    )
    source = _source(fake)

    result = await source.fetch(context)

    assert [p["id"] for p in result["posts"]] == ["b", "a"]
    assert result["posts"][0]["permalink"] == "https://reddit.com/r/riodejaneiro/comments/b"
    assert result["subreddits"][-2:] == ["riodejaneiro", "brazil"]
    assert result["housing_advice"] == ["Best neighborhoods to rent an apartment"]
    assert 0 < result["confidence"] <= 1

    token_request = fake.token_requests[0]
    assert token_request.headers["Authorization"].startswith("Basic ")
    assert token_request.content == b"grant_type=client_credentials"
    search = fake.searches[0]
    assert search.headers["Authorization"] == "Bearer tok-1"
    assert search.headers["User-Agent"] == "destiq-tests/1.0"
    assert search.url.params["restrict_sr"] == "true"
    assert search.url.params["sort"] == "top"
    await source.close()


async def test_token_is_reused_until_close_to_expiry(context, clock):
    fake = FakeReddit(listings={"travel": [_post("a", "Rio on a budget")]})
    source = _source(fake, clock=clock)

    await source.fetch(context)
    await source.fetch(context)
    assert len(fake.token_requests) == 1

    # expires_in is 3600; the token is refreshed 300s early
    clock.advance(3300)
    await source.fetch(context)
    assert len(fake.token_requests) == 2
    assert fake.searches[-1].headers["Authorization"] == "Bearer tok-2"
    await source.close()


async def test_searches_are_cached(context, cache_engine):
    fake = FakeReddit(listings={"travel": [_post("a", "Rio on a budget")]})
    source = _source(fake, cache=cache_engine)

    first = await source.fetch(context)
    searches_after_first = len(fake.searches)
    second = await source.fetch(context)

    assert second == first
    assert len(fake.searches) == searches_after_first == 5
    assert cache_engine.stats("reddit")["reddit"]["size"] == 1
    await source.close()


async def test_all_subreddits_failing_raises(context):
    subreddits = relevant_subreddits("Rio de Janeiro", "Brazil")
    source = _source(FakeReddit(listings={}, failing=subreddits))

    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        await source.fetch(context)
    assert normalize_error(exc_info.value, "reddit").kind is ApiErrorKind.SERVICE_UNAVAILABLE
    await source.close()


async def test_no_posts_is_no_data(context):
    source = _source(FakeReddit(listings={}))

    with pytest.raises(NoDataFound):
        await source.fetch(context)
    await source.close()


async def test_token_without_access_token_is_auth_failure(context):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"error": "invalid_grant"})

    source = RedditSource("client", "secret")
    source._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

    with pytest.raises(ExternalApiError) as exc_info:
        await source.fetch(context)
    assert exc_info.value.kind is ApiErrorKind.AUTH_FAILED
    assert "invalid_grant" in exc_info.value.message
    await source.close()


async def test_missing_credentials_is_auth_failure(context):
    source = RedditSource("client", None)
    assert source.is_configured() is False
    with pytest.raises(ExternalApiError) as exc_info:
        await source.fetch(context)
    assert exc_info.value.kind is ApiErrorKind.AUTH_FAILED


def test_build_insights():
    posts = [
        _to_post_data("a", "Watch out for pickpocket scams on the beach", "Be careful at night.", score=80),
        _to_post_data("b", "Exchange student here", "I love the food. Rent is 600 euro per month. "
                      "The bureaucracy is difficult.", score=30, comments=40),
        _to_post_data("c", "Metro vs bus", "The metro costs R$5.", score=3),
    ]

    insights = build_insights(posts, now=NOW)

    assert insights["common_concerns"] == ["Watch out for pickpocket scams on the beach"]
    assert insights["safety_tips"] == ["Watch out for pickpocket scams on the beach"]
    assert insights["housing_advice"] == ["Exchange student here"]
    assert {"student", "metro", "bus"} <= set(insights["top_topics"])
    assert [c["category"] for c in insights["cost_insights"]] == ["housing", "transport"]
    experience = insights["student_experiences"][0]
    assert experience["positives"] == ["I love the food."]
    assert experience["negatives"] == ["The bureaucracy is difficult."]


def test_confidence_rewards_score_recency_and_discussion():
    fresh = [_to_post_data("a", "x", score=1000, comments=100, age_days=0)]
    stale = [_to_post_data("b", "x", score=0, comments=0, age_days=400)]

    assert calculate_confidence(fresh, now=NOW) == 1.0
    assert calculate_confidence(stale, now=NOW) == 0.0
    assert calculate_confidence([], now=NOW) == 0.0


def _to_post_data(id, title, selftext="", score=10, comments=0, age_days=10):
    data = _post(id, title, selftext, score, comments, age_days=age_days)["data"]
    return {
        "id": data["id"],
        "title": data["title"],
        "content": data["selftext"],
        "author": data["author"],
        "subreddit": data["subreddit"],
        "score": data["score"],
        "num_comments": data["num_comments"],
        "url": data["url"],
        "created_utc": data["created_utc"],
        "permalink": f"https://reddit.com{data['permalink']}",
        "flair": None,
    }
