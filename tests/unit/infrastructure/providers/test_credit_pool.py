import pytest

from destiq.domain.models.errors import AllProvidersExhausted, ApiErrorKind, ExternalApiError
from destiq.domain.models.scraper import ScrapeRequest, ScrapeResult
from destiq.domain.interfaces.providers import ScraperBackend
from destiq.infrastructure.providers.credit_pool import CreditPool, ScraperPool


class FakeBackend(ScraperBackend):
    def __init__(self, name, errors=None, configured=True, credits_used=1):
        self.name = name
        self.credits_used = credits_used
        self.errors = list(errors or [])
        self.configured = configured
        self.urls = []

    def is_configured(self):
        return self.configured

    async def scrape(self, url, format="markdown", extraction_rules=None):
        self.urls.append(url)
        if self.errors:
            raise self.errors.pop(0)
        return ScrapeResult(
            provider=self.name, url=url, data=f"<{self.name}>", format=format, credits_used=self.credits_used,
        )


def _assert_credit_invariant(pool: CreditPool):
    for snapshot in pool.snapshot().values():
        assert snapshot["used"] + snapshot["remaining"] == snapshot["total"]
        assert snapshot["used"] >= 0
        assert snapshot["remaining"] >= 0


def test_consume_and_reset():
    pool = CreditPool({"a": 2, "b": 5})

    assert pool.consume("a")
    assert pool.consume("a")
    assert pool.consume("a") is False
    assert pool.has_credits("a") is False
    assert pool.consume("unknown") is False
    _assert_credit_invariant(pool)

    pool.reset_credits("a")
    assert pool.snapshot()["a"] == {"remaining": 2, "total": 2, "used": 0}

    pool.consume("b", 3)
    pool.reset_credits()
    assert pool.snapshot()["b"]["remaining"] == 5


def test_reset_unknown_provider_raises():
    with pytest.raises(KeyError):
        CreditPool({"a": 1}).reset_credits("zzz")


def test_pool_requires_credit_entry_for_each_backend():
    with pytest.raises(ValueError):
        ScraperPool([FakeBackend("a"), FakeBackend("b")], CreditPool({"a": 1}))


async def test_falls_over_when_credits_run_out():
    a, b = FakeBackend("a"), FakeBackend("b")
    credits = CreditPool({"a": 1, "b": 10})
    pool = ScraperPool([a, b], credits)

    first = await pool.scrape(ScrapeRequest(url="https://x.org/1"))
    second = await pool.scrape(ScrapeRequest(url="https://x.org/2"))

    assert first.provider == "a"
    assert second.provider == "b"
    assert credits.snapshot()["a"]["remaining"] == 0
    assert credits.snapshot()["b"]["used"] == 1
    _assert_credit_invariant(credits)


async def test_rate_limited_provider_fails_over_and_still_pays():
    a = FakeBackend("a", errors=[ExternalApiError(ApiErrorKind.RATE_LIMITED, "429")])
    b = FakeBackend("b")
    credits = CreditPool({"a": 5, "b": 5})
    pool = ScraperPool([a, b], credits)

    result = await pool.scrape(ScrapeRequest(url="https://x.org"))

    assert result.provider == "b"
    assert credits.snapshot()["a"]["used"] == 1
    assert credits.snapshot()["b"]["used"] == 1


async def test_all_providers_failing_raises_with_failures():
    a = FakeBackend("a", errors=[ExternalApiError(ApiErrorKind.QUOTA_EXCEEDED, "402")])
    b = FakeBackend("b", errors=[RuntimeError("boom")])
    pool = ScraperPool([a, b], CreditPool({"a": 5, "b": 5}))

    with pytest.raises(AllProvidersExhausted) as exc_info:
        await pool.scrape(ScrapeRequest(url="https://x.org"))

    kinds = [f.kind for f in exc_info.value.failures]
    assert kinds == [ApiErrorKind.QUOTA_EXCEEDED, ApiErrorKind.UNKNOWN]
    assert exc_info.value.retryable is False


async def test_no_credits_anywhere_raises_without_calls():
    a = FakeBackend("a")
    credits = CreditPool({"a": 0})
    pool = ScraperPool([a], credits)

    assert pool.is_available() is False
    assert pool.is_configured() is True
    with pytest.raises(AllProvidersExhausted) as exc_info:
        await pool.scrape(ScrapeRequest(url="https://x.org"))
    assert a.urls == []
    failure = exc_info.value.failures[0]
    assert failure.kind is ApiErrorKind.QUOTA_EXCEEDED
    assert failure.details["provider"] == "a"


def test_unconfigured_backends_are_skipped():
    pool = ScraperPool(
        [FakeBackend("a", configured=False), FakeBackend("b")],
        CreditPool({"a": 5, "b": 5}),
    )
    assert pool.provider_order() == ["b"]


def test_preferred_provider_goes_first():
    pool = ScraperPool([FakeBackend("a"), FakeBackend("b")], CreditPool({"a": 5, "b": 5}))
    assert pool.provider_order("b") == ["b", "a"]
    assert pool.provider_order("missing") == ["a", "b"]


async def test_successful_scrape_is_cached(cache_engine):
    a = FakeBackend("a")
    credits = CreditPool({"a": 5})
    pool = ScraperPool([a], credits, cache=cache_engine)

    await pool.scrape(ScrapeRequest(url="https://x.org"))
    cached = await pool.scrape(ScrapeRequest(url="https://x.org"))

    assert cached.provider == "a"
    assert a.urls == ["https://x.org"]
    assert credits.snapshot()["a"]["used"] == 1


async def test_reported_credit_usage_is_billed():
    a = FakeBackend("a", credits_used=10)
    credits = CreditPool({"a": 15})
    pool = ScraperPool([a], credits)

    await pool.scrape(ScrapeRequest(url="https://x.org/1"))
    assert credits.snapshot()["a"] == {"remaining": 5, "total": 15, "used": 10}

    # Billing past the total floors remaining at zero
    await pool.scrape(ScrapeRequest(url="https://x.org/2"))
    assert credits.snapshot()["a"] == {"remaining": 0, "total": 15, "used": 15}
    _assert_credit_invariant(credits)

    credits.charge("unknown", 3)
    assert set(credits.snapshot()) == {"a"}
