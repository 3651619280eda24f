import pytest
from typer.testing import CliRunner

import destiq.main
from destiq.infrastructure.cache.caching_service import CacheEngine
from destiq.infrastructure.cli.display import ConsoleDisplay
from destiq.infrastructure.config.settings import clear_test_config

PROVIDER_ENV_VARS = (
    "PERPLEXITY_API_KEY",
    "OPENEXCHANGERATES_APP_ID",
    "NEWSAPI_KEY",
    "YOUTUBE_API_KEY",
    "FIRECRAWL_API_KEY",
    "SCRAPERAPI_KEY",
    "REDDIT_CLIENT_ID",
    "REDDIT_CLIENT_SECRET",
    "REDDIT_USER_AGENT",
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def cache_engine(clock):
    return CacheEngine(default_capacity=10, default_ttl=60, clock=clock)


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch):
    """No real provider keys, no leaked test config, fresh composition root."""
    for name in PROVIDER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(destiq.main, "_dependencies", None)
    yield
    clear_test_config()


@pytest.fixture
def mock_console_display(mocker):
    """Mocks the ConsoleDisplay to capture output easily."""
    mock = mocker.MagicMock(spec=ConsoleDisplay)
    mocker.patch("destiq.main.ConsoleDisplay", return_value=mock)
    return mock
