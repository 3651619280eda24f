import pytest
from unittest.mock import AsyncMock, MagicMock

from destiq.core.command_handler import CommandHandler
from destiq.core.services.fallback_chain import FallbackChainCoordinator
from destiq.domain.interfaces.user_interface import UserInterface
from destiq.domain.models.fallback import FallbackResult
from destiq.infrastructure.cache.caching_service import CacheEngine
from destiq.infrastructure.providers.credit_pool import CreditPool


@pytest.fixture
def mock_coordinator():
    coordinator = MagicMock(spec=FallbackChainCoordinator)
    coordinator.get_data = AsyncMock(
        return_value=FallbackResult(data={"summary": "x"}, source="mock", tier=4, confidence=0.5)
    )
    return coordinator


@pytest.fixture
def mock_ui():
    return MagicMock(spec=UserInterface)


@pytest.fixture
def credit_pool():
    return CreditPool({"firecrawl": 3, "scraperapi": 5})


@pytest.fixture
def command_handler(mock_coordinator, cache_engine, credit_pool, mock_ui):
    """Fixture to create CommandHandler with a mocked coordinator and UI."""
    return CommandHandler(
        coordinator=mock_coordinator,
        cache_service=cache_engine,
        credit_pool=credit_pool,
        ui=mock_ui,
    )


async def test_handle_analyze_builds_context(command_handler: CommandHandler, mock_coordinator, mock_ui):
    """Test that handle_analyze normalizes input and displays the result."""
    result = await command_handler.handle_analyze(
        city=" Lisbon ",
        country="Portugal",
        origin_country="USA",
        budget=2000,
        duration_months=3,
        interests=["food", " ", "surf "],
        local_currency="eur",
        currency="usd",
        target="costs",
        as_json=True,
    )

    context = mock_coordinator.get_data.call_args.args[0]
    assert context.location.city == "Lisbon"
    assert context.location.currency == "EUR"
    assert context.query.currency == "USD"
    assert context.query.interests == ["food", "surf"]
    assert context.target_data == "costs"
    mock_ui.display_result.assert_called_once_with(result, as_json=True)


async def test_handle_analyze_rejects_invalid_target(command_handler: CommandHandler, mock_coordinator, mock_ui):
    result = await command_handler.handle_analyze("Lisbon", "Portugal", "USA", 100, 1, target="weather")

    assert result is None
    mock_coordinator.get_data.assert_not_called()
    assert "Invalid target 'weather'" in mock_ui.display_error.call_args.args[0]


async def test_handle_analyze_rejects_non_positive_budget(command_handler: CommandHandler, mock_ui):
    assert await command_handler.handle_analyze("Lisbon", "Portugal", "USA", 0, 1) is None
    mock_ui.display_error.assert_called_once_with("Budget and duration must be positive.")


async def test_handle_cache_stats_empty(command_handler: CommandHandler, mock_ui):
    await command_handler.handle_cache_stats()
    mock_ui.display_info.assert_called_once_with("Cache is empty (no namespaces created yet).")


async def test_handle_cache_stats_unknown_namespace(command_handler: CommandHandler, cache_engine, mock_ui):
    cache_engine.set("currency", "k", 1)
    await command_handler.handle_cache_stats("curency")
    mock_ui.display_info.assert_called_once_with("Namespace 'curency' has no cache entries yet.")
    mock_ui.display_cache_stats.assert_not_called()
    assert "curency" not in cache_engine.namespaces


async def test_handle_cache_stats(command_handler: CommandHandler, cache_engine, mock_ui):
    cache_engine.set("currency", "k", 1)
    await command_handler.handle_cache_stats()
    stats = mock_ui.display_cache_stats.call_args.args[0]
    assert stats["currency"]["size"] == 1


async def test_handle_clear_cache(command_handler: CommandHandler, cache_engine, mock_ui):
    cache_engine.set("currency", "k", 1)
    cache_engine.set("news", "k", 1)

    await command_handler.handle_clear_cache("currency", "k")

    assert cache_engine.has("currency", "k") is False
    assert cache_engine.has("news", "k") is True
    mock_ui.display_info.assert_called_once_with("Key 'k' in namespace 'currency' cleared successfully.")


async def test_handle_credits(command_handler: CommandHandler, credit_pool, mock_ui):
    credit_pool.consume("firecrawl")
    await command_handler.handle_credits()
    snapshot = mock_ui.display_credits.call_args.args[0]
    assert snapshot["firecrawl"] == {"remaining": 2, "total": 3, "used": 1}


async def test_handle_reset_credits(command_handler: CommandHandler, credit_pool, mock_ui):
    credit_pool.consume("scraperapi", 5)
    await command_handler.handle_reset_credits("scraperapi")
    assert credit_pool.snapshot()["scraperapi"]["remaining"] == 5
    mock_ui.display_info.assert_called_once_with("Credits reset for scraperapi.")


async def test_handle_reset_unknown_provider(command_handler: CommandHandler, mock_ui):
    await command_handler.handle_reset_credits("nope")
    mock_ui.display_error.assert_called_once()
    assert "Unknown provider 'nope'" in mock_ui.display_error.call_args.args[0]
    mock_ui.display_credits.assert_not_called()


async def test_handle_tiers(command_handler: CommandHandler, mock_coordinator, mock_ui):
    mock_coordinator.check_tier_availability.return_value = {"tier4_cache": True}
    await command_handler.handle_tiers()
    mock_ui.display_tiers.assert_called_once_with({"tier4_cache": True})
