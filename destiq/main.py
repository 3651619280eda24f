"""Main entry point for the destiq application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import asyncio
import logging
import sys
from typing import Annotated, Any, Awaitable, Callable, Dict, List, Optional

import typer

# --- Core Layer ---
from destiq.core.command_handler import CommandHandler
from destiq.core.services.fallback_chain import FallbackChainCoordinator

# --- Infrastructure Layer ---
# Config
from destiq.infrastructure.config.settings import (
    get_cleanup_interval, get_config, get_exchange_rates_api_key, get_firecrawl_api_key,
    get_namespace_configs, get_news_api_key, get_perplexity_api_key, get_perplexity_model, get_reddit_credentials,
    get_provider_credits, get_retry_policy, get_scraperapi_key, get_tier_ttls, get_timeouts,
    get_youtube_api_key, load_configuration,
)
# UI
from destiq.infrastructure.cli.display import ConsoleDisplay
# Cache
from destiq.infrastructure.cache.caching_service import CacheEngine
from destiq.infrastructure.cache.sweeper import CacheSweeper
# Providers
from destiq.infrastructure.providers.credit_pool import CreditPool, ScraperPool
from destiq.infrastructure.providers.free_apis import CurrencySource, NewsSource, VideoSource
from destiq.infrastructure.providers.reddit import RedditSource
from destiq.infrastructure.providers.research import PerplexityResearchProvider
from destiq.infrastructure.providers.scrapers import FirecrawlBackend, ScraperApiBackend
# Resilience
from destiq.infrastructure.resilience.api_retry import ApiRetryService
# Monitoring
from destiq.infrastructure.monitoring.logger_setup import DEFAULT_LOG_FORMAT, resolve_log_level, setup_logging

logger = logging.getLogger(__name__)

# --- Dependency Injection Container (Manual) ---

def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root. The cache engine, credit pool and
    invoker are built exactly once here and shared by every consumer.
    """
    dependencies: Dict[str, Any] = {}
    try:
        # 1. Configuration and logging
        load_configuration()
        setup_logging(
            log_level=resolve_log_level(get_config('logging.level')),
            log_format=get_config('logging.format', DEFAULT_LOG_FORMAT),
            log_file=get_config('logging.file'),
        )
        logger.info("Initializing application dependencies...")

        # 2. Shared infrastructure
        dependencies['ui'] = ConsoleDisplay()
        dependencies['cache'] = CacheEngine(namespace_configs=get_namespace_configs())
        dependencies['sweeper'] = CacheSweeper(dependencies['cache'], interval_seconds=get_cleanup_interval())
        dependencies['invoker'] = ApiRetryService(policy=get_retry_policy())
        dependencies['credit_pool'] = CreditPool(get_provider_credits())
        timeouts = get_timeouts()

        # 3. Providers per tier
        dependencies['research_provider'] = PerplexityResearchProvider(
            api_key=get_perplexity_api_key(), model=get_perplexity_model()
        )
        dependencies['sub_sources'] = [
            CurrencySource(get_exchange_rates_api_key(), cache=dependencies['cache'], timeout=timeouts['api']),
            NewsSource(get_news_api_key(), cache=dependencies['cache'], timeout=timeouts['api']),
            VideoSource(get_youtube_api_key(), cache=dependencies['cache'], timeout=timeouts['api']),
            RedditSource(*get_reddit_credentials(), cache=dependencies['cache'], timeout=timeouts['api']),
        ]
        dependencies['scraper_pool'] = ScraperPool(
            backends=[
                FirecrawlBackend(get_firecrawl_api_key(), timeout=timeouts['scraper']),
                ScraperApiBackend(get_scraperapi_key(), timeout=timeouts['scraper']),
            ],
            credits=dependencies['credit_pool'],
            cache=dependencies['cache'],
            timeout=timeouts['scraper'],
        )

        # 4. Core services
        dependencies['coordinator'] = FallbackChainCoordinator(
            cache=dependencies['cache'],
            invoker=dependencies['invoker'],
            research_provider=dependencies['research_provider'],
            sub_sources=dependencies['sub_sources'],
            scraper_pool=dependencies['scraper_pool'],
            tier_ttls=get_tier_ttls(),
            timeouts=timeouts,
        )
        dependencies['command_handler'] = CommandHandler(
            coordinator=dependencies['coordinator'],
            cache_service=dependencies['cache'],
            credit_pool=dependencies['credit_pool'],
            ui=dependencies['ui'],
        )
        logger.info("All dependencies initialized successfully.")
        return dependencies

    except Exception as e:
        logger.error(f"Fatal Error during application initialization: {e}", exc_info=True)
        if dependencies.get('ui'):
            dependencies['ui'].display_error(f"Application Initialization Failed: {e}")
        else:
            print(f"FATAL ERROR during initialization: {e}", file=sys.stderr)
        raise typer.Exit(code=1)


# Single instances of our services, built on first use
_dependencies: Optional[Dict[str, Any]] = None


def get_dependencies() -> Dict[str, Any]:
    global _dependencies
    if _dependencies is None:
        _dependencies = create_dependencies()
    return _dependencies


# --- Typer App Definition ---
app = typer.Typer(
    name="destiq",
    help="destiq: resilient destination intelligence with tiered fallback, caching and credit-aware scraping.",
    add_completion=False,
)

# --- Helper for Running Async Commands ---
def run_async(command: Callable[[CommandHandler], Awaitable[Any]]) -> None:
    """Runs an async handler call inside a managed event loop.

    Starts the background cache sweeper for the duration of the command and
    closes provider connections afterwards.
    """
    deps = get_dependencies()

    async def runner() -> None:
        sweeper: CacheSweeper = deps['sweeper']
        sweeper.start()
        try:
            await command(deps['command_handler'])
        finally:
            await sweeper.stop()
            await deps['coordinator'].close()

    try:
        asyncio.run(runner())
    except Exception as e:
        logger.error(f"Error executing async command: {e}", exc_info=True)
        deps['ui'].display_error(f"Command execution failed: {e}")
        raise typer.Exit(code=1)

# --- CLI Commands ---

NamespaceOption = Annotated[
    Optional[str],
    typer.Option("--namespace", "-n", help="Cache namespace (e.g. 'destination-intelligence', 'currency'). All if not set.")
]


@app.command()
def analyze(
    city: Annotated[str, typer.Argument(help="Destination city.")],
    country: Annotated[str, typer.Argument(help="Destination country.")],
    origin: Annotated[str, typer.Option("--from", help="Origin country of the traveller.")],
    budget: Annotated[float, typer.Option("--budget", "-b", help="Monthly budget.")],
    months: Annotated[int, typer.Option("--months", "-m", help="Duration of the stay in months.")] = 1,
    interest: Annotated[Optional[List[str]], typer.Option("--interest", "-i", help="Interest (repeatable).")] = None,
    origin_city: Annotated[Optional[str], typer.Option("--from-city", help="Origin city.")] = None,
    currency: Annotated[str, typer.Option("--currency", help="Budget currency.")] = "USD",
    local_currency: Annotated[Optional[str], typer.Option("--local-currency", help="Destination currency code.")] = None,
    language: Annotated[str, typer.Option("--language", help="Primary language at the destination.")] = "English",
    target: Annotated[str, typer.Option("--target", "-t", help="housing, costs, cultural, safety, flights or full.")] = "full",
    as_json: Annotated[bool, typer.Option("--json", help="Print the result as JSON.")] = False,
    show_stats: Annotated[bool, typer.Option("--stats", help="Show cache statistics afterwards.")] = False,
):
    """Fetch destination intelligence through the tiered fallback chain."""
    async def command(handler: CommandHandler) -> None:
        await handler.handle_analyze(
            city=city,
            country=country,
            origin_country=origin,
            budget=budget,
            duration_months=months,
            interests=interest,
            origin_city=origin_city,
            currency=currency,
            local_currency=local_currency,
            language=language,
            target=target,
            as_json=as_json,
        )
        if show_stats:
            await handler.handle_cache_stats()

    run_async(command)


@app.command(name="cache-stats")
def cache_stats_command(namespace: NamespaceOption = None):
    """Shows hit/miss statistics per cache namespace."""
    run_async(lambda handler: handler.handle_cache_stats(namespace))


@app.command(name="clear-cache")
def clear_cache_command(
    namespace: NamespaceOption = None,
    key: Annotated[Optional[str], typer.Option("--key", "-k", help="Single key to remove.")] = None,
):
    """Clears the cache (all namespaces, one namespace, or one key)."""
    run_async(lambda handler: handler.handle_clear_cache(namespace, key))


@app.command()
def credits():
    """Shows remaining scraper credits per provider."""
    run_async(lambda handler: handler.handle_credits())


@app.command(name="reset-credits")
def reset_credits_command(
    provider: Annotated[Optional[str], typer.Option("--provider", "-p", help="Provider to reset. All if not set.")] = None,
):
    """Resets scraper credits back to their configured totals."""
    run_async(lambda handler: handler.handle_reset_credits(provider))


@app.command()
def tiers():
    """Shows which fallback tiers are currently available."""
    run_async(lambda handler: handler.handle_tiers())

# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
