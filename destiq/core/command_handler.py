"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py) and delegates the
work to the fallback chain coordinator, the cache engine and the credit
pool, reporting through the injected UserInterface.
"""

import logging
from typing import List, Optional

from destiq.core.services.fallback_chain import FallbackChainCoordinator
from destiq.domain.interfaces.cache import CacheService
from destiq.domain.interfaces.user_interface import UserInterface
from destiq.domain.models.common import CacheKey, Namespace
from destiq.domain.models.errors import CacheError
from destiq.domain.models.fallback import (
    DestinationQuery, FallbackContext, FallbackResult, ParsedLocation, UserOrigin,
)
from destiq.infrastructure.providers.credit_pool import CreditPool

logger = logging.getLogger(__name__)

VALID_TARGETS = ("housing", "costs", "cultural", "safety", "flights", "full")


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        coordinator: FallbackChainCoordinator,
        cache_service: CacheService,
        credit_pool: CreditPool,
        ui: UserInterface,
    ):
        """Initializes the CommandHandler with required services."""
        self.coordinator = coordinator
        self.cache_service = cache_service
        self.credit_pool = credit_pool
        self.ui = ui

    async def handle_analyze(
        self,
        city: str,
        country: str,
        origin_country: str,
        budget: float,
        duration_months: int,
        interests: Optional[List[str]] = None,
        origin_city: Optional[str] = None,
        currency: str = "USD",
        local_currency: Optional[str] = None,
        language: str = "English",
        target: str = "full",
        as_json: bool = False,
    ) -> Optional[FallbackResult]:
        """Handles the 'analyze' command: resolves destination data through the chain."""
        logger.info(f"Handling 'analyze' command for {city}, {country} (target={target})")

        if target not in VALID_TARGETS:
            self.ui.display_error(f"Invalid target '{target}'. Choose one of: {', '.join(VALID_TARGETS)}.")
            return None
        if budget <= 0 or duration_months <= 0:
            self.ui.display_error("Budget and duration must be positive.")
            return None

        context = FallbackContext(
            location=ParsedLocation(
                city=city.strip(),
                country=country.strip(),
                primary_language=language,
                currency=local_currency.upper() if local_currency else None,
            ),
            origin=UserOrigin(country=origin_country.strip(), city=origin_city.strip() if origin_city else None),
            query=DestinationQuery(
                budget=budget,
                duration_months=duration_months,
                interests=[i.strip() for i in (interests or []) if i.strip()],
                currency=currency.upper(),
            ),
            target_data=target,  # type: ignore[arg-type]
        )
        result = await self.coordinator.get_data(context)
        self.ui.display_result(result, as_json=as_json)
        return result

    async def handle_cache_stats(self, namespace: Optional[str] = None) -> None:
        """Handles the 'cache-stats' command."""
        logger.info(f"Handling 'cache-stats' command (namespace={namespace or 'all'})")
        stats = self.cache_service.stats(Namespace(namespace) if namespace else None)
        if not stats:
            if namespace:
                self.ui.display_info(f"Namespace '{namespace}' has no cache entries yet.")
            else:
                self.ui.display_info("Cache is empty (no namespaces created yet).")
            return
        self.ui.display_cache_stats(stats)

    async def handle_clear_cache(self, namespace: Optional[str] = None, key: Optional[str] = None) -> None:
        """Handles the 'clear-cache' command."""
        logger.info(f"Handling 'clear-cache' command (namespace={namespace or 'all'}, key={key or 'all'})")
        try:
            self.cache_service.clear(
                Namespace(namespace) if namespace else None,
                CacheKey(key) if key else None,
            )
        except CacheError as e:
            logger.error(f"Failed to clear cache: {e}", exc_info=True)
            self.ui.display_error(f"Failed to clear cache: {e}")
            return
        scope = f"namespace '{namespace}'" if namespace else "all namespaces"
        target = f"Key '{key}' in {scope}" if key else f"Cache ({scope})"
        self.ui.display_info(f"{target} cleared successfully.")

    async def handle_credits(self) -> None:
        """Handles the 'credits' command."""
        logger.info("Handling 'credits' command")
        self.ui.display_credits(self.credit_pool.snapshot())

    async def handle_reset_credits(self, provider: Optional[str] = None) -> None:
        """Handles the 'reset-credits' command."""
        logger.info(f"Handling 'reset-credits' command (provider={provider or 'all'})")
        try:
            self.credit_pool.reset_credits(provider)
        except KeyError:
            self.ui.display_error(
                f"Unknown provider '{provider}'. Known providers: {', '.join(self.credit_pool.providers())}."
            )
            return
        self.ui.display_info(f"Credits reset for {provider or 'all providers'}.")
        self.ui.display_credits(self.credit_pool.snapshot())

    async def handle_tiers(self) -> None:
        """Handles the 'tiers' command."""
        logger.info("Handling 'tiers' command")
        self.ui.display_tiers(self.coordinator.check_tier_availability())
