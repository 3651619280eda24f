"""Interface for presenting results to the user.

Defines the contract for displaying fallback results, statistics tables,
errors, warnings and informational messages, allowing different UI
implementations (e.g., console, JSON output).
"""

import abc
from typing import Any, Dict, Mapping

from destiq.domain.models.common import CacheStats, CreditSnapshot
from destiq.domain.models.fallback import FallbackResult


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_result(self, result: FallbackResult, **kwargs: Any) -> None:
        """Displays a fallback chain result.

        Args:
            result: The confidence-scored result to render.
            **kwargs: Additional arguments for formatting (e.g., as_json=True).
        """
        pass

    @abc.abstractmethod
    def display_cache_stats(self, stats: Mapping[str, CacheStats]) -> None:
        """Displays per-namespace cache statistics."""
        pass

    @abc.abstractmethod
    def display_credits(self, credits: Mapping[str, CreditSnapshot]) -> None:
        """Displays per-provider credit counters."""
        pass

    @abc.abstractmethod
    def display_tiers(self, availability: Dict[str, bool]) -> None:
        """Displays which fallback tiers are currently usable."""
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message to the user.

        Args:
            error_message: The error message string.
            **kwargs: Additional arguments for formatting.
        """
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        """Displays a warning message to the user."""
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        """Displays an informational message to the user."""
        pass
