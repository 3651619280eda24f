"""Service for executing provider calls with automatic retries.

Implements capped exponential backoff for transient failures (rate limits,
5xx responses, network errors, timeouts). Non-retryable kinds such as bad
credentials stop immediately. The result is always an `ApiResponse`;
failures never propagate past this boundary.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Coroutine, FrozenSet, Optional

from destiq.domain.events.api_events import (
    ApiCallFailed, ApiCallInitiated, ApiCallSucceeded, RetryScheduled, dispatch_event,
)
from destiq.domain.models.errors import RETRYABLE_KINDS, ApiErrorKind, ExternalApiError
from destiq.domain.models.fallback import ApiResponse
from destiq.infrastructure.resilience.error_normalizer import normalize_error

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY_S = 1.0
DEFAULT_MAX_DELAY_S = 10.0
DEFAULT_BACKOFF_MULTIPLIER = 2.0
DEFAULT_ATTEMPT_TIMEOUT_S = 30.0


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration for one kind of call."""
    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY_S
    max_delay: float = DEFAULT_MAX_DELAY_S
    backoff_multiplier: float = DEFAULT_BACKOFF_MULTIPLIER
    retryable_kinds: FrozenSet[ApiErrorKind] = field(default_factory=lambda: RETRYABLE_KINDS)
    timeout: Optional[float] = DEFAULT_ATTEMPT_TIMEOUT_S  # Per attempt, None disables

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt + 1` (attempt is 0-based)."""
        return min(self.base_delay * (self.backoff_multiplier ** attempt), self.max_delay)

    def with_timeout(self, timeout: Optional[float]) -> "RetryPolicy":
        return RetryPolicy(
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            backoff_multiplier=self.backoff_multiplier,
            retryable_kinds=self.retryable_kinds,
            timeout=timeout,
        )


class ApiRetryService:
    """Invokes async calls with per-attempt timeout, error normalization and backoff."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initializes the ApiRetryService.

        Args:
            policy: Default retry policy (used when `invoke` gets none).
            sleep: Coroutine used to wait between attempts (injectable for tests).
        """
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        logger.info(
            f"ApiRetryService initialized: max_retries={self.policy.max_retries}, "
            f"base_delay={self.policy.base_delay}s, max_delay={self.policy.max_delay}s, "
            f"factor={self.policy.backoff_multiplier}, timeout={self.policy.timeout}s"
        )
        logger.debug(f"Retryable kinds: {sorted(k.value for k in self.policy.retryable_kinds)}")

    async def invoke(
        self,
        func: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
        source: Optional[str] = None,
        policy: Optional[RetryPolicy] = None,
        **kwargs: Any
    ) -> ApiResponse:
        """Executes an async function with retries.

        Args:
            func: The async function (provider call) to execute.
            *args: Positional arguments for the function.
            source: Name of the provider/tier (defaults to the function name).
            policy: Retry policy overriding the service default.
            **kwargs: Keyword arguments for the function.

        Returns:
            An `ApiResponse` with `success=True` and the data, or
            `success=False` and the last normalized error.
        """
        effective_policy = policy or self.policy
        effective_source = source or getattr(func, "__name__", "call")
        last_error: Optional[ExternalApiError] = None
        attempts = 0

        for attempt in range(effective_policy.max_retries + 1):
            attempts = attempt + 1
            dispatch_event(ApiCallInitiated(source=effective_source, attempt_number=attempts))
            start_time = time.perf_counter()
            try:
                if effective_policy.timeout is not None:
                    result = await asyncio.wait_for(func(*args, **kwargs), timeout=effective_policy.timeout)
                else:
                    result = await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                last_error = normalize_error(e, effective_source)
            else:
                latency_ms = (time.perf_counter() - start_time) * 1000
                dispatch_event(ApiCallSucceeded(source=effective_source, attempts=attempts, latency_ms=latency_ms))
                if attempts > 1:
                    logger.info(f"{effective_source} succeeded after {attempts} attempts")
                return ApiResponse(success=True, source=effective_source, attempts=attempts, data=result)

            retryable = last_error.retryable and last_error.kind in effective_policy.retryable_kinds
            if not retryable:
                logger.error(
                    f"Non-retryable error calling {effective_source} on attempt {attempts}: "
                    f"{last_error.kind.value}: {last_error.message}"
                )
                break
            if attempt >= effective_policy.max_retries:
                logger.error(
                    f"Max retries ({effective_policy.max_retries}) reached for {effective_source}. "
                    f"Last error: {last_error.kind.value}: {last_error.message}"
                )
                break

            delay = effective_policy.delay_for(attempt)
            logger.warning(
                f"Retryable error calling {effective_source} on attempt {attempts}/"
                f"{effective_policy.max_retries + 1}: {last_error.kind.value}. Waiting {delay:.2f}s..."
            )
            dispatch_event(RetryScheduled(
                source=effective_source, attempt_number=attempts,
                delay_seconds=delay, error_kind=last_error.kind.value,
            ))
            await self._sleep(delay)

        final_error = last_error or ExternalApiError(ApiErrorKind.UNKNOWN, f"Unknown error in {effective_source}")
        dispatch_event(ApiCallFailed(
            source=effective_source, error_kind=final_error.kind.value,
            error_message=final_error.message, attempts=attempts,
        ))
        return ApiResponse(success=False, source=effective_source, attempts=attempts, error=final_error)
