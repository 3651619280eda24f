"""Error taxonomy for external provider calls.

Every failure reaching the resilience layer is normalized into an
`ExternalApiError` carrying one of the closed `ApiErrorKind` values.
"""

from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


class ApiErrorKind(str, Enum):
    """Closed set of normalized failure kinds."""
    AUTH_FAILED = "AuthFailed"
    INVALID_KEY = "InvalidKey"
    RATE_LIMITED = "RateLimited"
    QUOTA_EXCEEDED = "QuotaExceeded"
    INVALID_PARAMS = "InvalidParams"
    NOT_FOUND = "NotFound"
    SERVICE_UNAVAILABLE = "ServiceUnavailable"
    NETWORK_ERROR = "NetworkError"
    TIMEOUT = "Timeout"
    PARSE_ERROR = "ParseError"
    NO_DATA_FOUND = "NoDataFound"
    CACHE_ERROR = "CacheError"
    UNKNOWN = "Unknown"

    @property
    def retryable(self) -> bool:
        """Static retryable flag for this kind."""
        return self in RETRYABLE_KINDS


RETRYABLE_KINDS: FrozenSet[ApiErrorKind] = frozenset({
    ApiErrorKind.RATE_LIMITED,
    ApiErrorKind.SERVICE_UNAVAILABLE,
    ApiErrorKind.NETWORK_ERROR,
    ApiErrorKind.TIMEOUT,
})

# Kinds that make the scraper pool move on to the next provider immediately
FAILOVER_KINDS: FrozenSet[ApiErrorKind] = frozenset({
    ApiErrorKind.RATE_LIMITED,
    ApiErrorKind.QUOTA_EXCEEDED,
})


# --- Custom Exceptions ---
class ExternalApiError(Exception):
    """A provider failure normalized into the error taxonomy."""

    def __init__(
        self,
        kind: ApiErrorKind,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        retryable: Optional[bool] = None,
    ):
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        # Defaults to the static flag of the kind
        self.retryable = kind.retryable if retryable is None else retryable
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view of the error."""
        return {
            "code": self.kind.value,
            "message": self.message,
            "status_code": self.status_code,
            "details": self.details,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"ExternalApiError(kind={self.kind.value}, message={self.message!r}, status_code={self.status_code})"


class CacheError(ExternalApiError):
    """Raised when a cache read or write fails internally."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ApiErrorKind.CACHE_ERROR, message, details=details)


class NoDataFound(ExternalApiError):
    """Raised when a provider answered but produced no usable data."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(ApiErrorKind.NO_DATA_FOUND, message, details=details)


class AllProvidersExhausted(ExternalApiError):
    """Raised by the scraper pool when every provider failed or ran out of credits."""

    def __init__(self, message: str, failures: Optional[List[ExternalApiError]] = None):
        self.failures = failures or []
        super().__init__(
            ApiErrorKind.QUOTA_EXCEEDED,
            message,
            details={"failures": [f.to_dict() for f in self.failures]},
            retryable=False,
        )


class SourcesFailed(NoDataFound):
    """Raised when every sub-source of a tier failed; keeps each normalized failure.

    Each failure carries the name of its sub-source under ``details["provider"]``.
    """

    def __init__(self, message: str, failures: List[ExternalApiError]):
        self.failures = list(failures)
        super().__init__(message, details={"failures": [f.to_dict() for f in self.failures]})
