"""Normalizes arbitrary failure shapes into the closed error taxonomy.

Providers fail in many ways: httpx status and transport errors, OpenAI SDK
errors, asyncio timeouts, JSON decoding errors, or plain exceptions. All of
them are mapped to an `ExternalApiError` with a fixed `ApiErrorKind`.
"""

import asyncio
import json
import logging
from typing import Any, Mapping, Optional

import httpx
import openai

from destiq.domain.models.errors import ApiErrorKind, ExternalApiError

logger = logging.getLogger(__name__)

# HTTP status -> error kind
STATUS_KINDS = {
    400: ApiErrorKind.INVALID_PARAMS,
    401: ApiErrorKind.AUTH_FAILED,
    402: ApiErrorKind.QUOTA_EXCEEDED,
    403: ApiErrorKind.INVALID_KEY,
    404: ApiErrorKind.NOT_FOUND,
    408: ApiErrorKind.TIMEOUT,
    422: ApiErrorKind.INVALID_PARAMS,
    429: ApiErrorKind.RATE_LIMITED,
    500: ApiErrorKind.SERVICE_UNAVAILABLE,
    502: ApiErrorKind.SERVICE_UNAVAILABLE,
    503: ApiErrorKind.SERVICE_UNAVAILABLE,
    504: ApiErrorKind.SERVICE_UNAVAILABLE,
}

NETWORK_MARKERS = (
    "network",
    "timeout",
    "timed out",
    "econnrefused",
    "connection refused",
    "connection reset",
    "enotfound",
    "name or service not known",
    "fetch failed",
)


def normalize_error(error: BaseException, source: str) -> ExternalApiError:
    """Maps any exception to an `ExternalApiError`.

    Args:
        error: The exception raised by the wrapped call.
        source: Name of the provider/tier, used in messages.

    Returns:
        The normalized error. Already-normalized errors are returned as is.
    """
    if isinstance(error, ExternalApiError):
        return error

    # Timeouts first: several timeout types are also transport errors
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, httpx.TimeoutException, openai.APITimeoutError)):
        return ExternalApiError(
            ApiErrorKind.TIMEOUT,
            f"Timeout in {source}: {_message_of(error) or 'request timed out'}",
            details={"source": source},
        )

    status_code = get_status_code(error)
    if status_code is not None:
        return _from_status(error, status_code, source)

    if _is_network_error(error):
        return ExternalApiError(
            ApiErrorKind.NETWORK_ERROR,
            f"Network error in {source}: {_message_of(error)}",
            details={"source": source, "original_error": repr(error)},
        )

    if isinstance(error, json.JSONDecodeError):
        return ExternalApiError(
            ApiErrorKind.PARSE_ERROR,
            f"Could not parse response from {source}: {error}",
            details={"source": source},
        )

    return ExternalApiError(
        ApiErrorKind.UNKNOWN,
        f"Unknown error in {source}: {_message_of(error) or type(error).__name__}",
        details={"source": source, "original_error": repr(error)},
    )


def _from_status(error: BaseException, status_code: int, source: str) -> ExternalApiError:
    kind = STATUS_KINDS.get(status_code, ApiErrorKind.UNKNOWN)
    message = _message_of(error)
    details = {"source": source}
    if kind is ApiErrorKind.RATE_LIMITED:
        retry_after = get_retry_after(error)
        if retry_after is not None:
            details["retry_after"] = retry_after

    labels = {
        ApiErrorKind.AUTH_FAILED: "Authentication failed for",
        ApiErrorKind.INVALID_KEY: "Invalid API key for",
        ApiErrorKind.RATE_LIMITED: "Rate limit exceeded for",
        ApiErrorKind.QUOTA_EXCEEDED: "Quota exceeded for",
        ApiErrorKind.SERVICE_UNAVAILABLE: "Service unavailable for",
        ApiErrorKind.INVALID_PARAMS: "Invalid parameters for",
        ApiErrorKind.NOT_FOUND: "No data found for",
        ApiErrorKind.TIMEOUT: "Request timeout for",
    }
    label = labels.get(kind, f"HTTP error {status_code} for")
    return ExternalApiError(kind, f"{label} {source}: {message}", status_code=status_code, details=details)


def get_status_code(error: Any) -> Optional[int]:
    """Extracts an HTTP status from `status_code`, `status`, or a `response` attribute."""
    for attr in ("status_code", "status"):
        value = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value

    response = getattr(error, "response", None)
    if response is not None:
        for attr in ("status_code", "status"):
            value = getattr(response, attr, None)
            if isinstance(value, int) and not isinstance(value, bool):
                return value
        if isinstance(response, Mapping):
            value = response.get("status") or response.get("status_code")
            if isinstance(value, int):
                return value
    return None


def get_retry_after(error: Any) -> Optional[float]:
    """Reads a numeric Retry-After header (seconds) from the error's response."""
    response = getattr(error, "response", None)
    headers = getattr(response, "headers", None)
    if headers is None and isinstance(response, Mapping):
        headers = response.get("headers")
    if not headers:
        return None
    raw = headers.get("retry-after") or headers.get("Retry-After")
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _is_network_error(error: BaseException) -> bool:
    if isinstance(error, (httpx.TransportError, openai.APIConnectionError, OSError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in NETWORK_MARKERS)


def _message_of(error: Any) -> str:
    """Best-effort human-readable message."""
    message = str(error)
    if message:
        return message
    response = getattr(error, "response", None)
    if isinstance(response, Mapping):
        data = response.get("data")
        if isinstance(data, Mapping) and isinstance(data.get("message"), str):
            return data["message"]
    return ""
