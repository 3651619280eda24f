"""Provides functions for loading and accessing configuration settings.

Supports loading from .env files, environment variables, and a dedicated
configuration file (~/.destiq/config.yaml). Typed getters below turn the
raw values into cache namespace configs, tier TTLs, the retry policy,
provider credit totals and timeouts.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import load_dotenv

from destiq.domain.models.common import (
    CURRENCY_NAMESPACE, DESTINATION_NAMESPACE, NEWS_NAMESPACE, REDDIT_NAMESPACE,
    SCRAPER_NAMESPACE, VIDEO_NAMESPACE, NamespaceConfig,
)
from destiq.domain.models.fallback import DEFAULT_TIER_TTLS
from destiq.infrastructure.resilience.api_retry import RetryPolicy

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".destiq"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
ENV_FILE_NAME = ".env"

HOUR = 60 * 60

# Capacity / default TTL (seconds) per well-known namespace
DEFAULT_NAMESPACES: Dict[str, NamespaceConfig] = {
    DESTINATION_NAMESPACE: {"capacity": 100, "default_ttl": 6 * HOUR},
    CURRENCY_NAMESPACE: {"capacity": 50, "default_ttl": 1 * HOUR},
    NEWS_NAMESPACE: {"capacity": 100, "default_ttl": 30 * 60},
    VIDEO_NAMESPACE: {"capacity": 100, "default_ttl": 24 * HOUR},
    SCRAPER_NAMESPACE: {"capacity": 200, "default_ttl": 6 * HOUR},
    REDDIT_NAMESPACE: {"capacity": 50, "default_ttl": 6 * HOUR},
}

DEFAULT_PROVIDER_CREDITS: Dict[str, int] = {"firecrawl": 400, "scraperapi": 5000}

DEFAULT_TIMEOUTS: Dict[str, float] = {
    "research": 30.0,
    "api": 10.0,
    "scraper": 45.0,
}

DEFAULT_CLEANUP_INTERVAL_SECONDS = 30 * 60

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}  # For testing purposes
_loaded = False


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values defined in this module

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    if config_file.exists():
        try:
            with open(config_file, 'r') as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(yaml_config)
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        # override=False: real environment variables take precedence
        if load_dotenv(dotenv_path=dotenv_path, override=False):
            logger.info(f"Loaded environment variables from: {dotenv_path}")
    else:
        logger.debug("Skipping .env file loading (no .env found).")

    _loaded = True
    logger.info("Configuration loading process completed.")


def _coerce(value: str) -> Any:
    if value.lower() == 'true':
        return True
    if value.lower() == 'false':
        return False
    try:
        return float(value) if '.' in value else int(value)
    except (ValueError, TypeError):
        return value


def _lookup_dotted(data: Dict[str, Any], key: str) -> Any:
    """Resolves 'a.b.c' against nested dicts; flat keys win over nesting."""
    if key in data:
        return data[key]
    node: Any = data
    for part in key.split('.'):
        if not isinstance(node, dict) or part not in node:
            return None
        node = node[part]
    return node


def get_config(key: str, default: Any = None) -> Any:
    """Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (``cache.ttl`` is read from ``CACHE_TTL``)
    3. YAML config (dotted keys address nested mappings)
    4. Default value

    Args:
        key: The configuration key
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    env_key = key.upper().replace('.', '_')
    if env_key in os.environ:
        return _coerce(os.environ[env_key])

    value = _lookup_dotted(_config, key)
    if value is not None:
        return value

    logger.debug(f"Config key '{key}' not found in environment or loaded config. Returning default: {default}")
    return default


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    cwd = Path.cwd()
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


def _as_float(value: Any, fallback: float, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid numeric value for '{key}': {value!r}. Using {fallback}.")
        return fallback


def _as_int(value: Any, fallback: int, key: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer value for '{key}': {value!r}. Using {fallback}.")
        return fallback



def _as_timeout(value: Any, fallback: Optional[float], key: str) -> Optional[float]:
    """Seconds, or None when the timeout is disabled (None, 'none' or 0)."""
    if value is None or (isinstance(value, str) and value.lower() == 'none'):
        return None
    seconds = _as_float(value, fallback or 0.0, key)
    return seconds if seconds > 0 else None

# --- Typed getters ---

def get_namespace_config(namespace: str) -> NamespaceConfig:
    """Capacity and default TTL for one cache namespace."""
    base = DEFAULT_NAMESPACES.get(namespace, {
        "capacity": get_config('cache.default_capacity', 100),
        "default_ttl": get_config('cache.default_ttl', 6 * HOUR),
    })
    prefix = f"cache.namespaces.{namespace}"
    return NamespaceConfig(
        capacity=_as_int(get_config(f"{prefix}.capacity", base["capacity"]), base["capacity"], f"{prefix}.capacity"),
        default_ttl=_as_float(
            get_config(f"{prefix}.default_ttl", base["default_ttl"]), base["default_ttl"], f"{prefix}.default_ttl"
        ),
    )


def get_namespace_configs() -> Dict[str, NamespaceConfig]:
    """Configs for every well-known namespace plus any declared in YAML."""
    names = set(DEFAULT_NAMESPACES)
    declared = get_config('cache.namespaces')
    if isinstance(declared, dict):
        names.update(declared)
    return {name: get_namespace_config(name) for name in sorted(names)}


def get_tier_ttls() -> Dict[int, float]:
    """Cache TTL (seconds) written for a result resolved at each live tier."""
    return {
        tier: _as_float(get_config(f"fallback.tier{tier}_ttl", ttl), ttl, f"fallback.tier{tier}_ttl")
        for tier, ttl in DEFAULT_TIER_TTLS.items()
    }


def get_retry_policy() -> RetryPolicy:
    """Retry policy for provider calls."""
    defaults = RetryPolicy()
    return RetryPolicy(
        max_retries=_as_int(get_config('retry.max_retries', defaults.max_retries), defaults.max_retries, 'retry.max_retries'),
        base_delay=_as_float(get_config('retry.base_delay', defaults.base_delay), defaults.base_delay, 'retry.base_delay'),
        max_delay=_as_float(get_config('retry.max_delay', defaults.max_delay), defaults.max_delay, 'retry.max_delay'),
        backoff_multiplier=_as_float(
            get_config('retry.backoff_multiplier', defaults.backoff_multiplier),
            defaults.backoff_multiplier, 'retry.backoff_multiplier',
        ),
        timeout=_as_timeout(get_config('retry.timeout', defaults.timeout), defaults.timeout, 'retry.timeout'),
    )


def get_cleanup_interval() -> float:
    """Seconds between background cache sweeps."""
    return _as_float(
        get_config('cache.cleanup_interval', DEFAULT_CLEANUP_INTERVAL_SECONDS),
        DEFAULT_CLEANUP_INTERVAL_SECONDS, 'cache.cleanup_interval',
    )


def get_provider_credits() -> Dict[str, int]:
    """Credit totals per scraping provider."""
    return {
        name: _as_int(get_config(f"credits.{name}", total), total, f"credits.{name}")
        for name, total in DEFAULT_PROVIDER_CREDITS.items()
    }


def get_timeouts() -> Dict[str, float]:
    """Per-attempt timeouts (seconds) for research, free API and scraper calls."""
    return {
        name: _as_float(get_config(f"timeouts.{name}", value), value, f"timeouts.{name}")
        for name, value in DEFAULT_TIMEOUTS.items()
    }


def _get_key(env_name: str, yaml_key: str) -> Optional[str]:
    key = get_config(env_name) or get_config(yaml_key)
    return str(key) if key else None


def get_perplexity_api_key() -> Optional[str]:
    return _get_key('PERPLEXITY_API_KEY', 'perplexity.api_key')


def get_perplexity_model() -> str:
    return str(get_config('perplexity.model', 'sonar'))


def get_exchange_rates_api_key() -> Optional[str]:
    return _get_key('OPENEXCHANGERATES_APP_ID', 'exchange_rates.app_id')


def get_news_api_key() -> Optional[str]:
    return _get_key('NEWSAPI_KEY', 'news.api_key')


def get_youtube_api_key() -> Optional[str]:
    return _get_key('YOUTUBE_API_KEY', 'youtube.api_key')


def get_firecrawl_api_key() -> Optional[str]:
    return _get_key('FIRECRAWL_API_KEY', 'firecrawl.api_key')


def get_scraperapi_key() -> Optional[str]:
    return _get_key('SCRAPERAPI_KEY', 'scraperapi.api_key')


def get_reddit_credentials() -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """Client id, client secret and optional User-Agent for Reddit's app-only OAuth flow."""
    return (
        _get_key('REDDIT_CLIENT_ID', 'reddit.client_id'),
        _get_key('REDDIT_CLIENT_SECRET', 'reddit.client_secret'),
        _get_key('REDDIT_USER_AGENT', 'reddit.user_agent'),
    )


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """Set configuration values for testing purposes.

    These values override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")


# Load configuration when the module is imported
load_configuration()
