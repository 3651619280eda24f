"""destiq: resilient destination-intelligence acquisition.

Sits between callers and unreliable, rate-limited external data providers,
combining an LRU/TTL cache, a retrying invoker, a credit-limited scraper
pool and a four-tier fallback chain.
"""

__version__ = "0.1.0"
