"""Infrastructure Layer: Contains concrete implementations and adapters.

Connects the application to the outside world (provider APIs, scraping
backends, console UI, configuration files) by implementing the interfaces
defined in the domain layer. Also holds the cache engine and resilience
services.
"""
