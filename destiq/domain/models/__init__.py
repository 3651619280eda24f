"""Domain models for caching, fallback results, errors and scraping."""
