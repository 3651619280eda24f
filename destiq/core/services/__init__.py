"""Application services (fallback chain, synthetic data)."""
