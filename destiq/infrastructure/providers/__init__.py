"""External data provider adapters.

Research (tier 1), free API sub-sources (tier 2) and credit-limited
scraping backends plus their pool (tier 3).
Bounded Context: Data Acquisition
"""
