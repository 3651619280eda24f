"""Caching Service Implementation.

Namespace-partitioned in-memory LRU cache with per-entry TTL, key
generation helpers, a caching wrapper and a background expiry sweeper.
Bounded Context: Cache Management
"""
