"""API Resilience Implementations.

Contains the error normalizer and the retrying invoker with capped
exponential backoff and per-attempt timeouts.
Bounded Context: API Resilience
"""
