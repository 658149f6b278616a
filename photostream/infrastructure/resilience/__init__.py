"""API Resilience Implementations.

Contains services for rate limiting callers and retrying media store calls
with exponential backoff.
Bounded Context: API Resilience
"""
