"""Caching Service Implementation.

Provides the TTL cache with a reverse index from resource identifiers to the
cache keys that depend on them, and an optional LRU bound.
Bounded Context: Cache Management
"""
