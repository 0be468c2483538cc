"""
Proxy caching package.

Holds the in-memory response cache keyed by the literal inbound
path + query string. Entries expire by age, are bounded by an LRU
capacity, and can be dropped all at once by a DELETE request.
"""

from .cache_store import CacheStore

__all__ = ["CacheStore"]
