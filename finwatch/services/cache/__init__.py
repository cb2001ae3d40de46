"""
Local Cache Package

Keyed store of previously fetched result sets with fresh and stale reads
and prefix invalidation.
"""

from finwatch.services.cache.local import (
    FileCache,
    LocalCache,
    MemoryCache,
    sanitize_key,
)

__all__ = [
    "FileCache",
    "LocalCache",
    "MemoryCache",
    "sanitize_key",
]
