"""Build cache store.

Public API:
    - BuildCacheStore: Local cache directory with prepare/finalize/purge
    - FinalizeResult: Counts from merging an export
    - CacheError: Base exception for cache errors
    - CacheFinalizeError: Export could not be merged
"""

from .exceptions import CacheError, CacheFinalizeError
from .store import BuildCacheStore, FinalizeResult

__all__ = [
    "BuildCacheStore",
    "FinalizeResult",
    "CacheError",
    "CacheFinalizeError",
]
