"""In-memory tree cache module for tree-cache.

Provides per-source caching of trees built from flat row files with:
- Single-pass streaming construction (full or scoped to one subtree)
- Staleness detection using file mtime tracking
- Bounded background refresh, at most one rebuild per source
"""

from .builder import SubtreeScope, build_full, build_index, build_subtree
from .store import CacheStore, is_stale
from .dispatcher import RefreshDispatcher
from .watcher import SourceWatcher

__all__ = [
    "SubtreeScope",
    "build_full",
    "build_index",
    "build_subtree",
    "CacheStore",
    "is_stale",
    "RefreshDispatcher",
    "SourceWatcher",
]
