"""In-memory cache store for tree-cache.

Holds one ``TreeCache`` per configured source. Records are immutable and
replaced wholesale under a lock, so readers always see a consistent
snapshot.
"""

import threading
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..errors import SourceUnavailable
from ..models.tree import TreeCache
from ..utils.row_stream import last_modified


def is_stale(cache: Optional[TreeCache], current_mtime: float) -> bool:
    """Check whether a cache is older than its source.

    A never-built cache is always stale. Otherwise the cache is stale when
    the source was modified after the mtime recorded at build start; that
    mtime is never later than the build timestamp, so edits made while the
    build was running are caught as well.

    Args:
        cache: Cache snapshot (None counts as missing, hence stale)
        current_mtime: Current modification time of the source file

    Returns:
        True if the cache must be rebuilt
    """
    if cache is None or cache.cache_built_at is None:
        return True
    if cache.source_modified_at is None:
        return True
    return current_mtime > cache.source_modified_at


class CacheStore:
    """Thread-safe map of source name to ``TreeCache``."""

    def __init__(self, sources: Dict[str, Union[str, Path]]):
        """Initialize cache store with an empty cache for every source.

        Args:
            sources: Map of source name to backing file path
        """
        self._lock = threading.Lock()
        self._paths: Dict[str, Path] = {
            name: Path(path) for name, path in sources.items()
        }
        self._caches: Dict[str, TreeCache] = {
            name: TreeCache.empty(name, path) for name, path in self._paths.items()
        }
        self._active_refreshes = 0

    def __contains__(self, source: str) -> bool:
        return source in self._paths

    @property
    def sources(self) -> List[str]:
        """Get configured source names."""
        return list(self._paths)

    @property
    def active_refreshes(self) -> int:
        """Get number of refreshes currently in flight across all sources."""
        with self._lock:
            return self._active_refreshes

    def path_for(self, source: str) -> Path:
        """Get backing path of a source.

        Raises:
            SourceUnavailable: If the source is not configured
        """
        try:
            return self._paths[source]
        except KeyError:
            raise SourceUnavailable(source) from None

    # === Snapshots ===

    def get(self, source: str) -> Optional[TreeCache]:
        """Get current cache snapshot, or None for unknown sources."""
        with self._lock:
            return self._caches.get(source)

    def put(self, source: str, cache: TreeCache) -> None:
        """Replace a source's cache record atomically."""
        self.path_for(source)
        with self._lock:
            self._caches[source] = cache

    def is_stale(self, source: str) -> bool:
        """Check a source's cache against a fresh stat of its file.

        Raises:
            SourceUnavailable: If the source is unknown or its file is gone
        """
        path = self.path_for(source)
        current_mtime = last_modified(path, source)
        return is_stale(self.get(source), current_mtime)

    # === Refresh bookkeeping ===

    def is_refreshing(self, source: str) -> bool:
        cache = self.get(source)
        return cache is not None and cache.refresh_in_progress

    def mark_refreshing(self, source: str, value: bool) -> None:
        """Set the refresh flag of a source."""
        self.path_for(source)
        with self._lock:
            current = self._caches[source]
            self._caches[source] = current.model_copy(
                update={"refresh_in_progress": value}
            )

    def try_begin_refresh(self, source: str, ceiling: int) -> bool:
        """Claim a refresh slot for a source.

        Checking the ceiling and the per-source flag, setting the flag and
        incrementing the active counter happen in one critical section.

        Args:
            source: Source name
            ceiling: Maximum number of concurrently active refreshes

        Returns:
            True if the caller now owns the refresh, False if deferred
        """
        self.path_for(source)
        with self._lock:
            current = self._caches[source]
            if self._active_refreshes >= ceiling or current.refresh_in_progress:
                return False
            self._caches[source] = current.model_copy(
                update={"refresh_in_progress": True}
            )
            self._active_refreshes += 1
            return True

    def finish_refresh(self, source: str) -> None:
        """Release the refresh slot claimed by ``try_begin_refresh``."""
        with self._lock:
            current = self._caches[source]
            self._caches[source] = current.model_copy(
                update={"refresh_in_progress": False}
            )
            self._active_refreshes = max(0, self._active_refreshes - 1)
