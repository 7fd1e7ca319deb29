"""Query façade for tree-cache.

``TreeService`` is the single entry point request handlers use. It owns the
cache store and the refresh dispatcher; construct one at startup and close
it on shutdown.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..cache.builder import build_subtree
from ..cache.dispatcher import Builder, RefreshDispatcher
from ..cache.store import CacheStore, is_stale
from ..cache.watcher import SourceWatcher
from ..config import Config
from ..errors import InvalidRequest, SourceUnavailable
from ..models.tree import Node, canonical_id
from ..utils.row_stream import RowStream, exists, last_modified

logger = logging.getLogger(__name__)


class TreeService:
    """Serves subtree lookups from cache, falling back to scoped builds."""

    def __init__(
        self,
        sources: Dict[str, Union[str, Path]],
        max_workers: int = 100,
        delimiter: str = ",",
        encoding: str = "utf-8",
        validate_order: bool = True,
        watch: bool = False,
        builder: Optional[Builder] = None,
    ):
        """Initialize tree service.

        Args:
            sources: Map of source name to backing file path
            max_workers: Refresh ceiling W_MAX (0 disables background refresh)
            delimiter: Column delimiter of source files
            encoding: Encoding of source files
            validate_order: Reject sources whose ids are not increasing
            watch: Refresh caches when source files change on disk
            builder: Override for the full-build step (mainly for tests)
        """
        self.delimiter = delimiter
        self.encoding = encoding
        self.validate_order = validate_order
        self.store = CacheStore(sources)
        self.dispatcher = RefreshDispatcher(
            self.store,
            max_workers=max_workers,
            builder=builder,
            delimiter=delimiter,
            encoding=encoding,
            validate_order=validate_order,
        )
        self.watcher: Optional[SourceWatcher] = None
        if watch:
            self.watcher = SourceWatcher(
                {name: self.store.path_for(name) for name in self.store.sources},
                self.dispatcher.request_refresh,
            )

    @classmethod
    def from_config(
        cls, config: Config, base_dir: Optional[str] = None, **overrides
    ) -> "TreeService":
        """Create a service from loaded configuration.

        Args:
            config: Loaded configuration
            base_dir: Directory relative source paths are resolved against
            **overrides: Keyword arguments replacing configured values
        """
        options = dict(
            max_workers=config.refresh.max_workers,
            delimiter=config.build.delimiter,
            encoding=config.build.encoding,
            validate_order=config.build.validate_order,
            watch=config.refresh.watch,
        )
        options.update(overrides)
        return cls(config.resolve_sources(base_dir), **options)

    # === Lifecycle ===

    def start(self) -> None:
        """Start background refresh and file watching."""
        self.dispatcher.start()
        if self.watcher:
            self.watcher.start()

    def close(self, wait: bool = True) -> None:
        """Stop file watching and background refresh."""
        if self.watcher:
            self.watcher.stop()
        self.dispatcher.shutdown(wait=wait)

    def __enter__(self) -> "TreeService":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # === Queries ===

    @property
    def sources(self):
        return self.store.sources

    def stream(self, source: str) -> RowStream:
        """Open a row stream over a source's file."""
        return RowStream(
            self.store.path_for(source),
            delimiter=self.delimiter,
            encoding=self.encoding,
            source=source,
        )

    def lookup(self, source: str, node_id: Union[str, int]) -> Optional[Node]:
        """Get the subtree rooted at ``node_id``.

        Serves from cache when it is fresh. Otherwise schedules a background
        refresh and answers with a scoped build read straight from the file.

        Args:
            source: Source name
            node_id: Id of the subtree root

        Returns:
            Subtree root node, or None if the id does not exist

        Raises:
            InvalidRequest: If node_id is not an integer
            SourceUnavailable: If the source is unknown or its file is missing
            DecodeError: If the scoped build hits a malformed or unordered row
        """
        try:
            key = canonical_id(node_id)
        except ValueError as e:
            raise InvalidRequest(str(e)) from None

        path = self.store.path_for(source)
        current_mtime = last_modified(path, source)

        cache = self.store.get(source)
        if not is_stale(cache, current_mtime):
            return cache.nodes_by_id.get(key)

        self.dispatcher.request_refresh(source)
        return build_subtree(
            self.stream(source), key, validate_order=self.validate_order
        )

    def request_refresh(self, source: str) -> bool:
        """Trigger a background refresh of a source.

        Returns:
            True if a rebuild was started, False if it was deferred

        Raises:
            SourceUnavailable: If the source is unknown or its file is missing
        """
        path = self.store.path_for(source)
        if not exists(path):
            raise SourceUnavailable(source, path)
        return self.dispatcher.request_refresh(source)

    def warm(self, timeout: Optional[float] = None) -> Dict[str, bool]:
        """Refresh every available source and wait for the rebuilds.

        Returns:
            Dict of source name -> whether a rebuild was started
        """
        scheduled = {}
        for source in self.store.sources:
            if exists(self.store.path_for(source)):
                scheduled[source] = self.dispatcher.request_refresh(source)
            else:
                logger.warning("Skipping %s: source file is missing", source)
                scheduled[source] = False
        self.dispatcher.wait_idle(timeout)
        return scheduled

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Dict with per-source cache status and refresh counters
        """
        sources = {}
        for source in self.store.sources:
            path = self.store.path_for(source)
            cache = self.store.get(source)
            try:
                stale = is_stale(cache, last_modified(path, source))
                available = True
            except SourceUnavailable:
                stale, available = True, False
            sources[source] = {
                "path": str(path),
                "exists": available,
                "nodes": len(cache.nodes_by_id),
                "source_modified_at": cache.source_modified_at,
                "cache_built_at": cache.cache_built_at,
                "stale": stale,
                "refreshing": cache.refresh_in_progress,
            }

        return {
            "sources": sources,
            "active_refreshes": self.store.active_refreshes,
            "max_workers": self.dispatcher.max_workers,
        }
