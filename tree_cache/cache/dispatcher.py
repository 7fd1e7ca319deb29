"""Bounded background refresh of source caches.

Each refresh is a full build of one source running on a thread pool.
Admission is controlled by the cache store: a refresh is silently deferred
when the global ceiling is reached or the source is already being rebuilt.
Completion is delivered through the task's future into the store's commit
path.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from pathlib import Path
from typing import Callable, Dict, Optional

from ..models.tree import Node, TreeCache
from ..utils.row_stream import RowStream, last_modified
from .builder import build_full
from .store import CacheStore

logger = logging.getLogger(__name__)

Builder = Callable[[Path], Dict[str, Node]]


class RefreshDispatcher:
    """Runs full rebuilds in the background, at most one per source."""

    def __init__(
        self,
        store: CacheStore,
        max_workers: int = 100,
        builder: Optional[Builder] = None,
        delimiter: str = ",",
        encoding: str = "utf-8",
        validate_order: bool = True,
    ):
        """Initialize refresh dispatcher.

        Args:
            store: Cache store receiving rebuilt caches
            max_workers: Maximum concurrently active refreshes (0 disables)
            builder: Callable building the id -> Node map of a file
                (default: stream the file and run a full build)
            delimiter: Column delimiter of source files
            encoding: Encoding of source files
            validate_order: Reject sources whose ids are not increasing
        """
        if max_workers < 0:
            raise ValueError("max_workers must be >= 0")
        self.store = store
        self.max_workers = max_workers
        self.delimiter = delimiter
        self.encoding = encoding
        self.validate_order = validate_order
        self._builder = builder or self._build_from_file
        self._executor: Optional[ThreadPoolExecutor] = None
        self._executor_lock = threading.Lock()
        self._idle = threading.Condition()
        self._closed = False

    @property
    def enabled(self) -> bool:
        """Check if background refreshing is enabled."""
        return self.max_workers > 0

    def start(self) -> None:
        """Start background executor."""
        with self._executor_lock:
            if self._executor is None and self.enabled:
                self._executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix="tree-refresh",
                )
                self._closed = False

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting refreshes and optionally wait for running ones."""
        with self._executor_lock:
            executor, self._executor = self._executor, None
            self._closed = True
        if executor:
            executor.shutdown(wait=wait)

    def request_refresh(self, source: str) -> bool:
        """Schedule a background rebuild of one source.

        Args:
            source: Source name

        Returns:
            True if a rebuild was started, False if it was deferred
            (ceiling reached, source already refreshing, or disabled)
        """
        if not self.enabled:
            return False
        if not self.store.try_begin_refresh(source, self.max_workers):
            logger.debug("Refresh of %s deferred", source)
            return False

        with self._executor_lock:
            executor = self._executor
            if executor is None and not self._closed:
                self._executor = executor = ThreadPoolExecutor(
                    max_workers=self.max_workers,
                    thread_name_prefix="tree-refresh",
                )
            try:
                if executor is None:
                    raise RuntimeError("dispatcher is shut down")
                future = executor.submit(self._run, source)
            except RuntimeError:
                self._release(source)
                logger.debug("Refresh of %s rejected: dispatcher is shut down", source)
                return False

        logger.info("Refreshing cache for %s", source)
        future.add_done_callback(partial(self._complete, source))
        return True

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no refresh is active.

        Args:
            timeout: Maximum seconds to wait (None waits forever)

        Returns:
            True if idle, False if the timeout expired
        """
        with self._idle:
            return self._idle.wait_for(
                lambda: self.store.active_refreshes == 0, timeout=timeout
            )

    def _run(self, source: str) -> TreeCache:
        """Rebuild a source's cache (runs in worker thread)."""
        path = self.store.path_for(source)
        modified_at = last_modified(path, source)
        nodes = self._builder(path)
        return TreeCache(
            source_name=source,
            source_path=path,
            source_modified_at=modified_at,
            cache_built_at=time.time(),
            nodes_by_id=nodes,
            refresh_in_progress=True,
        )

    def _build_from_file(self, path: Path) -> Dict[str, Node]:
        stream = RowStream(path, delimiter=self.delimiter, encoding=self.encoding)
        return build_full(stream, validate_order=self.validate_order)

    def _complete(self, source: str, future: Future) -> None:
        """Commit a finished rebuild, then release the refresh slot."""
        try:
            error = future.exception()
            if error is None:
                cache = future.result()
                self.store.put(source, cache)
                logger.info(
                    "Cache for %s rebuilt with %d node(s)",
                    source,
                    len(cache.nodes_by_id),
                )
            else:
                logger.error("Refresh of %s failed: %s", source, error)
        finally:
            self._release(source)

    def _release(self, source: str) -> None:
        self.store.finish_refresh(source)
        with self._idle:
            self._idle.notify_all()
