"""File watcher that refreshes caches as soon as their sources change."""

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set

import watchfiles

logger = logging.getLogger(__name__)


class SourceWatcher:
    """Watches source directories and requests refreshes on change."""

    def __init__(
        self,
        sources: Dict[str, Path],
        on_change: Callable[[str], bool],
    ):
        """Initialize source watcher.

        Args:
            sources: Map of source name to backing file path
            on_change: Called with the source name of every changed file
        """
        self._by_path: Dict[Path, List[str]] = {}
        for name, path in sources.items():
            self._by_path.setdefault(Path(path).resolve(), []).append(name)
        self._on_change = on_change
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def directories(self) -> List[Path]:
        """Get existing directories containing configured sources."""
        dirs = {path.parent for path in self._by_path}
        return sorted(d for d in dirs if d.is_dir())

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start watching in a daemon thread."""
        if self.running:
            return
        directories = self.directories
        if not directories:
            logger.warning("No source directories exist; file watching disabled")
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_loop,
            args=(directories,),
            name="tree-watcher",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 1.0) -> None:
        """Stop the watcher thread."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None

    def sources_for(self, changes) -> Set[str]:
        """Map a batch of watchfiles changes to affected source names."""
        affected: Set[str] = set()
        for change_type, path in changes:
            if change_type == watchfiles.Change.deleted:
                continue
            affected.update(self._by_path.get(Path(path).resolve(), ()))
        return affected

    def _watch_loop(self, directories: List[Path]) -> None:
        try:
            for changes in watchfiles.watch(
                *directories,
                stop_event=self._stop_event,
                recursive=False,
            ):
                for source in sorted(self.sources_for(changes)):
                    logger.debug("Source %s changed on disk", source)
                    self._on_change(source)
        except Exception:
            logger.exception("File watcher stopped unexpectedly")
