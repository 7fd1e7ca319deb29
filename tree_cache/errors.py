"""Exception hierarchy for tree-cache.

All failures raised by the caching engine are per-source or per-request;
none of them should bring down the serving process.
"""

from pathlib import Path
from typing import Optional, Union


class TreeCacheError(Exception):
    """Base class for all tree-cache errors."""

    #: Short machine-readable reason used by the HTTP error envelope.
    reason = "error"


class ConfigError(TreeCacheError):
    """Configuration file or environment override is invalid."""

    reason = "config_error"


class InvalidRequest(TreeCacheError):
    """Request parameters failed validation (e.g. non-numeric node id)."""

    reason = "invalid_request"


class SourceUnavailable(TreeCacheError):
    """Source is not configured or its backing file does not exist."""

    reason = "source_unavailable"

    def __init__(self, source: str, path: Optional[Union[str, Path]] = None):
        self.source = source
        self.path = path
        if path is None:
            message = f"Unknown source '{source}'"
        else:
            message = f"Source '{source}' is unavailable: {path} does not exist"
        super().__init__(message)


class DecodeError(TreeCacheError):
    """A row in the source could not be decoded; the whole pass is aborted."""

    reason = "decode_error"

    def __init__(self, path: Union[str, Path], line: Optional[int], detail: str):
        self.path = path
        self.line = line
        self.detail = detail
        location = f"{path}:{line}" if line is not None else str(path)
        super().__init__(f"{location}: {detail}")


class OrderingError(DecodeError):
    """Row ids are not strictly increasing in stream order."""

    reason = "ordering_error"
