"""tree-cache - in-memory subtree lookups over flat parent/child files."""

__version__ = "0.1.0"

from .errors import (
    ConfigError,
    DecodeError,
    InvalidRequest,
    OrderingError,
    SourceUnavailable,
    TreeCacheError,
)
from .models.tree import Node, Record, TreeCache
from .services.tree_service import TreeService

__all__ = [
    "ConfigError",
    "DecodeError",
    "InvalidRequest",
    "OrderingError",
    "SourceUnavailable",
    "TreeCacheError",
    "Node",
    "Record",
    "TreeCache",
    "TreeService",
]
