"""Single-pass tree construction from a record stream.

The builder assumes the stream is topologically ordered: every record's
parent has already been emitted, and ids are strictly increasing. A record
whose parent has not been seen yet is kept in the id map but never attached
to a parent. Buffering the whole stream to fix this up would defeat the
point of streaming, so the input order is the caller's responsibility.

Full and scoped builds share one pass; a ``SubtreeScope`` restricts which
records are admitted and tells the pass when it can stop early.
"""

import logging
from typing import Dict, Iterable, Optional, Union

from ..errors import OrderingError
from ..models.tree import Node, Record, canonical_id

logger = logging.getLogger(__name__)


class SubtreeScope:
    """Admission rules for a build rooted at a single id."""

    def __init__(self, root_id: Union[str, int]):
        self.root_id = canonical_id(root_id)
        self.root_key = int(self.root_id)

    def admits(self, record: Record, nodes: Dict[str, Node]) -> bool:
        """Check whether a record belongs to the subtree.

        Only the root and records whose parent is already admitted get in,
        so the resulting map is exactly the subtree.
        """
        if record.key == self.root_key:
            return True
        return (
            record.key > self.root_key
            and record.parent is not None
            and record.parent in nodes
        )

    def exhausted(self, record: Record, nodes: Dict[str, Node]) -> bool:
        """Check whether the root can no longer appear in the stream."""
        return record.key > self.root_key and self.root_id not in nodes


def build_index(
    records: Iterable[Record],
    scope: Optional[SubtreeScope] = None,
    validate_order: bool = True,
) -> Dict[str, Node]:
    """Build an id -> Node map in one pass over a record stream.

    Args:
        records: Record stream in topological order
        scope: Restrict the build to one subtree (None builds everything)
        validate_order: Reject streams whose ids are not strictly increasing

    Returns:
        Map of node id to node, children wired in stream order

    Raises:
        OrderingError: If validate_order is set and an id does not increase
    """
    source = getattr(records, "path", "<stream>")
    nodes: Dict[str, Node] = {}
    previous: Optional[Record] = None
    unattached = 0

    for record in records:
        if validate_order:
            if previous is not None and record.key <= previous.key:
                raise OrderingError(
                    source,
                    record.line,
                    f"id {record.id} follows id {previous.id}; "
                    "ids must be strictly increasing",
                )
            previous = record

        if scope is not None:
            # Early stop is only sound when ordering is enforced
            if validate_order and scope.exhausted(record, nodes):
                break
            if not scope.admits(record, nodes):
                continue

        node = Node(id=record.id, name=record.name)
        nodes[record.id] = node

        if record.parent is None:
            continue
        parent = nodes.get(record.parent)
        if parent is not None:
            parent.children.append(node)
        elif scope is None:
            unattached += 1

    if unattached:
        logger.debug(
            "%s: %d record(s) reference a parent not seen earlier in the stream",
            source,
            unattached,
        )
    return nodes


def build_full(
    records: Iterable[Record], validate_order: bool = True
) -> Dict[str, Node]:
    """Build the complete id -> Node map of a source."""
    return build_index(records, validate_order=validate_order)


def build_subtree(
    records: Iterable[Record],
    root_id: Union[str, int],
    validate_order: bool = True,
) -> Optional[Node]:
    """Build only the subtree rooted at ``root_id``.

    Returns:
        Root node of the subtree, or None if the id never appears
    """
    scope = SubtreeScope(root_id)
    nodes = build_index(records, scope=scope, validate_order=validate_order)
    return nodes.get(scope.root_id)
