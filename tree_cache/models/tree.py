"""Tree data models for tree-cache."""

import json
from pathlib import Path
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


def canonical_id(value: Union[str, int]) -> str:
    """Normalize a node identifier to its canonical decimal text.

    Args:
        value: Identifier as read from a row or received in a request

    Returns:
        Canonical identifier (e.g. "007" -> "7")

    Raises:
        ValueError: If the value is not a base-10 integer
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid node id: {value!r}")
    if isinstance(value, int):
        return str(value)
    text = str(value).strip()
    try:
        return str(int(text, 10))
    except ValueError:
        raise ValueError(f"Invalid node id: {value!r}") from None


class Node(BaseModel):
    """A tree node; leaves carry an empty children list."""

    id: str
    name: str
    children: List["Node"] = Field(default_factory=list)

    def walk(self):
        """Yield this node and all descendants depth-first, parents first."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def iter_json(self):
        """Yield the JSON encoding of this subtree in chunks.

        Encodes with an explicit stack, so chains deeper than the recursion
        limits of pydantic-core and the json module still serialize.
        """
        stack = [self]
        while stack:
            item = stack.pop()
            if isinstance(item, str):
                yield item
                continue
            yield (
                f'{{"id": {json.dumps(item.id)}, "name": {json.dumps(item.name)}, '
                '"children": ['
            )
            stack.append("]}")
            for i in reversed(range(len(item.children))):
                stack.append(item.children[i])
                if i:
                    stack.append(", ")

    def to_json(self) -> str:
        """Encode this subtree as a JSON object."""
        return "".join(self.iter_json())


class Record(BaseModel):
    """A single decoded row: id, name and optional parent id."""

    id: str
    name: str
    parent: Optional[str] = Field(
        default=None, description="Parent id, None for root rows"
    )
    line: Optional[int] = Field(
        default=None, description="Source line number the row was read from"
    )

    model_config = ConfigDict(frozen=True)

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v):
        """Ids must be integers."""
        return canonical_id(v)

    @field_validator("parent", mode="before")
    @classmethod
    def validate_parent(cls, v):
        """Empty parent means root."""
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        return canonical_id(v)

    @property
    def key(self) -> int:
        """Numeric ordering key of the row."""
        return int(self.id)


class TreeCache(BaseModel):
    """Materialized tree of one source plus its build metadata.

    Instances are immutable; the cache store replaces them wholesale so a
    reader never observes fields from two different builds.
    """

    source_name: str
    source_path: Path
    source_modified_at: Optional[float] = Field(
        default=None, description="Source mtime recorded when the build started"
    )
    cache_built_at: Optional[float] = Field(
        default=None, description="Timestamp the build completed"
    )
    nodes_by_id: Dict[str, Node] = Field(default_factory=dict)
    refresh_in_progress: bool = False

    model_config = ConfigDict(frozen=True)

    @classmethod
    def empty(cls, source_name: str, source_path: Union[str, Path]) -> "TreeCache":
        """Create the never-built cache every source starts with."""
        return cls(source_name=source_name, source_path=Path(source_path))

    @property
    def is_built(self) -> bool:
        return self.cache_built_at is not None
