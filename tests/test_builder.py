"""Tests for single-pass tree construction."""

from typing import List

import pytest
from hypothesis import given, settings, strategies as st

from tree_cache.cache.builder import (
    SubtreeScope,
    build_full,
    build_index,
    build_subtree,
)
from tree_cache.errors import OrderingError
from tree_cache.models.tree import Record
from tree_cache.utils.row_stream import RowStream


def records(*rows) -> List[Record]:
    return [
        Record(id=i, name=name, parent=parent, line=n + 2)
        for n, (i, name, parent) in enumerate(rows)
    ]


TREE1 = records(("1", "root", ""), ("2", "a", "1"), ("3", "b", "1"), ("4", "c", "2"))


class CountingStream:
    """Iterable that records how many items were consumed."""

    def __init__(self, items):
        self.items = items
        self.consumed = 0

    def __iter__(self):
        for item in self.items:
            self.consumed += 1
            yield item


@st.composite
def ordered_forests(draw):
    """Records with increasing ids whose parents always precede them."""
    count = draw(st.integers(min_value=1, max_value=40))
    gaps = draw(st.lists(st.integers(1, 5), min_size=count, max_size=count))
    ids = []
    current = 0
    for gap in gaps:
        current += gap
        ids.append(current)

    rows = []
    for index, node_id in enumerate(ids):
        if index == 0 or draw(st.integers(0, 4)) == 0:
            parent = ""
        else:
            parent = str(draw(st.sampled_from(ids[:index])))
        rows.append((str(node_id), f"n{node_id}", parent))
    return records(*rows)


class TestFullBuild:
    """Tests for full builds."""

    def test_wires_children_in_stream_order(self):
        nodes = build_full(TREE1)

        assert set(nodes) == {"1", "2", "3", "4"}
        root = nodes["1"]
        assert [c.id for c in root.children] == ["2", "3"]
        assert [c.id for c in root.children[0].children] == ["4"]
        assert root.children[1].children == []

    def test_children_are_shared_with_index(self):
        nodes = build_full(TREE1)
        assert nodes["1"].children[0] is nodes["2"]

    def test_multiple_roots(self):
        nodes = build_full(records(("1", "x", ""), ("2", "y", ""), ("3", "z", "2")))
        assert nodes["1"].children == []
        assert [c.id for c in nodes["2"].children] == ["3"]

    def test_missing_parent_leaves_node_unattached(self):
        nodes = build_full(records(("1", "root", ""), ("3", "orphan", "2")))

        assert "3" in nodes
        assert nodes["1"].children == []

    def test_forward_parent_reference_is_not_attached(self):
        # The parent appears after its child: ordering assumption violated
        nodes = build_full(records(("1", "child", "2"), ("2", "parent", "")))

        assert nodes["2"].children == []
        assert nodes["1"].children == []

    def test_empty_stream(self):
        assert build_full([]) == {}

    def test_from_row_stream(self, tree1):
        nodes = build_full(RowStream(tree1))
        assert [c.name for c in nodes["1"].children] == ["a", "b"]


class TestScopedBuild:
    """Tests for scoped builds."""

    def test_sample_tree(self):
        root = build_subtree(TREE1, "1")

        assert root.model_dump() == {
            "id": "1",
            "name": "root",
            "children": [
                {
                    "id": "2",
                    "name": "a",
                    "children": [{"id": "4", "name": "c", "children": []}],
                },
                {"id": "3", "name": "b", "children": []},
            ],
        }

    def test_inner_node(self):
        node = build_subtree(TREE1, "2")

        assert node.name == "a"
        assert [c.id for c in node.children] == ["4"]

    def test_leaf(self):
        node = build_subtree(TREE1, 4)
        assert node.children == []

    def test_not_found(self):
        assert build_subtree(TREE1, "99") is None

    def test_only_subtree_is_materialized(self):
        rows = records(
            ("1", "root", ""),
            ("2", "a", "1"),
            ("3", "b", "1"),
            ("4", "a1", "2"),
            ("5", "b1", "3"),
            ("6", "b2", "3"),
        )
        nodes = build_index(rows, scope=SubtreeScope("2"))
        assert set(nodes) == {"2", "4"}

    def test_stops_once_root_cannot_appear(self):
        rows = records(("1", "x", ""), ("3", "y", ""), ("4", "z", "3"), ("5", "w", "4"))
        stream = CountingStream(rows)

        assert build_subtree(stream, "2") is None
        assert stream.consumed == 2

    def test_no_early_stop_without_order_validation(self):
        rows = records(("1", "x", ""), ("3", "y", ""), ("2", "late", ""))
        stream = CountingStream(rows)

        node = build_subtree(stream, "2", validate_order=False)
        assert node.name == "late"
        assert stream.consumed == 3

    @given(ordered_forests(), st.data())
    @settings(max_examples=100)
    def test_matches_full_build(self, rows, data):
        """A scoped build equals the same subtree taken from a full build."""
        root_id = data.draw(st.sampled_from([r.id for r in rows]))

        full = build_full(rows)
        scoped = build_subtree(rows, root_id)

        assert scoped is not None
        assert scoped.model_dump() == full[root_id].model_dump()

    @given(ordered_forests())
    @settings(max_examples=50)
    def test_every_node_has_at_most_one_parent(self, rows):
        nodes = build_full(rows)
        seen = [child.id for node in nodes.values() for child in node.children]

        assert len(seen) == len(set(seen))
        assert len(seen) == sum(1 for r in rows if r.parent is not None)


class TestOrderValidation:
    """Tests for the strictly-increasing id precondition."""

    def test_decreasing_id_rejected(self):
        rows = records(("1", "root", ""), ("3", "a", "1"), ("2", "b", "1"))
        with pytest.raises(OrderingError) as info:
            build_full(rows)
        assert info.value.line == 4

    def test_duplicate_id_rejected(self):
        rows = records(("1", "root", ""), ("1", "again", ""))
        with pytest.raises(OrderingError):
            build_full(rows)

    def test_scoped_build_rejects_disorder_before_root(self):
        rows = records(("5", "x", ""), ("3", "y", ""), ("7", "z", ""))
        with pytest.raises(OrderingError):
            build_subtree(rows, "7")

    def test_validation_can_be_disabled(self):
        rows = records(("1", "root", ""), ("3", "a", "1"), ("2", "b", "1"))
        nodes = build_full(rows, validate_order=False)
        assert [c.id for c in nodes["1"].children] == ["3", "2"]

    def test_error_names_source_path(self, make_source):
        path = make_source("unordered", [("2", "a", ""), ("1", "b", "")])
        with pytest.raises(OrderingError) as info:
            build_full(RowStream(path))
        assert str(path) in str(info.value)

    @given(ordered_forests())
    @settings(max_examples=50)
    def test_reversed_stream_rejected(self, rows):
        if len(rows) < 2:
            return
        with pytest.raises(OrderingError):
            build_full(list(reversed(rows)))
