"""Shared fixtures for tree-cache tests."""

import csv
from pathlib import Path
from typing import Iterable, Sequence

import pytest

TREE1_ROWS = [
    ("1", "root", ""),
    ("2", "a", "1"),
    ("3", "b", "1"),
    ("4", "c", "2"),
]


def chain_rows(depth: int):
    """Rows of a single path 1 -> 2 -> ... -> depth."""
    return [(str(i), f"n{i}", str(i - 1) if i > 1 else "") for i in range(1, depth + 1)]


def write_rows(
    path: Path,
    rows: Iterable[Sequence[str]],
    header: Sequence[str] = ("id", "name", "parent"),
) -> Path:
    with open(path, "w", encoding="utf-8", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(header)
        writer.writerows(rows)
    return path


@pytest.fixture
def make_source(tmp_path):
    """Factory writing a CSV source file under tmp_path."""

    def factory(name: str, rows, header=("id", "name", "parent")) -> Path:
        return write_rows(tmp_path / f"{name}.csv", rows, header)

    return factory


@pytest.fixture
def tree1(make_source) -> Path:
    """The four-node sample tree: root -> (a -> c, b)."""
    return make_source("tree1", TREE1_ROWS)
