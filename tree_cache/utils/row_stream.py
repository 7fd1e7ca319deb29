"""Streaming decoder for flat delimited tree sources.

A source is a delimited text file with a header row naming at least the
``id``, ``name`` and ``parent`` columns::

    id,name,parent
    1,root,
    2,a,1

Rows are decoded lazily so gigabyte-sized files never have to be held in
memory; each iteration over a ``RowStream`` reopens the file.
"""

import csv
import os
from pathlib import Path
from typing import Iterator, Optional, TextIO, Union

from pydantic import ValidationError

from ..errors import DecodeError, SourceUnavailable
from ..models.tree import Record

REQUIRED_COLUMNS = ("id", "name", "parent")


def exists(path: Union[str, Path]) -> bool:
    """Check whether a source file exists."""
    return Path(path).is_file()


def last_modified(path: Union[str, Path], source: Optional[str] = None) -> float:
    """Get the modification time of a source file.

    Args:
        path: Path to source file
        source: Source name used in the error message

    Returns:
        Modification time as a POSIX timestamp

    Raises:
        SourceUnavailable: If the file does not exist
    """
    try:
        return os.stat(path).st_mtime
    except FileNotFoundError:
        raise SourceUnavailable(source or Path(path).stem, path) from None


class RowStream:
    """Lazy, re-iterable sequence of ``Record`` objects read from a file."""

    def __init__(
        self,
        path: Union[str, Path],
        delimiter: str = ",",
        encoding: str = "utf-8",
        source: Optional[str] = None,
    ):
        """Initialize row stream.

        Args:
            path: Path to the delimited source file
            delimiter: Column delimiter
            encoding: File encoding
            source: Source name used in error messages (defaults to file stem)
        """
        self.path = Path(path)
        self.delimiter = delimiter
        self.encoding = encoding
        self.source = source or self.path.stem

    def __iter__(self) -> Iterator[Record]:
        # Opening happens eagerly so a missing file fails here rather than
        # on the first next() call.
        try:
            handle = open(self.path, "r", encoding=self.encoding, newline="")
        except (FileNotFoundError, IsADirectoryError):
            raise SourceUnavailable(self.source, self.path) from None
        return self._records(handle)

    def _records(self, handle: TextIO) -> Iterator[Record]:
        with handle:
            reader = csv.DictReader(handle, delimiter=self.delimiter)
            try:
                self._check_header(reader.fieldnames)
                for row in reader:
                    yield self._decode(row, reader.line_num)
            except csv.Error as e:
                raise DecodeError(self.path, reader.line_num, str(e)) from e
            except UnicodeDecodeError as e:
                raise DecodeError(self.path, reader.line_num, str(e)) from e

    def _check_header(self, fieldnames) -> None:
        if fieldnames is None:
            # Empty file: no header, no rows
            return
        missing = [c for c in REQUIRED_COLUMNS if c not in fieldnames]
        if missing:
            raise DecodeError(
                self.path, 1, f"missing column(s): {', '.join(missing)}"
            )

    def _decode(self, row: dict, line: int) -> Record:
        values = {column: row.get(column) for column in REQUIRED_COLUMNS}
        short = [column for column, value in values.items() if value is None]
        if short:
            raise DecodeError(self.path, line, f"row has no value for {short[0]}")
        try:
            return Record(
                id=values["id"],
                name=values["name"],
                parent=values["parent"],
                line=line,
            )
        except ValidationError as e:
            detail = "; ".join(err["msg"] for err in e.errors())
            raise DecodeError(self.path, line, detail) from None
