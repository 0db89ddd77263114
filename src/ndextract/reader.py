"""Reading a whole NDE table: index file plus data file."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from ndextract.config import ParseConfig
from ndextract.errors import SchemaConflict
from ndextract.fields import decode_chain
from ndextract.schema import resolve
from ndextract.source import ByteSource
from ndextract.tracks import assemble
from ndextract.types import (
    INDEX_SIGNATURE,
    TABLE_SIGNATURE,
    ColumnSchema,
    Library,
    ParseSummary,
    RawEntry,
    StructureHeader,
    TypedValue,
)
from ndextract.walker import read_header, walk

logger = logging.getLogger(__name__)


class LibraryReader:
    """Reads the main table of a media library database.

    The index file's first structure declares the columns; every structure of
    the data file is a chain of field values. Both headers are validated on
    construction, the structures themselves only when walked.
    """

    def __init__(
        self, index: ByteSource, data: ByteSource, config: ParseConfig | None = None
    ) -> None:
        """Initialize a reader.

        Args:
            index: Contents of the index (.idx) file.
            data: Contents of the data (.dat) file.
            config: Parse settings; defaults to strict schema checks and
                lenient value decoding.
        """
        self.index = index
        self.data = data
        self.config = config or ParseConfig()
        self.index_header: StructureHeader = read_header(index, INDEX_SIGNATURE)
        self.data_header: StructureHeader = read_header(data, TABLE_SIGNATURE)
        logger.info("There are %d indices.", self.index_header.structure_count)

    @classmethod
    def open(
        cls, index_path: Path | str, data_path: Path | str, config: ParseConfig | None = None
    ) -> LibraryReader:
        """Read both files from disk and create a reader over them."""
        return cls(ByteSource.from_path(index_path), ByteSource.from_path(data_path), config)

    @classmethod
    def from_bytes(
        cls, index: bytes, data: bytes, config: ParseConfig | None = None
    ) -> LibraryReader:
        return cls(ByteSource(index, "<index>"), ByteSource(data, "<data>"), config)

    def _walk(self, source: ByteSource, head: int, include_sentinels: bool) -> Iterator[RawEntry]:
        return walk(
            source,
            head,
            max_entries=self.config.max_entries,
            include_sentinels=include_sentinels,
        )

    def index_structures(self, include_sentinels: bool = True) -> list[list[RawEntry]]:
        """Return the entries of every index-file structure, in file order."""
        return [
            list(self._walk(self.index, head, include_sentinels))
            for head in self.index_header.heads
        ]

    def data_structures(self, include_sentinels: bool = True) -> list[list[RawEntry]]:
        """Return the entries of every data-file structure, in file order."""
        return [
            list(self._walk(self.data, head, include_sentinels))
            for head in self.data_header.heads
        ]

    def columns(self, summary: ParseSummary | None = None) -> dict[int, ColumnSchema]:
        """Resolve the column table from the first index structure."""
        entries = self._walk(self.index, self.index_header.heads[0], False)
        return resolve(entries, strict=self.config.strict, summary=summary)

    def _bucket_entries(
        self, columns: dict[int, ColumnSchema], summary: ParseSummary
    ) -> dict[int, list[RawEntry]]:
        buckets: dict[int, list[RawEntry]] = {column_id: [] for column_id in columns}
        for head in self.data_header.heads:
            for entry in self._walk(self.data, head, False):
                if entry.id in buckets:
                    buckets[entry.id].append(entry)
                    continue
                if self.config.strict:
                    raise SchemaConflict(
                        "value for an undeclared column",
                        column_id=entry.id,
                        offset=entry.offset,
                    )
                logger.warning(
                    "skipping entry at %#06x for undeclared column %d", entry.offset, entry.id
                )
                summary.skip_entry(f"value for undeclared column {entry.id}", entry.offset)
        return buckets

    def _decode_columns(
        self,
        columns: dict[int, ColumnSchema],
        buckets: dict[int, list[RawEntry]],
        summary: ParseSummary,
    ) -> dict[int, list[TypedValue]]:
        def decode(column_id: int) -> tuple[list[TypedValue], ParseSummary]:
            local = ParseSummary()
            values = decode_chain(
                columns[column_id],
                buckets[column_id],
                strict=self.config.strict_values,
                summary=local,
            )
            return values, local

        column_ids = list(columns)
        if self.config.workers > 1 and len(column_ids) > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as pool:
                results = list(pool.map(decode, column_ids))
        else:
            results = [decode(column_id) for column_id in column_ids]

        values_by_column: dict[int, list[TypedValue]] = {}
        for column_id, (values, local) in zip(column_ids, results):
            values_by_column[column_id] = values
            summary.merge(local)
        return values_by_column

    def read(self) -> Library:
        """Parse both files into a Library.

        Raises:
            IoFailure, CorruptStructure: Always fatal.
            SchemaConflict, UnrecognizedType: Only when ``config.strict``;
                otherwise the offending column is skipped.
            DecodeFailure: Only when ``config.strict_values``; otherwise the
                value is left out of its track.

        Everything skipped is recorded in ``library.summary``.
        """
        summary = ParseSummary()
        columns = self.columns(summary)
        logger.info("There are %d columns.", len(columns))

        buckets = self._bucket_entries(columns, summary)
        values_by_column = self._decode_columns(columns, buckets, summary)

        declared = self.data_header.row_count
        if self.index_header.row_count and declared and self.index_header.row_count != declared:
            message = (
                f"index declares {self.index_header.row_count} rows, "
                f"data declares {declared}"
            )
            logger.warning(message)
            summary.warn(message)

        library = assemble(
            values_by_column,
            columns,
            strict=self.config.strict_values,
            expected_rows=declared or None,
            summary=summary,
        )
        if summary.clean:
            logger.debug("read completed without issues")
        else:
            logger.warning("read completed: %s", summary.describe())
        return library


def read_library(
    index_path: Path | str, data_path: Path | str, config: ParseConfig | None = None
) -> Library:
    """Read a library from its index and data files."""
    return LibraryReader.open(index_path, data_path, config).read()
