"""Data model for NDE entries, columns and assembled tracks."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Union

from ndextract.errors import SchemaConflict

# Reserved entry id marking the head/tail of a linked structure
SENTINEL_ID = 0xFF

# Row position carried by entries that do not belong to any row
NOT_A_ROW = 0xFFFFFFFF

# Type tag of entries with no type (sentinels)
NO_TYPE = -1

# id, total_size, prev_offset, next_offset, row_position, type_tag
ENTRY_HEADER_FORMAT = "<BHIIIb"
ENTRY_HEADER_SIZE = 16

INDEX_SIGNATURE = b"NDEINDEX"
TABLE_SIGNATURE = b"NDETABLE"


class FieldType(Enum):
    """NDE field types, keeping the engine's numeric constants."""

    COLUMN = 0
    INDEX = 1
    REDIRECTOR = 2
    STRING = 3
    INTEGER = 4
    BOOLEAN = 5
    BINARY = 6
    GUID = 7
    PRIVATE = 8
    FLOAT = 9
    DATETIME = 10
    LENGTH = 11
    FILENAME = 12
    INT64 = 13
    BINARY32 = 14
    INT128 = 15

    @property
    def size_bytes(self) -> int | None:
        """Return the payload width of a fixed-width type, None for variable length."""
        return _FIXED_WIDTHS.get(self)

    @property
    def is_value(self) -> bool:
        """Return whether a column of this type can carry field values."""
        return self not in _STRUCTURAL_TYPES

    @property
    def is_text(self) -> bool:
        return self in (FieldType.STRING, FieldType.FILENAME)

    @classmethod
    def from_tag(cls, tag: int) -> FieldType | None:
        """Look up a type tag, returning None when it is not a known type."""
        try:
            return cls(tag)
        except ValueError:
            return None


_FIXED_WIDTHS: dict[FieldType, int] = {
    FieldType.INTEGER: 4,
    FieldType.BOOLEAN: 1,
    FieldType.GUID: 16,
    FieldType.FLOAT: 4,
    FieldType.DATETIME: 4,
    FieldType.LENGTH: 4,
    FieldType.INT64: 8,
    FieldType.INT128: 16,
    FieldType.REDIRECTOR: 4,
}

_STRUCTURAL_TYPES = frozenset(
    {FieldType.COLUMN, FieldType.INDEX, FieldType.REDIRECTOR, FieldType.PRIVATE}
)


@dataclass(frozen=True)
class StructureHeader:
    """Header shared by the index and data files."""

    signature: bytes
    row_count: int
    heads: tuple[int, ...]

    @property
    def structure_count(self) -> int:
        return len(self.heads)

    @property
    def size_bytes(self) -> int:
        return 16 + 4 * len(self.heads)


@dataclass(frozen=True)
class RawEntry:
    """One physical entry as found on disk.

    The payload is a copy of the bytes following the 16-byte header, so a
    RawEntry keeps no reference to the file it was read from.
    """

    offset: int
    id: int
    total_size: int
    prev_offset: int
    next_offset: int
    row_position: int
    type_tag: int
    payload: bytes = b""

    @property
    def is_sentinel(self) -> bool:
        return self.id == SENTINEL_ID or (
            self.row_position == NOT_A_ROW and self.type_tag == NO_TYPE
        )

    @property
    def has_row(self) -> bool:
        return self.row_position != NOT_A_ROW

    @property
    def field_type(self) -> FieldType | None:
        return FieldType.from_tag(self.type_tag)


@dataclass(frozen=True)
class ColumnSchema:
    """A resolved column: id, declared type and optional name."""

    id: int
    declared_type: FieldType
    name: str | None = None
    offset: int | None = field(default=None, compare=False)

    @property
    def key(self) -> str:
        """Return the name used for this column in assembled tracks."""
        return self.name if self.name else f"column_{self.id}"


@dataclass(frozen=True)
class Sentinel:
    """Structural head/tail marker; contributes neither schema nor data."""

    entry: RawEntry


@dataclass(frozen=True)
class ColumnDescriptor:
    """An index-structure entry declaring a column."""

    entry: RawEntry
    name: str | None


@dataclass(frozen=True)
class FieldValue:
    """A data-structure entry holding one column's value for one row."""

    entry: RawEntry


ClassifiedEntry = Union[Sentinel, ColumnDescriptor, FieldValue]


@dataclass(frozen=True)
class TypedValue:
    """A decoded field value tagged with its kind and row position."""

    kind: FieldType
    value: Any
    row_position: int
    column_id: int
    offset: int | None = field(default=None, compare=False)


class Track(Mapping[str, Any]):
    """One assembled library record.

    Behaves as a read-only mapping from column key to plain Python value; the
    TypedValue for each column is available through ``fields``.
    """

    __slots__ = ("_row_position", "_fields")

    def __init__(self, row_position: int, fields: Mapping[str, TypedValue]) -> None:
        self._row_position = row_position
        self._fields = MappingProxyType(dict(fields))

    @property
    def row_position(self) -> int:
        return self._row_position

    @property
    def fields(self) -> Mapping[str, TypedValue]:
        return self._fields

    def __getitem__(self, key: str) -> Any:
        return self._fields[key].value

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Track):
            return NotImplemented
        return self._row_position == other._row_position and dict(self._fields) == dict(
            other._fields
        )

    def __hash__(self) -> int:
        return hash((self._row_position, tuple(sorted(self._fields))))

    def __repr__(self) -> str:
        values = ", ".join(f"{k}={v.value!r}" for k, v in self._fields.items())
        return f"Track(row={self._row_position}, {values})"


@dataclass(frozen=True)
class Issue:
    """A non-fatal condition recorded while reading."""

    kind: str
    message: str
    offset: int | None = None


@dataclass
class ParseSummary:
    """Everything skipped or suspicious during one read."""

    issues: list[Issue] = field(default_factory=list)
    skipped_columns: int = 0
    skipped_entries: int = 0
    skipped_values: int = 0
    missing_values: int = 0
    warnings: int = 0

    def skip_column(self, message: str, offset: int | None = None) -> None:
        self.skipped_columns += 1
        self.issues.append(Issue("column", message, offset))

    def skip_entry(self, message: str, offset: int | None = None) -> None:
        self.skipped_entries += 1
        self.issues.append(Issue("entry", message, offset))

    def skip_value(self, message: str, offset: int | None = None) -> None:
        self.skipped_values += 1
        self.issues.append(Issue("value", message, offset))

    def note_missing(self, column_key: str, rows: int) -> None:
        """Record that a column has no value for ``rows`` tracks."""
        self.missing_values += rows
        self.issues.append(Issue("missing", f"column {column_key} has no value for {rows} rows"))

    def warn(self, message: str, offset: int | None = None) -> None:
        self.warnings += 1
        self.issues.append(Issue("warning", message, offset))

    def merge(self, other: ParseSummary) -> None:
        """Fold another summary's records into this one."""
        self.issues.extend(other.issues)
        self.skipped_columns += other.skipped_columns
        self.skipped_entries += other.skipped_entries
        self.skipped_values += other.skipped_values
        self.missing_values += other.missing_values
        self.warnings += other.warnings

    @property
    def clean(self) -> bool:
        return not self.issues

    def describe(self) -> str:
        return (
            f"{self.skipped_columns} columns, {self.skipped_entries} entries and "
            f"{self.skipped_values} values skipped; {self.missing_values} fields missing; "
            f"{self.warnings} warnings"
        )


@dataclass(frozen=True)
class Library:
    """The ordered collection of tracks produced by one read."""

    tracks: tuple[Track, ...]
    columns: tuple[ColumnSchema, ...] = ()
    summary: ParseSummary = field(default_factory=ParseSummary, compare=False)

    def __len__(self) -> int:
        return len(self.tracks)

    def __iter__(self) -> Iterator[Track]:
        return iter(self.tracks)

    def __getitem__(self, index: int) -> Track:
        return self.tracks[index]


def column_name(entry: RawEntry) -> str | None:
    """Decode the length-prefixed name carried by a column descriptor."""
    if not entry.payload:
        return None
    length = entry.payload[0]
    if length == 0:
        return None
    raw = entry.payload[1 : 1 + length]
    if len(raw) < length:
        raise SchemaConflict(
            "column name overruns its descriptor",
            column_id=entry.id,
            offset=entry.offset,
            expected=length,
            observed=len(raw),
        )
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise SchemaConflict(
            f"column name is not valid text: {e.reason}", column_id=entry.id, offset=entry.offset
        ) from e


def classify(entry: RawEntry, in_index: bool) -> ClassifiedEntry:
    """Resolve what a physical entry means from where it was found.

    Entries in the index file are column descriptors, entries in the data
    file are field values; sentinels are recognised in either.
    """
    if entry.is_sentinel:
        return Sentinel(entry)
    if in_index:
        return ColumnDescriptor(entry, column_name(entry))
    return FieldValue(entry)
