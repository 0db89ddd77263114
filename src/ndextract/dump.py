"""Human-readable trace of the raw structures in an NDE table."""

from __future__ import annotations

import logging
import sys
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, TextIO

from ndextract.errors import NdeError
from ndextract.export import record_json, record_sexp
from ndextract.fields import decode_payload
from ndextract.reader import LibraryReader
from ndextract.source import ByteSource
from ndextract.types import NOT_A_ROW, FieldType, RawEntry, column_name
from ndextract.walker import walk

logger = logging.getLogger(__name__)


class DumpFormat(Enum):
    """How each entry of the trace is written."""

    DISPLAY = "display"
    JSON = "json"
    SEXP = "sexp"

    @classmethod
    def parse(cls, name: str) -> DumpFormat:
        try:
            return cls(name.lower())
        except ValueError:
            raise ValueError(
                f"couldn't interpret {name!r} as a format (expected one of: "
                f"{', '.join(f.value for f in cls)})"
            ) from None


def format_value(value: Any, max_width: int = 60) -> str:
    """Format a decoded value for display."""
    if isinstance(value, bool):
        return "true" if value else "false"
    elif isinstance(value, float):
        return f"{value:.6g}"
    elif isinstance(value, datetime):
        return value.isoformat()
    elif isinstance(value, uuid.UUID):
        return f"{{{value}}}"
    elif isinstance(value, (bytes, bytearray)):
        text = bytes(value).hex()
        if len(text) > max_width:
            return text[: max_width - 3] + "..."
        return text
    elif isinstance(value, str):
        if len(value) > max_width:
            return repr(value[: max_width - 3] + "...")
        return repr(value)
    return str(value)


def _type_name(type_tag: int) -> str:
    field_type = FieldType.from_tag(type_tag)
    if field_type is not None:
        return field_type.name
    return "NONE" if type_tag == -1 else f"?{type_tag}"


def format_entry(entry: RawEntry, in_index: bool) -> str:
    """Format one entry as a single line of the trace."""
    row = "-" if entry.row_position == NOT_A_ROW else str(entry.row_position)
    line = (
        f"ID {entry.id}, size: {entry.total_size}, prev: {entry.prev_offset:#06x}, "
        f"next: {entry.next_offset:#06x}, row: {row}, type: {_type_name(entry.type_tag)}"
    )
    if entry.is_sentinel:
        return line
    if in_index:
        try:
            name = column_name(entry)
        except NdeError:
            return f"{line}, name: <unreadable {entry.payload.hex()}>"
        return f"{line}, name: {name if name is not None else '<unnamed>'}"

    field_type = entry.field_type
    if field_type is None or not field_type.is_value:
        return f"{line}, value: <raw {format_value(entry.payload)}>"
    try:
        value = decode_payload(field_type, entry.payload)
    except ValueError:
        return f"{line}, value: <undecodable {format_value(entry.payload)}>"
    return f"{line}, value: {format_value(value)}"


def entry_record(entry: RawEntry, in_index: bool) -> dict[str, Any]:
    """Return one entry as a flat record for JSON or S-expression output.

    Descriptors carry a ``name``, field values a ``value``. When the payload
    cannot be read that key is None and the bytes are kept under ``raw``.
    """
    record: dict[str, Any] = {
        "offset": entry.offset,
        "id": entry.id,
        "size": entry.total_size,
        "prev": entry.prev_offset,
        "next": entry.next_offset,
        "row": entry.row_position if entry.has_row else None,
        "type": _type_name(entry.type_tag),
    }
    if entry.is_sentinel:
        return record
    if in_index:
        try:
            record["name"] = column_name(entry)
        except NdeError:
            record["name"] = None
            record["raw"] = entry.payload
        return record

    field_type = entry.field_type
    try:
        if field_type is None or not field_type.is_value:
            raise ValueError(f"type {_type_name(entry.type_tag)} carries no value")
        record["value"] = decode_payload(field_type, entry.payload)
    except ValueError:
        record["value"] = None
        record["raw"] = entry.payload
    return record


def _render(entry: RawEntry, in_index: bool, fmt: DumpFormat) -> str:
    if fmt is DumpFormat.JSON:
        return record_json(entry_record(entry, in_index))
    if fmt is DumpFormat.SEXP:
        return record_sexp(entry_record(entry, in_index))
    return f"  {format_entry(entry, in_index)}"


def _dump_structures(
    source: ByteSource,
    heads: tuple[int, ...],
    label: str,
    in_index: bool,
    max_entries: int,
    fmt: DumpFormat,
    out: TextIO,
) -> None:
    display = fmt is DumpFormat.DISPLAY
    for i, head in enumerate(heads):
        if display:
            print(f"[{label} {i}] head at {head:#06x}", file=out)
        count = 0
        for entry in walk(source, head, max_entries=max_entries, include_sentinels=True):
            print(_render(entry, in_index, fmt), file=out)
            count += 1
        if display:
            print(f"  {label.capitalize()} {i} has {count} entries.", file=out)
        else:
            logger.info("%s %d has %d entries.", label.capitalize(), i, count)


def dump(
    reader: LibraryReader, out: TextIO = sys.stdout, fmt: DumpFormat = DumpFormat.DISPLAY
) -> None:
    """Write a line-per-entry trace of both files to ``out``.

    Lines are written as the structures are walked, so a corrupt structure
    still leaves everything before it in the trace. With JSON or S-expression
    output every line is one entry record and the file summaries go to the
    log instead.
    """
    max_entries = reader.config.max_entries

    if fmt is DumpFormat.DISPLAY:
        print(f"Index file: {reader.index.name} ({len(reader.index)} bytes)", file=out)
        print(f"There are {reader.index_header.structure_count} indices.", file=out)
        print(f"Declared rows: {reader.index_header.row_count}", file=out)
    _dump_structures(
        reader.index, reader.index_header.heads, "index", True, max_entries, fmt, out
    )

    if fmt is DumpFormat.DISPLAY:
        print("-" * 60, file=out)
        print(f"Data file: {reader.data.name} ({len(reader.data)} bytes)", file=out)
        print(f"There are {reader.data_header.structure_count} chains.", file=out)
        print(f"Declared rows: {reader.data_header.row_count}", file=out)
    _dump_structures(
        reader.data, reader.data_header.heads, "chain", False, max_entries, fmt, out
    )
