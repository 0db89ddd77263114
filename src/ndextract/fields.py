"""Decoding of field payloads into typed values.

Field payload layouts (after the common 16-byte entry header):

    STRING, FILENAME   u16 byte count, then the text. A leading FF FE or
                       FE FF marks UTF-16 (little/big endian); anything else
                       is read as UTF-8. The text is not nil-terminated.
    BINARY             u16 byte count, then the bytes.
    BINARY32           u32 byte count, then the bytes.
    INTEGER, LENGTH    i32.
    DATETIME           i32 seconds since the Unix epoch.
    BOOLEAN            u8.
    FLOAT              f32.
    INT64              i64.
    GUID               16 bytes, Microsoft GUID layout.
    INT128             16 bytes, usually an MD5 digest.

The size recorded on disk may exceed what the value needs; the slack is
ignored.
"""

from __future__ import annotations

import logging
import struct
import uuid
from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from typing import Any

from ndextract.errors import DecodeFailure, NdeError, UnrecognizedType
from ndextract.types import (
    ColumnSchema,
    FieldType,
    ParseSummary,
    RawEntry,
    Sentinel,
    TypedValue,
    classify,
)

logger = logging.getLogger(__name__)


class _PayloadError(ValueError):
    """Raised by a decoder; re-raised as DecodeFailure with entry context."""


def decode_text(data: bytes) -> str:
    """Decode NDE text, honouring a UTF-16 byte order mark."""
    if len(data) >= 2 and len(data) % 2 == 0:
        if data[:2] == b"\xff\xfe":
            return data[2:].decode("utf-16-le")
        if data[:2] == b"\xfe\xff":
            return data[2:].decode("utf-16-be")
    return data.decode("utf-8")


def _counted(payload: bytes, fmt: str) -> bytes:
    prefix = struct.calcsize(fmt)
    if len(payload) < prefix:
        raise _PayloadError(f"payload of {len(payload)} bytes has no length prefix")
    (count,) = struct.unpack_from(fmt, payload)
    if prefix + count > len(payload):
        raise _PayloadError(
            f"length prefix {count} overruns payload of {len(payload) - prefix} bytes"
        )
    return payload[prefix : prefix + count]


def _decode_text(payload: bytes) -> str:
    data = _counted(payload, "<H")
    try:
        return decode_text(data)
    except UnicodeDecodeError as e:
        raise _PayloadError(f"invalid text: {e.reason}") from e


def _decode_datetime(payload: bytes) -> datetime:
    (seconds,) = struct.unpack_from("<i", payload)
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


_DECODERS: dict[FieldType, Callable[[bytes], Any]] = {
    FieldType.STRING: _decode_text,
    FieldType.FILENAME: _decode_text,
    FieldType.BINARY: lambda p: _counted(p, "<H"),
    FieldType.BINARY32: lambda p: _counted(p, "<I"),
    FieldType.INTEGER: lambda p: struct.unpack_from("<i", p)[0],
    FieldType.LENGTH: lambda p: struct.unpack_from("<i", p)[0],
    FieldType.DATETIME: _decode_datetime,
    FieldType.BOOLEAN: lambda p: p[0] != 0,
    FieldType.FLOAT: lambda p: struct.unpack_from("<f", p)[0],
    FieldType.INT64: lambda p: struct.unpack_from("<q", p)[0],
    FieldType.GUID: lambda p: uuid.UUID(bytes_le=bytes(p[:16])),
    FieldType.INT128: lambda p: bytes(p[:16]).hex(),
}


def decode_payload(field_type: FieldType, payload: bytes) -> Any:
    """Decode a raw payload as the given type.

    Raises:
        UnrecognizedType: The type carries no values.
        ValueError: The payload does not fit the type.
    """
    decoder = _DECODERS.get(field_type)
    if decoder is None:
        raise UnrecognizedType(field_type.value)
    width = field_type.size_bytes
    if width is not None and len(payload) < width:
        raise _PayloadError(f"payload of {len(payload)} bytes, {field_type.name} needs {width}")
    return decoder(payload)


def decode_value(column: ColumnSchema, entry: RawEntry) -> TypedValue:
    """Decode one data entry against its column.

    Raises:
        DecodeFailure: The entry belongs to another column, has no row,
            carries a different type than declared, or its payload does not
            fit the declared type.
    """

    def failure(reason: str) -> DecodeFailure:
        return DecodeFailure(
            reason,
            column_id=column.id,
            offset=entry.offset,
            declared_type=column.declared_type,
            row_position=entry.row_position if entry.has_row else None,
        )

    if entry.id != column.id:
        raise failure(f"entry belongs to column {entry.id}")
    if not entry.has_row:
        raise failure("value entry carries no row position")
    if entry.type_tag != column.declared_type.value:
        found = FieldType.from_tag(entry.type_tag)
        raise failure(
            f"entry type {found.name if found else entry.type_tag} "
            f"does not match declared {column.declared_type.name}"
        )
    try:
        value = decode_payload(column.declared_type, entry.payload)
    except (struct.error, ValueError, OverflowError, OSError) as e:
        raise failure(str(e)) from e
    return TypedValue(
        kind=column.declared_type,
        value=value,
        row_position=entry.row_position,
        column_id=column.id,
        offset=entry.offset,
    )


def decode_chain(
    column: ColumnSchema,
    entries: Iterable[RawEntry],
    *,
    strict: bool = False,
    summary: ParseSummary | None = None,
) -> list[TypedValue]:
    """Decode every value entry of one column's chain.

    Sentinels are skipped. When a row position occurs twice the first value
    wins and the repeat is treated as a decode failure.

    Args:
        column: The column the chain belongs to.
        entries: The chain's entries in link order.
        strict: Raise on the first failure; otherwise drop the value and
            record it in ``summary``.
        summary: Collects dropped values when not strict.
    """
    if summary is None:
        summary = ParseSummary()
    values: list[TypedValue] = []
    seen_rows: set[int] = set()

    for entry in entries:
        if isinstance(classify(entry, in_index=False), Sentinel):
            continue
        try:
            value = decode_value(column, entry)
            if value.row_position in seen_rows:
                raise DecodeFailure(
                    "duplicate value for row",
                    column_id=column.id,
                    offset=entry.offset,
                    declared_type=column.declared_type,
                    row_position=value.row_position,
                )
        except NdeError as e:
            if strict:
                raise
            logger.warning("skipping value: %s", e)
            summary.skip_value(str(e), entry.offset)
            continue
        seen_rows.add(value.row_position)
        values.append(value)

    logger.debug("column %s: decoded %d values", column.key, len(values))
    return values
