"""Exception types raised while reading an NDE table."""

from __future__ import annotations

from typing import Any


class NdeError(Exception):
    """Base class for every error raised by ndextract."""

    kind = "error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = {k: v for k, v in context.items() if v is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={_format_context(k, v)}" for k, v in self.context.items())
        return f"{self.message} ({details})"


def _format_context(key: str, value: Any) -> str:
    # Offsets read best in hex, next to a hex dump of the file.
    if key == "offset" and isinstance(value, int):
        return f"{value:#06x}"
    return str(value)


class IoFailure(NdeError, OSError):
    """A file could not be opened or read."""

    kind = "io"


class OutOfBounds(IoFailure):
    """A read fell outside the bytes of a file."""

    def __init__(self, offset: int, width: int, length: int, file: str | None = None) -> None:
        super().__init__(
            f"read of {width} bytes at offset {offset:#x} exceeds file length {length}",
            file=file,
        )
        self.offset = offset
        self.width = width
        self.length = length
        self.file = file


class CorruptStructure(NdeError, ValueError):
    """The linked structure of a file cannot be trusted.

    Raised for bad signatures, invalid entry sizes, dangling links and cycles.
    Always fatal.
    """

    kind = "corrupt"

    def __init__(
        self,
        message: str,
        *,
        file: str | None = None,
        offset: int | None = None,
        entry_id: int | None = None,
        expected: Any = None,
        observed: Any = None,
    ) -> None:
        super().__init__(
            message,
            file=file,
            offset=offset,
            entry_id=entry_id,
            expected=expected,
            observed=observed,
        )
        self.file = file
        self.offset = offset
        self.entry_id = entry_id
        self.expected = expected
        self.observed = observed


class SchemaConflict(NdeError, ValueError):
    """Column metadata is inconsistent with itself or with the data."""

    kind = "schema"

    def __init__(
        self,
        message: str,
        *,
        column_id: int | None = None,
        offset: int | None = None,
        expected: Any = None,
        observed: Any = None,
    ) -> None:
        super().__init__(
            message, column_id=column_id, offset=offset, expected=expected, observed=observed
        )
        self.column_id = column_id
        self.offset = offset
        self.expected = expected
        self.observed = observed


class UnrecognizedType(NdeError, ValueError):
    """A type tag is outside the known enumeration or cannot hold values."""

    kind = "type"

    def __init__(
        self, type_tag: int, *, column_id: int | None = None, offset: int | None = None
    ) -> None:
        super().__init__(
            f"unrecognized field type {type_tag}", column_id=column_id, offset=offset
        )
        self.type_tag = type_tag
        self.column_id = column_id
        self.offset = offset


class DecodeFailure(NdeError, ValueError):
    """A field payload does not match its column's declared type."""

    kind = "decode"

    def __init__(
        self,
        reason: str,
        *,
        column_id: int | None = None,
        offset: int | None = None,
        declared_type: Any = None,
        row_position: int | None = None,
    ) -> None:
        type_name = getattr(declared_type, "name", declared_type)
        super().__init__(
            reason,
            column_id=column_id,
            offset=offset,
            declared_type=type_name,
            row=row_position,
        )
        self.reason = reason
        self.column_id = column_id
        self.offset = offset
        self.declared_type = declared_type
        self.row_position = row_position
