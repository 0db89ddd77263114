"""ndextract - Extract a media library from a Nullsoft Database Engine table."""

from ndextract.config import ParseConfig
from ndextract.errors import (
    CorruptStructure,
    DecodeFailure,
    IoFailure,
    NdeError,
    OutOfBounds,
    SchemaConflict,
    UnrecognizedType,
)
from ndextract.export import ExportFormat, to_json, to_sexp
from ndextract.reader import LibraryReader, read_library
from ndextract.source import ByteSource
from ndextract.types import (
    ColumnSchema,
    FieldType,
    Library,
    ParseSummary,
    RawEntry,
    Track,
    TypedValue,
)

__all__ = [
    # Main API
    "LibraryReader",
    "ParseConfig",
    "read_library",
    # Model
    "ByteSource",
    "ColumnSchema",
    "FieldType",
    "Library",
    "ParseSummary",
    "RawEntry",
    "Track",
    "TypedValue",
    # Export
    "ExportFormat",
    "to_json",
    "to_sexp",
    # Errors
    "NdeError",
    "IoFailure",
    "OutOfBounds",
    "CorruptStructure",
    "SchemaConflict",
    "UnrecognizedType",
    "DecodeFailure",
]

__version__ = "0.1.0"
