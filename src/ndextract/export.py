"""Serialization of an assembled library to interchange formats."""

from __future__ import annotations

import json
import logging
import math
import re
import uuid
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any, TextIO

from ndextract.types import Library, Track

logger = logging.getLogger(__name__)

ROW_KEY = "_row"


class ExportFormat(Enum):
    JSON = "json"
    SEXP = "sexp"

    @classmethod
    def parse(cls, name: str) -> ExportFormat:
        try:
            return cls(name.lower())
        except ValueError:
            raise ValueError(
                f"couldn't interpret {name!r} as a format (expected one of: "
                f"{', '.join(f.value for f in cls)})"
            ) from None


def plain_value(value: Any) -> Any:
    """Convert a decoded value to something JSON can hold."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, float) and not math.isfinite(value):
        # JSON has no NaN or infinity
        return None
    return value


def track_record(track: Track) -> dict[str, Any]:
    """Return a track as a flat dict, with its row position under ``_row``."""
    record: dict[str, Any] = {ROW_KEY: track.row_position}
    for key, value in track.items():
        record[key] = plain_value(value)
    return record


def to_json(library: Library, indent: int | None = 2) -> str:
    return json.dumps([track_record(t) for t in library], indent=indent, ensure_ascii=False)


_SYMBOL = re.compile(r"^[A-Za-z_][A-Za-z0-9_\-+*/<>=!?.]*$")


def _sexp_symbol(name: str) -> str:
    if _SYMBOL.match(name):
        return name
    return "|" + name.replace("\\", "\\\\").replace("|", "\\|") + "|"


def _sexp_string(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _sexp_atom(value: Any) -> str:
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "#t" if value else "#f"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, str):
        return _sexp_string(value)
    raise TypeError(f"cannot write {type(value).__name__} as an S-expression")


def record_sexp(record: Mapping[str, Any]) -> str:
    """Render a flat record as an association list."""
    pairs = [
        f"({_sexp_symbol(key)} . {_sexp_atom(plain_value(value))})"
        for key, value in record.items()
    ]
    return "(" + " ".join(pairs) + ")"


def record_json(record: Mapping[str, Any]) -> str:
    """Render a flat record as one line of JSON."""
    return json.dumps({k: plain_value(v) for k, v in record.items()}, ensure_ascii=False)


def track_sexp(track: Track) -> str:
    """Render a track as an association list."""
    return record_sexp(track_record(track))


def to_sexp(library: Library) -> str:
    if not len(library):
        return "()"
    return "(" + "\n ".join(track_sexp(t) for t in library) + ")"


def export(library: Library, fmt: ExportFormat, out: TextIO) -> None:
    """Write the library to ``out`` in the requested format."""
    if fmt is ExportFormat.JSON:
        out.write(to_json(library))
    else:
        out.write(to_sexp(library))
    out.write("\n")
    logger.debug("wrote %d tracks as %s", len(library), fmt.value)
