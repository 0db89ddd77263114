"""Assembly of decoded field values into tracks.

Columns are discovered at runtime and not every column has a value for every
row, so a track is simply whatever values share a row position. Values are
keyed by column name (``column_<id>`` for unnamed columns).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from ndextract.errors import DecodeFailure, SchemaConflict
from ndextract.types import ColumnSchema, Library, ParseSummary, Track, TypedValue

logger = logging.getLogger(__name__)


def assemble(
    values_by_column: Mapping[int, Iterable[TypedValue]],
    columns: Mapping[int, ColumnSchema],
    *,
    strict: bool = False,
    expected_rows: int | None = None,
    summary: ParseSummary | None = None,
) -> Library:
    """Join per-column values into one track per row position.

    Args:
        values_by_column: Decoded values of each column chain, by column id.
        columns: The resolved column table.
        strict: Raise when a column lacks a value for some row instead of
            leaving the field out of that track.
        expected_rows: Row count declared in the file header, if known.
        summary: Receives missing-field counts and the row-count warning; it
            is attached to the result.

    Returns:
        A Library ordered by row position.

    Raises:
        SchemaConflict: Two columns share a key, or values are given for a
            column that is not declared.
        DecodeFailure: In strict mode, a column is missing a row's value.
    """
    if summary is None:
        summary = ParseSummary()
    owners: dict[str, int] = {}
    for column_id, column in columns.items():
        if column.key in owners:
            raise SchemaConflict(
                f"columns {owners[column.key]} and {column_id} share the key {column.key!r}",
                column_id=column_id,
                offset=column.offset,
                expected=owners[column.key],
                observed=column_id,
            )
        owners[column.key] = column_id
    rows: dict[int, dict[int, TypedValue]] = {}

    # Each column contributes disjoint keys, so merge order does not matter.
    for column_id, values in values_by_column.items():
        if column_id not in columns:
            raise SchemaConflict("values given for an undeclared column", column_id=column_id)
        for value in values:
            rows.setdefault(value.row_position, {})[column_id] = value

    positions = sorted(rows)
    if positions and positions[-1] - positions[0] + 1 != len(positions):
        logger.debug("row positions are not contiguous: %d rows span %d..%d",
                     len(positions), positions[0], positions[-1])

    missing: dict[int, int] = {}
    tracks = []
    for position in positions:
        row = rows[position]
        for column_id, column in columns.items():
            if column_id in row:
                continue
            if strict:
                raise DecodeFailure(
                    f"no value for row {position}",
                    column_id=column_id,
                    declared_type=column.declared_type,
                    row_position=position,
                )
            missing[column_id] = missing.get(column_id, 0) + 1
        fields = {columns[cid].key: row[cid] for cid in columns if cid in row}
        tracks.append(Track(position, fields))

    for column_id, count in missing.items():
        logger.debug("column %s: no value for %d rows", columns[column_id].key, count)
        summary.note_missing(columns[column_id].key, count)

    if expected_rows is not None and expected_rows != len(tracks):
        message = f"header declares {expected_rows} rows, found {len(tracks)}"
        logger.warning(message)
        summary.warn(message)

    logger.info("assembled %d tracks", len(tracks))
    return Library(tracks=tuple(tracks), columns=tuple(columns.values()), summary=summary)
