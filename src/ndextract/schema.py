"""Resolution of the column table from the index file."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from ndextract.errors import NdeError, SchemaConflict, UnrecognizedType
from ndextract.types import (
    ColumnDescriptor,
    ColumnSchema,
    FieldType,
    ParseSummary,
    RawEntry,
    Sentinel,
    classify,
)

logger = logging.getLogger(__name__)


def _descriptor_schema(descriptor: ColumnDescriptor) -> ColumnSchema:
    entry = descriptor.entry
    declared = FieldType.from_tag(entry.type_tag)
    if declared is None or not declared.is_value:
        raise UnrecognizedType(entry.type_tag, column_id=entry.id, offset=entry.offset)
    return ColumnSchema(
        id=entry.id, declared_type=declared, name=descriptor.name, offset=entry.offset
    )


def resolve(
    entries: Iterable[RawEntry],
    *,
    strict: bool = True,
    summary: ParseSummary | None = None,
) -> dict[int, ColumnSchema]:
    """Build the column table from the entries of the index structure.

    Sentinels are skipped. A descriptor repeated with identical metadata is
    accepted once. An unnamed column is keyed ``column_<id>``, so a column
    literally named that way collides with it.

    Args:
        entries: Entries of the column structure, in link order.
        strict: Raise on the first bad descriptor. Otherwise drop the
            offending column and record it in ``summary``.
        summary: Collects skipped columns when not strict.

    Returns:
        Mapping of column id to its schema, in declaration order.

    Raises:
        SchemaConflict: Two descriptors share an id but disagree, two columns
            would share a track key, or a descriptor name cannot be read.
        UnrecognizedType: A descriptor declares an unknown or structural type.
    """
    if summary is None:
        summary = ParseSummary()
    columns: dict[int, ColumnSchema] = {}
    rejected: set[int] = set()

    for entry in entries:
        try:
            classified = classify(entry, in_index=True)
            if isinstance(classified, Sentinel):
                continue
            column = _descriptor_schema(classified)
            existing = columns.get(column.id)
            if column.id in rejected:
                continue
            if existing is not None and existing != column:
                raise SchemaConflict(
                    f"column {column.id} declared twice with different metadata",
                    column_id=column.id,
                    offset=entry.offset,
                    expected=f"{existing.key}:{existing.declared_type.name}",
                    observed=f"{column.key}:{column.declared_type.name}",
                )
            if existing is None:
                for other in columns.values():
                    if other.key == column.key:
                        raise SchemaConflict(
                            f"column key {column.key!r} used by two columns",
                            column_id=column.id,
                            offset=entry.offset,
                            expected=other.id,
                            observed=column.id,
                        )
        except NdeError as e:
            if strict:
                raise
            logger.warning("skipping column %d: %s", entry.id, e)
            summary.skip_column(str(e), entry.offset)
            # A conflicting column is dropped entirely, not just its later copy.
            columns.pop(entry.id, None)
            rejected.add(entry.id)
            continue

        if existing is None:
            logger.debug(
                "column %d: %s (%s)", column.id, column.key, column.declared_type.name
            )
            columns[column.id] = column

    logger.debug("resolved %d columns", len(columns))
    return columns
