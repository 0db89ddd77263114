"""Traversal of the linked structures inside an NDE file.

Neither file is laid out sequentially. Each one starts with a header listing
the absolute offsets of its structure heads; each structure is a linked list
of entries chained through ``next_offset``. A structure usually opens with a
sentinel entry whose only job is to point at the first real entry.

Entries of type REDIRECTOR stand in for an entry that was relocated: their
payload holds the offset of the real entry, which is followed transparently.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

from ndextract.errors import CorruptStructure
from ndextract.source import ByteSource
from ndextract.types import (
    ENTRY_HEADER_FORMAT,
    ENTRY_HEADER_SIZE,
    FieldType,
    RawEntry,
    StructureHeader,
)

logger = logging.getLogger(__name__)

FILE_HEADER_SIZE = 16


def read_header(source: ByteSource, signature: bytes) -> StructureHeader:
    """Read and validate the header at the start of an index or data file."""
    if not source.contains(0, FILE_HEADER_SIZE):
        raise CorruptStructure(
            "file too short for a header",
            file=source.name,
            expected=FILE_HEADER_SIZE,
            observed=len(source),
        )
    found = source.read_bytes(0, len(signature))
    if found != signature:
        raise CorruptStructure(
            "missing signature",
            file=source.name,
            offset=0,
            expected=signature.decode("ascii"),
            observed=found,
        )
    row_count = source.read_u32(8)
    count = source.read_u32(12)
    if count == 0:
        raise CorruptStructure("no indices found", file=source.name, offset=12)
    if not source.contains(FILE_HEADER_SIZE, 4 * count):
        raise CorruptStructure(
            "structure table overruns the file",
            file=source.name,
            offset=FILE_HEADER_SIZE,
            expected=4 * count,
            observed=len(source) - FILE_HEADER_SIZE,
        )
    heads = source.unpack(f"<{count}I", FILE_HEADER_SIZE)
    return StructureHeader(signature=signature, row_count=row_count, heads=tuple(heads))


def read_entry(source: ByteSource, offset: int) -> RawEntry:
    """Read the entry starting at ``offset``."""
    if not source.contains(offset, ENTRY_HEADER_SIZE):
        raise CorruptStructure(
            "no entry fits at this offset",
            file=source.name,
            offset=offset,
            expected=ENTRY_HEADER_SIZE,
            observed=max(len(source) - offset, 0),
        )
    entry_id, total_size, prev_offset, next_offset, row_position, type_tag = source.unpack(
        ENTRY_HEADER_FORMAT, offset
    )
    if total_size < ENTRY_HEADER_SIZE:
        raise CorruptStructure(
            "entry size smaller than its header",
            file=source.name,
            offset=offset,
            entry_id=entry_id,
            expected=f">= {ENTRY_HEADER_SIZE}",
            observed=total_size,
        )
    if not source.contains(offset, total_size):
        raise CorruptStructure(
            "entry overruns the file",
            file=source.name,
            offset=offset,
            entry_id=entry_id,
            expected=total_size,
            observed=len(source) - offset,
        )
    payload = source.read_bytes(offset + ENTRY_HEADER_SIZE, total_size - ENTRY_HEADER_SIZE)
    return RawEntry(
        offset=offset,
        id=entry_id,
        total_size=total_size,
        prev_offset=prev_offset,
        next_offset=next_offset,
        row_position=row_position,
        type_tag=type_tag,
        payload=payload,
    )


def _redirect_target(source: ByteSource, entry: RawEntry) -> int:
    if len(entry.payload) < 4:
        raise CorruptStructure(
            "redirector without a target",
            file=source.name,
            offset=entry.offset,
            entry_id=entry.id,
            expected=4,
            observed=len(entry.payload),
        )
    return int.from_bytes(entry.payload[:4], "little")


def walk(
    source: ByteSource,
    start_offset: int,
    *,
    max_entries: int | None = None,
    include_sentinels: bool = False,
) -> Iterator[RawEntry]:
    """Yield the entries of one linked structure in link order.

    The walk is lazy and stops at the first entry whose ``next_offset`` is
    zero or points at itself. Calling again re-walks from ``start_offset``.

    Args:
        source: The file holding the structure.
        start_offset: Absolute offset of the structure head.
        max_entries: Give up after visiting this many entries.
        include_sentinels: Also yield head/tail sentinel entries.

    Raises:
        CorruptStructure: On an invalid entry, a dangling or backward link, a
            revisited offset, or a chain longer than ``max_entries``.
    """
    visited: set[int] = set()
    offset = start_offset
    came_from: RawEntry | None = None
    redirected = False

    while True:
        if offset in visited:
            raise CorruptStructure(
                "cycle detected",
                file=source.name,
                offset=came_from.offset if came_from else offset,
                entry_id=came_from.id if came_from else None,
                observed=offset,
            )
        visited.add(offset)
        if max_entries is not None and len(visited) > max_entries:
            raise CorruptStructure(
                "structure has more entries than allowed",
                file=source.name,
                offset=start_offset,
                expected=max_entries,
            )

        try:
            entry = read_entry(source, offset)
        except CorruptStructure as e:
            if came_from is None:
                raise
            raise CorruptStructure(
                f"dangling link: {e.message}",
                file=source.name,
                offset=came_from.offset,
                entry_id=came_from.id,
                observed=offset,
            ) from e

        if entry.type_tag == FieldType.REDIRECTOR.value and not entry.is_sentinel:
            target = _redirect_target(source, entry)
            logger.debug("found redirect at %#06x, jumping to %#06x", offset, target)
            came_from = entry
            offset = target
            redirected = True
            continue

        logger.debug(
            "entry at %#06x: id %d, size %d, next %#06x",
            offset,
            entry.id,
            entry.total_size,
            entry.next_offset,
        )
        if include_sentinels or not entry.is_sentinel:
            yield entry

        next_offset = entry.next_offset
        if next_offset == 0 or next_offset == offset:
            return
        # Relocated entries may legitimately link back toward the rest of the chain.
        if next_offset < offset and not redirected:
            raise CorruptStructure(
                "cycle detected: link points backward",
                file=source.name,
                offset=offset,
                entry_id=entry.id,
                expected=f"> {offset:#x}",
                observed=next_offset,
            )
        came_from = entry
        offset = next_offset
        redirected = False
