"""Bounds-checked access to the bytes of one file."""

from __future__ import annotations

import struct
from pathlib import Path
from typing import Any

from ndextract.errors import IoFailure, OutOfBounds


class ByteSource:
    """Read-only view over the full contents of a file.

    Every read names an absolute offset; nothing is buffered or cached and no
    read changes the source, so one instance may be shared between threads.
    """

    def __init__(self, data: bytes, name: str = "<bytes>") -> None:
        self._data = bytes(data)
        self.name = name

    @classmethod
    def from_path(cls, path: Path | str) -> ByteSource:
        """Read a whole file into a new source.

        Raises:
            IoFailure: If the file cannot be opened or read.
        """
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise IoFailure(f"cannot read {path}: {e.strerror or e}", file=str(path)) from e
        return cls(data, str(path))

    def __len__(self) -> int:
        return len(self._data)

    def contains(self, offset: int, width: int) -> bool:
        """Return whether ``width`` bytes starting at ``offset`` lie inside the file."""
        return offset >= 0 and width >= 0 and offset + width <= len(self._data)

    def _check(self, offset: int, width: int) -> None:
        if not self.contains(offset, width):
            raise OutOfBounds(offset, width, len(self._data), self.name)

    def read_bytes(self, offset: int, length: int) -> bytes:
        self._check(offset, length)
        return self._data[offset : offset + length]

    def unpack(self, fmt: str, offset: int) -> tuple[Any, ...]:
        """Unpack a struct format at an absolute offset."""
        width = struct.calcsize(fmt)
        self._check(offset, width)
        return struct.unpack_from(fmt, self._data, offset)

    def read_u8(self, offset: int) -> int:
        return self.unpack("<B", offset)[0]

    def read_i8(self, offset: int) -> int:
        return self.unpack("<b", offset)[0]

    def read_u16(self, offset: int) -> int:
        return self.unpack("<H", offset)[0]

    def read_u32(self, offset: int) -> int:
        return self.unpack("<I", offset)[0]

    def read_i32(self, offset: int) -> int:
        return self.unpack("<i", offset)[0]
