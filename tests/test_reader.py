"""Tests for reading whole tables."""

import struct

import pytest

from ndextract import ParseConfig, read_library
from ndextract.errors import CorruptStructure, DecodeFailure, IoFailure, SchemaConflict
from ndextract.reader import LibraryReader
from ndextract.types import FieldType

from nde_builder import (
    build_data,
    build_index,
    build_table,
    column,
    int_payload,
    text_payload,
    value,
)

COLUMNS = [(0, FieldType.FILENAME, "filename"), (1, FieldType.INTEGER, "rating")]

LENIENT = ParseConfig(strict=False)
STRICT_VALUES = ParseConfig(strict_values=True)


def two_tracks():
    return build_table(
        COLUMNS,
        [
            {0: text_payload("a.mp3"), 1: int_payload(5)},
            {0: text_payload("b.mp3", "utf-16-le"), 1: int_payload(3)},
        ],
    )


class TestLibraryReader:
    """Tests for LibraryReader."""

    def test_two_tracks(self):
        library = LibraryReader.from_bytes(*two_tracks()).read()

        assert [dict(t) for t in library] == [
            {"filename": "a.mp3", "rating": 5},
            {"filename": "b.mp3", "rating": 3},
        ]
        assert [c.key for c in library.columns] == ["filename", "rating"]
        assert library.summary.clean

    def test_playcount_scenario(self):
        idx, dat = build_table(
            [(0, FieldType.FILENAME, "filename"), (1, FieldType.INTEGER, "playcount")],
            [{0: text_payload("a.mp3"), 1: int_payload(3)}],
        )

        library = LibraryReader.from_bytes(idx, dat).read()

        assert len(library) == 1
        assert library[0]["filename"] == "a.mp3"
        assert library[0]["playcount"] == 3
        assert library[0].fields["playcount"].kind is FieldType.INTEGER

    def test_read_twice(self):
        """Test that reading the same files twice gives equal libraries."""
        reader = LibraryReader.from_bytes(*two_tracks())
        assert reader.read() == reader.read()

    def test_headers(self):
        reader = LibraryReader.from_bytes(*two_tracks())

        assert reader.index_header.structure_count == 2
        assert reader.data_header.structure_count == 2
        assert reader.data_header.row_count == 2

    def test_structures_include_sentinels(self):
        reader = LibraryReader.from_bytes(*two_tracks())

        index = reader.index_structures()
        data = reader.data_structures(include_sentinels=False)

        assert [len(s) for s in index] == [3, 1]
        assert [len(s) for s in data] == [2, 2]

    def test_empty_table(self):
        idx, dat = build_table(COLUMNS, [])
        library = LibraryReader.from_bytes(idx, dat).read()
        assert len(library) == 0
        assert len(library.columns) == 2

    def test_missing_value_absent_by_default(self):
        """Test that a sparse column leaves a field out without failing the read."""
        idx, dat = build_table(
            COLUMNS,
            [{0: text_payload("a.mp3")}, {0: text_payload("b.mp3"), 1: int_payload(3)}],
        )

        library = LibraryReader.from_bytes(idx, dat, ParseConfig()).read()

        assert len(library) == 2
        assert "rating" not in library[0]
        assert library[1]["rating"] == 3
        assert library.summary.missing_values == 1
        assert library.summary.issues[0].kind == "missing"

    def test_missing_value_strict_values(self):
        idx, dat = build_table(COLUMNS, [{0: text_payload("a.mp3")}])
        with pytest.raises(DecodeFailure, match="no value for row 0"):
            LibraryReader.from_bytes(idx, dat, STRICT_VALUES).read()

    def test_undeclared_column_strict(self):
        idx = build_index([column(0, FieldType.FILENAME, "filename")], 1).data
        dat = build_data(
            [[value(0, FieldType.FILENAME, 0, text_payload("a.mp3"))],
             [value(9, FieldType.INTEGER, 0, int_payload(1))]],
            1,
        ).data

        with pytest.raises(SchemaConflict) as exc_info:
            LibraryReader.from_bytes(idx, dat).read()
        assert exc_info.value.column_id == 9

    def test_undeclared_column_lenient(self):
        idx = build_index([column(0, FieldType.FILENAME, "filename")], 1).data
        dat = build_data(
            [[value(0, FieldType.FILENAME, 0, text_payload("a.mp3"))],
             [value(9, FieldType.INTEGER, 0, int_payload(1))]],
            1,
        ).data

        library = LibraryReader.from_bytes(idx, dat, LENIENT).read()

        assert dict(library[0]) == {"filename": "a.mp3"}
        assert library.summary.skipped_entries == 1

    def test_bad_value_skipped_by_default(self, tmp_path):
        """Test that one truncated value does not abort the read."""
        idx, dat = build_table(
            COLUMNS,
            [{0: text_payload("a.mp3"), 1: b"\x01"}, {0: text_payload("b.mp3"), 1: int_payload(2)}],
        )
        (tmp_path / "main.idx").write_bytes(idx)
        (tmp_path / "main.dat").write_bytes(dat)

        library = read_library(tmp_path / "main.idx", tmp_path / "main.dat")

        assert len(library) == 2
        assert "rating" not in library[0]
        assert library[1]["rating"] == 2
        assert library.summary.skipped_values == 1
        assert library.summary.missing_values == 1

    def test_bad_value_strict_values(self):
        idx, dat = build_table(COLUMNS, [{0: text_payload("a.mp3"), 1: b"\x01"}])
        with pytest.raises(DecodeFailure, match="INTEGER needs 4"):
            LibraryReader.from_bytes(idx, dat, STRICT_VALUES).read()

    def test_colliding_keys_rejected(self):
        """Test that an unnamed column and one named like its key cannot both load."""
        idx, dat = build_table(
            [(5, FieldType.INTEGER, ""), (6, FieldType.INTEGER, "column_5")],
            [{5: int_payload(1), 6: int_payload(2)}],
        )

        with pytest.raises(SchemaConflict, match="column_5"):
            LibraryReader.from_bytes(idx, dat).read()

    def test_colliding_keys_lenient(self):
        idx, dat = build_table(
            [(5, FieldType.INTEGER, ""), (6, FieldType.INTEGER, "column_5")],
            [{5: int_payload(1), 6: int_payload(2)}],
        )

        library = LibraryReader.from_bytes(idx, dat, LENIENT).read()

        assert dict(library[0]) == {"column_5": 1}
        assert library.summary.skipped_columns == 1
        assert library.summary.skipped_entries == 1

    def test_unknown_column_type_lenient(self):
        _, dat = build_table(
            [(0, FieldType.FILENAME, "filename")], [{0: text_payload("a.mp3")}]
        )
        idx = build_index(
            [column(0, FieldType.FILENAME, "filename"), column(1, 42, "mystery")], 1
        ).data

        library = LibraryReader.from_bytes(idx, dat, LENIENT).read()

        assert [c.key for c in library.columns] == ["filename"]
        assert library.summary.skipped_columns == 1

    def test_row_count_mismatch_warns(self):
        idx, dat = build_table(
            COLUMNS, [{0: text_payload("a.mp3"), 1: int_payload(1)}], row_count=4
        )
        library = LibraryReader.from_bytes(idx, dat, LENIENT).read()
        assert library.summary.warnings == 1

    def test_parallel_matches_serial(self):
        idx, dat = build_table(
            [(c, FieldType.INTEGER, f"c{c}") for c in range(6)],
            [{c: int_payload(r * 10 + c) for c in range(6)} for r in range(5)],
        )

        serial = LibraryReader.from_bytes(idx, dat).read()
        parallel = LibraryReader.from_bytes(idx, dat, ParseConfig(workers=4)).read()

        assert serial == parallel
        assert parallel[4]["c5"] == 45

    def test_corrupt_is_fatal_when_lenient(self):
        """Test that structural corruption is never skipped."""
        idx, dat = two_tracks()
        broken = bytearray(dat)
        struct.pack_into("<I", broken, 16, len(dat) + 100)

        with pytest.raises(CorruptStructure):
            LibraryReader.from_bytes(idx, bytes(broken), LENIENT).read()

    def test_signatures_swapped(self):
        idx, dat = two_tracks()
        with pytest.raises(CorruptStructure, match="signature"):
            LibraryReader.from_bytes(dat, idx)


class TestReadLibrary:
    """Tests for read_library()."""

    def test_from_files(self, tmp_path):
        idx, dat = two_tracks()
        (tmp_path / "main.idx").write_bytes(idx)
        (tmp_path / "main.dat").write_bytes(dat)

        library = read_library(tmp_path / "main.idx", tmp_path / "main.dat")

        assert len(library) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(IoFailure):
            read_library(tmp_path / "main.idx", tmp_path / "main.dat")
