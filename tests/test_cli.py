"""Tests for the command-line front end."""

import json

import pytest

from ndextract.cli import main
from ndextract.types import FieldType

from nde_builder import build_table, int_payload, text_payload


@pytest.fixture
def table(tmp_path):
    idx, dat = build_table(
        [(0, FieldType.FILENAME, "filename"), (1, FieldType.INTEGER, "playcount")],
        [{0: text_payload("a.mp3"), 1: int_payload(3)}],
    )
    (tmp_path / "main.idx").write_bytes(idx)
    (tmp_path / "main.dat").write_bytes(dat)
    return tmp_path / "main.idx", tmp_path / "main.dat"


class TestMain:
    """Tests for main()."""

    def test_dump(self, table, capsys):
        assert main(["-q", "dump", str(table[0]), str(table[1])]) == 0

        out = capsys.readouterr().out
        assert "There are 2 indices." in out
        assert "value: 'a.mp3'" in out

    def test_export_json_stdout(self, table, capsys):
        assert main(["-q", "export", str(table[0]), str(table[1])]) == 0

        records = json.loads(capsys.readouterr().out)
        assert records == [{"_row": 0, "filename": "a.mp3", "playcount": 3}]

    def test_export_sexp_file(self, table, tmp_path):
        out = tmp_path / "library.sexp"

        code = main(["-q", "export", str(table[0]), str(table[1]), "-f", "sexp", "-o", str(out)])

        assert code == 0
        assert out.read_text(encoding="utf-8") == (
            '(((_row . 0) (filename . "a.mp3") (playcount . 3)))\n'
        )

    def test_missing_file(self, tmp_path, capsys):
        code = main(["-q", "export", str(tmp_path / "main.idx"), str(tmp_path / "main.dat")])

        assert code == 1
        assert capsys.readouterr().err.startswith("Error: ")

    def test_corrupt_file(self, table, capsys):
        table[1].write_bytes(b"NOTATABLE" + b"\x00" * 20)

        assert main(["-q", "dump", str(table[0]), str(table[1])]) == 1
        assert "signature" in capsys.readouterr().err

    def test_strict_values_flag(self, tmp_path, capsys):
        """Test that a bad value is skipped unless --strict-values is given."""
        idx, dat = build_table(
            [(0, FieldType.FILENAME, "filename"), (1, FieldType.INTEGER, "playcount")],
            [{0: text_payload("a.mp3"), 1: b"\x01"}],
        )
        (tmp_path / "main.idx").write_bytes(idx)
        (tmp_path / "main.dat").write_bytes(dat)
        args = [str(tmp_path / "main.idx"), str(tmp_path / "main.dat")]

        assert main(["-q", "export", *args]) == 0
        assert json.loads(capsys.readouterr().out) == [{"_row": 0, "filename": "a.mp3"}]
        assert main(["-q", "--strict-values", "export", *args]) == 1
        assert "INTEGER needs 4" in capsys.readouterr().err

    def test_lenient_flag(self, tmp_path, capsys):
        idx, dat = build_table(
            [(0, FieldType.FILENAME, "filename"), (1, 42, "mystery")],
            [{0: text_payload("a.mp3")}],
        )
        (tmp_path / "main.idx").write_bytes(idx)
        (tmp_path / "main.dat").write_bytes(dat)
        args = [str(tmp_path / "main.idx"), str(tmp_path / "main.dat")]

        assert main(["-q", "export", *args]) == 1
        assert "unrecognized field type 42" in capsys.readouterr().err
        assert main(["-q", "--lenient", "export", *args]) == 0
        assert json.loads(capsys.readouterr().out) == [{"_row": 0, "filename": "a.mp3"}]

    @pytest.mark.parametrize("fmt", ["json", "sexp"])
    def test_dump_formats(self, table, capsys, fmt):
        assert main(["-q", "dump", str(table[0]), str(table[1]), "-f", fmt]) == 0

        lines = capsys.readouterr().out.splitlines()
        # 3 + 1 index entries, 2 + 2 data entries
        assert len(lines) == 8
        assert "There are" not in "".join(lines)

    def test_dump_json_entries(self, table, capsys):
        main(["-q", "dump", str(table[0]), str(table[1]), "--format", "json"])

        records = [json.loads(line) for line in capsys.readouterr().out.splitlines()]
        assert records[1]["name"] == "filename"
        assert [r["value"] for r in records if "value" in r] == ["a.mp3", 3]

    def test_config_file(self, table, tmp_path, capsys):
        config = tmp_path / "ndextract.yaml"
        config.write_text("workers: 2\nstrict: false\n")

        code = main(["-q", "-c", str(config), "export", str(table[0]), str(table[1])])

        assert code == 0
        assert json.loads(capsys.readouterr().out)[0]["playcount"] == 3

    def test_bad_config(self, table, tmp_path, capsys):
        config = tmp_path / "ndextract.yaml"
        config.write_text("threads: 2\n")

        code = main(["-c", str(config), "dump", str(table[0]), str(table[1])])

        assert code == 1
        assert "Error loading config" in capsys.readouterr().err

    def test_requires_command(self):
        with pytest.raises(SystemExit):
            main([])
