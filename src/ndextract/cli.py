"""Command-line front end: dump the raw structures or export the library."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from ndextract.config import ParseConfig
from ndextract.dump import DumpFormat, dump
from ndextract.errors import NdeError
from ndextract.export import ExportFormat, export
from ndextract.reader import LibraryReader

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ndextract",
        description="Extract your media library from an NDE database (main.idx + main.dat)",
    )
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v", "--verbose", action="store_true", help="Log every entry as it is read"
    )
    verbosity.add_argument("-q", "--quiet", action="store_true", help="Only log problems")
    parser.add_argument(
        "-c", "--config", type=Path, default=None, help="YAML file with parse settings"
    )
    parser.add_argument(
        "--lenient",
        action="store_true",
        default=None,
        help="Skip columns with conflicting or unknown types instead of failing",
    )
    parser.add_argument(
        "--strict-values",
        action="store_true",
        default=None,
        help="Fail on undecodable or missing values instead of leaving them out",
    )
    parser.add_argument(
        "-j", "--workers", type=int, default=None, help="Threads used to decode columns"
    )

    commands = parser.add_subparsers(dest="command", required=True)

    dump_cmd = commands.add_parser("dump", help="Print a trace of every raw entry")
    dump_cmd.add_argument("index", type=Path, help="Path to the index file (main.idx)")
    dump_cmd.add_argument("data", type=Path, help="Path to the data file (main.dat)")
    dump_cmd.add_argument(
        "-f",
        "--format",
        choices=[f.value for f in DumpFormat],
        default=DumpFormat.DISPLAY.value,
        help="How to write each entry (default: display)",
    )

    export_cmd = commands.add_parser("export", help="Write the library as JSON or S-expressions")
    export_cmd.add_argument("index", type=Path, help="Path to the index file (main.idx)")
    export_cmd.add_argument("data", type=Path, help="Path to the data file (main.dat)")
    export_cmd.add_argument(
        "-f",
        "--format",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.JSON.value,
        help="Output format (default: json)",
    )
    export_cmd.add_argument(
        "-o", "--output", type=Path, default=None, help="Output file (default: stdout)"
    )
    return parser


def _setup_logging(args: argparse.Namespace) -> None:
    if args.verbose:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT, stream=sys.stderr)


def _load_config(args: argparse.Namespace) -> ParseConfig:
    config = ParseConfig.from_yaml(args.config) if args.config else ParseConfig()
    return config.override(
        strict=False if args.lenient else None,
        strict_values=True if args.strict_values else None,
        workers=args.workers,
    )


def _run_export(reader: LibraryReader, args: argparse.Namespace) -> None:
    library = reader.read()
    fmt = ExportFormat.parse(args.format)
    if args.output is None:
        export(library, fmt, sys.stdout)
        return
    logging.getLogger(__name__).info("Writing %s...", args.output)
    with open(args.output, "w", encoding="utf-8") as f:
        export(library, fmt, f)
    logging.getLogger(__name__).info("Writing %s...done.", args.output)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args)

    try:
        config = _load_config(args)
    except (OSError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return 1

    try:
        reader = LibraryReader.open(args.index, args.data, config)
        if args.command == "dump":
            dump(reader, sys.stdout, DumpFormat.parse(args.format))
        else:
            _run_export(reader, args)
    except NdeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error writing output: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
