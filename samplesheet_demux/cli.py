"""
Command-line entry point: ``samplesheet-demux``.

Examples
--------
::

    samplesheet-demux /runs/240115_A01234_0042_AHJLG7DRXX \\
        --sheet samplesheet.txt --config demux.yaml --omit-lanes 8

Exit codes: 0 if every lane succeeded, 1 if any lane failed, 2 on a fatal
error that stopped the run before lanes were started.
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path

from loguru import logger

from samplesheet_demux import __version__
from samplesheet_demux.config import load_config
from samplesheet_demux.context import RunContext
from samplesheet_demux.enums import OutputFormat
from samplesheet_demux.logs import setup_logging
from samplesheet_demux.orchestrator import RunOrchestrator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="samplesheet-demux",
        description="Compile a run sample sheet and demultiplex every lane.",
    )
    parser.add_argument("run_dir", type=Path, help="Instrument run folder (contains RunInfo.xml).")
    parser.add_argument(
        "--sheet", type=Path, default=None,
        help="Tab-delimited sample sheet (default: <run_dir>/samplesheet.txt).",
    )
    parser.add_argument("--config", type=Path, default=None, help="YAML configuration file.")
    parser.add_argument(
        "--omit-lanes", default=None,
        help="Comma-separated lanes intentionally absent from the sample sheet, e.g. 3,5.",
    )
    parser.add_argument(
        "--skip-library-check", action="store_true",
        help="Do not fail lanes whose libraries already have output files.",
    )
    parser.add_argument("--memory", default=None, help="JVM heap for both stages, e.g. 8g.")
    parser.add_argument("--mismatches", type=int, default=None, help="Barcode mismatches tolerated.")
    parser.add_argument(
        "--output-format", choices=[f.value for f in OutputFormat], default=None,
        help="Per-sample output format.",
    )
    parser.add_argument("--output-root", default=None, help="Root of the output tree.")
    parser.add_argument("--temp-root", default=None, help="Root of the temporary tree.")
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Compile, validate and write barcode files without launching any process.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging("DEBUG" if args.verbose else "INFO")

    try:
        config = load_config(args.config).with_overrides(
            basecall_memory=args.memory,
            barcode_memory=args.memory,
            max_mismatches=args.mismatches,
            output_format=args.output_format,
            output_root=args.output_root,
            temp_root=args.temp_root,
        )
        context = RunContext(args.run_dir, config)
        orchestrator = RunOrchestrator(
            args.sheet or args.run_dir / "samplesheet.txt",
            context,
            omit_lanes=args.omit_lanes,
            skip_library_check=args.skip_library_check,
        )
        result = orchestrator.run(dry_run=args.dry_run)
    except (OSError, ValueError, RuntimeError) as exc:
        logger.error(f"Run aborted: {exc}")
        return 2

    for outcome in result.outcomes:
        print(outcome)
    print(result.summary())
    return 0 if result.is_success else 1


if __name__ == "__main__":
    sys.exit(main())
