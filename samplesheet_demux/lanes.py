"""
Lane partitioning and completeness checking.

Compiled rows are grouped by their ``lane`` value into
:class:`LaneBarcodeSet` objects. Before any lane runs, the set of lanes in
the data is compared against the eight lanes of a flow cell: a lane that
is neither present nor explicitly omitted is a fatal error for the whole
run, reported together with the omit list that would make the run
consistent.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from samplesheet_demux.barcodes import CompiledSheet, ReadStructure, parse_read_structure
from samplesheet_demux.headers import (
    BARCODE_COLUMN,
    LANE_COLUMN,
    PROJECT_COLUMN,
    READ_STRUCTURE_COLUMN,
)
from samplesheet_demux.sheet import EMPTY_VALUE, Row

#: Lane numbers of a full flow cell.
EXPECTED_LANES: frozenset[int] = frozenset(range(1, 9))


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class MissingLanesError(ValueError):
    """Raised when lanes are neither in the sample sheet nor omitted.

    Attributes
    ----------
    missing:
        Sorted lane numbers that are unaccounted for.
    suggestion:
        Comma-separated omit list (existing omits plus the missing lanes).
    """

    def __init__(self, missing: Iterable[int], omitted: Iterable[int]) -> None:
        self.missing    = sorted(missing)
        self.suggestion = format_lane_list(set(self.missing) | set(omitted))
        lanes = ", ".join(str(n) for n in self.missing)
        super().__init__(
            f"Lane(s) {lanes} not found in the sample sheet and not omitted. "
            f"If this is intended, rerun with --omit-lanes {self.suggestion}"
        )


# ---------------------------------------------------------------------------
# Lane sets
# ---------------------------------------------------------------------------

@dataclass
class LaneBarcodeSet:
    """All compiled rows of one lane.

    Attributes
    ----------
    lane:
        Lane number.
    headers:
        Compiled headers (sheet headers plus ``original_barcode_sequence``).
    rows:
        Rows in sheet order.
    """
    lane:    int
    headers: list[str]
    rows:    list[Row] = field(default_factory=list)

    @property
    def read_structure(self) -> str:
        """Read structure of the first row (uniformity is a validation rule)."""
        if not self.rows:
            return ""
        return self.rows[0].get(READ_STRUCTURE_COLUMN) or ""

    @property
    def structure(self) -> ReadStructure:
        return parse_read_structure(self.read_structure)

    @property
    def index_length(self) -> int:
        """Expected total index length from the read structure."""
        return self.structure.index_length

    def barcodes(self) -> list[str]:
        return [row.get(BARCODE_COLUMN) or "" for row in self.rows]

    def barcode_lengths(self) -> list[int]:
        return [len(bc) for bc in self.barcodes()]

    def projects(self) -> list[str]:
        """Distinct project names in first-seen order."""
        seen: dict[str, None] = {}
        for row in self.rows:
            project = row.get(PROJECT_COLUMN)
            if project and project != EMPTY_VALUE:
                seen.setdefault(project, None)
        return list(seen)

    def rows_for_project(self, project: str) -> list[Row]:
        return [row for row in self.rows if row.get(PROJECT_COLUMN) == project]

    def write(self, path: str | Path) -> Path:
        """Write the lane's barcode file (tab-delimited, header line first)."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as fh:
            fh.write("\t".join(self.headers) + "\n")
            for row in self.rows:
                fh.write("\t".join(row.values) + "\n")
        logger.debug(f"Wrote {len(self.rows)} barcode row(s) for lane {self.lane} to {path}")
        return path

    def __len__(self) -> int:
        return len(self.rows)


# ---------------------------------------------------------------------------
# Partitioner
# ---------------------------------------------------------------------------

def format_lane_list(lanes: Iterable[int]) -> str:
    """``{5, 3}`` -> ``"3,5"``."""
    return ",".join(str(n) for n in sorted(set(lanes)))


def parse_lane_list(value: str | Iterable[int] | None) -> set[int]:
    """Parse an omit list such as ``"3,5"`` into lane numbers."""
    if value is None:
        return set()
    if isinstance(value, str):
        parts = [p.strip() for p in value.split(",")]
        try:
            return {int(p) for p in parts if p}
        except ValueError as exc:
            raise ValueError(f"Invalid lane list {value!r}: {exc}") from exc
    return {int(n) for n in value}


def find_missing_lanes(
    present: Iterable[int],
    omitted: Iterable[int],
    expected: Iterable[int] = EXPECTED_LANES,
) -> set[int]:
    """Lanes of *expected* that are neither *present* nor *omitted*."""
    return set(expected) - set(present) - set(omitted)


class LanePartitioner:
    """
    Group compiled rows by lane and check that every lane is accounted for.

    Parameters
    ----------
    omit_lanes:
        Lanes the caller intentionally leaves out of this run, either as
        a comma-separated string or an iterable of ints.

    Examples
    --------
    >>> lanes = LanePartitioner(omit_lanes="3").partition(compiled)
    >>> sorted(lanes)
    [1, 2, 4, 5, 6, 7, 8]
    """

    def __init__(self, omit_lanes: str | Iterable[int] | None = None) -> None:
        self.omit_lanes: set[int] = parse_lane_list(omit_lanes)

    def group(self, compiled: CompiledSheet) -> dict[int, LaneBarcodeSet]:
        """Group rows by lane, preserving row order within each lane.

        Raises
        ------
        ValueError
            If the sheet has no lane column or a lane value is not an integer.
        """
        if compiled.column(LANE_COLUMN) is None:
            raise ValueError(f"Sample sheet has no {LANE_COLUMN!r} column.")

        lanes: dict[int, LaneBarcodeSet] = {}
        for row in compiled.rows:
            raw = row.get(LANE_COLUMN) or ""
            try:
                lane = int(raw.strip())
            except ValueError as exc:
                raise ValueError(f"Invalid lane value {raw!r} in row {row.line!r}") from exc
            lanes.setdefault(lane, LaneBarcodeSet(lane, compiled.headers)).rows.append(row)

        return dict(sorted(lanes.items()))

    def partition(self, compiled: CompiledSheet) -> dict[int, LaneBarcodeSet]:
        """Group rows by lane and fail if any expected lane is unaccounted for.

        Raises
        ------
        MissingLanesError
            If an expected lane is neither in the data nor omitted.
        """
        lanes   = self.group(compiled)
        missing = find_missing_lanes(lanes, self.omit_lanes)
        if missing:
            raise MissingLanesError(missing, self.omit_lanes)

        logger.info(
            f"Sample sheet covers lane(s) {format_lane_list(lanes)}"
            + (f"; omitting {format_lane_list(self.omit_lanes)}" if self.omit_lanes else "")
        )
        return lanes

    def runnable(self, lanes: dict[int, LaneBarcodeSet]) -> dict[int, LaneBarcodeSet]:
        """Drop omitted lanes that are nonetheless present in the data."""
        selected: dict[int, LaneBarcodeSet] = {}
        for lane, lane_set in lanes.items():
            if lane in self.omit_lanes:
                logger.info(f"Lane {lane} is in the sample sheet but omitted; skipping.")
                continue
            selected[lane] = lane_set
        return selected
