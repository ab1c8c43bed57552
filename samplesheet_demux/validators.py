"""
Lane validation — the rule chain that decides whether a lane may run.

The :class:`LaneValidator` checks one compiled :class:`LaneBarcodeSet`
and returns a :class:`ValidationResult`. Rules run in a fixed order and
the chain stops at the first failure, so a lane that breaks two rules is
reported with the message of the earlier one only.

Examples
--------
>>> validator = LaneValidator(config, output_root="/data/demux")
>>> result = validator.validate(lane_set)
>>> if not result.is_valid:
...     print(result.message)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

from samplesheet_demux.config import DemuxConfig
from samplesheet_demux.context import SAMPLESHEET_SUFFIX
from samplesheet_demux.headers import (
    FCID_COLUMN,
    LIBRARY_NAME_COLUMN,
    READ_STRUCTURE_COLUMN,
    REQUIRED_COLUMNS,
    find_column,
)
from samplesheet_demux.lanes import LaneBarcodeSet
from samplesheet_demux.sheet import EMPTY_VALUE

# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResult:
    """Outcome of :meth:`LaneValidator.validate`.

    Attributes
    ----------
    is_valid:
        ``True`` if every rule passed.
    message:
        Human-readable message of the first failing rule, else ``None``.
    code:
        Short machine-readable code of the failing rule (e.g.
        ``"DUPLICATE_BARCODE"``), else ``None``.
    """
    is_valid: bool       = True
    message:  str | None = None
    code:     str | None = None

    @classmethod
    def failure(cls, code: str, message: str) -> ValidationResult:
        return cls(is_valid=False, message=message, code=code)

    def to_dict(self) -> dict:
        return {"is_valid": self.is_valid, "code": self.code, "message": self.message}

    def summary(self) -> str:
        if self.is_valid:
            return "PASS"
        return f"FAIL — {self.code}: {self.message}"


_PASS = ValidationResult()


# ---------------------------------------------------------------------------
# Validator
# ---------------------------------------------------------------------------

class LaneValidator:
    """
    Gate a lane on the sanity of its compiled sample sheet rows.

    Checks performed, in order
    --------------------------
    * **MISSING_COLUMN / MISSING_VALUE** — every required column exists
      and is filled on every row.
    * **DUPLICATE_BARCODE**  — no two rows share a compiled barcode.
    * **BARCODE_LENGTH**     — all barcodes are as long as the first one.
    * **READ_STRUCTURE**     — all rows share the first row's read structure.
    * **FLOWCELL_ID**        — all rows share the first row's flow-cell id.
    * **LIBRARY_EXISTS**     — no library of this lane already has output
      files under its project (skipped when ``skip_library_check``);
      per-project sample sheets from earlier runs are not output files.
    * **TOOLS_NOT_CONFIGURED** — the external tool location is set.

    Parameters
    ----------
    config:
        Static configuration; only ``tool_dir`` is consulted.
    output_root:
        Root of the project output tree scanned by the library check.
        Defaults to ``config.output_root``.
    skip_library_check:
        Disable the already-demultiplexed library check.
    """

    def __init__(
        self,
        config: DemuxConfig,
        *,
        output_root: str | Path | None = None,
        skip_library_check: bool = False,
    ) -> None:
        self.config             = config
        self.output_root        = Path(output_root if output_root is not None else config.output_root)
        self.skip_library_check = skip_library_check

    @property
    def rules(self) -> list[Callable[[LaneBarcodeSet], ValidationResult]]:
        return [
            self._check_required_values,
            self._check_unique_barcodes,
            self._check_barcode_length,
            self._check_read_structure,
            self._check_flowcell_id,
            self._check_library_not_present,
            self._check_tools_configured,
        ]

    def validate(self, lane_set: LaneBarcodeSet) -> ValidationResult:
        """Run the rule chain on one lane, stopping at the first failure.

        Parameters
        ----------
        lane_set:
            Compiled rows of a single lane.

        Returns
        -------
        ValidationResult
            ``is_valid`` plus the message of the first failed rule.
        """
        for rule in self.rules:
            result = rule(lane_set)
            if not result.is_valid:
                logger.error(f"Lane {lane_set.lane} failed validation: {result.code}: {result.message}")
                return result

        logger.info(f"Lane {lane_set.lane} passed validation ({len(lane_set)} row(s))")
        return _PASS

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def _check_required_values(self, lane_set: LaneBarcodeSet) -> ValidationResult:
        for column, original in REQUIRED_COLUMNS.items():
            idx = find_column(lane_set.headers, column)
            if idx is None:
                return ValidationResult.failure(
                    "MISSING_COLUMN",
                    f"Required column '{original}' not found in the sample sheet header.",
                )
            for n, row in enumerate(lane_set.rows, start=1):
                value = row.values[idx] if idx < len(row.values) else ""
                if not value.strip() or value == EMPTY_VALUE:
                    return ValidationResult.failure(
                        "MISSING_VALUE",
                        f"Row {n} of lane {lane_set.lane} has no value for '{original}'.",
                    )
        return _PASS

    def _check_unique_barcodes(self, lane_set: LaneBarcodeSet) -> ValidationResult:
        seen: set[str] = set()
        for barcode in lane_set.barcodes():
            if barcode in seen:
                return ValidationResult.failure(
                    "DUPLICATE_BARCODE",
                    f"Barcode '{barcode}' appears more than once in lane {lane_set.lane}.",
                )
            seen.add(barcode)
        return _PASS

    def _check_barcode_length(self, lane_set: LaneBarcodeSet) -> ValidationResult:
        barcodes = lane_set.barcodes()
        if not barcodes:
            return _PASS
        expected = len(barcodes[0])
        for barcode in barcodes[1:]:
            if len(barcode) != expected:
                return ValidationResult.failure(
                    "BARCODE_LENGTH",
                    f"Barcode '{barcode}' in lane {lane_set.lane} is {len(barcode)} bp; "
                    f"expected {expected} bp like '{barcodes[0]}'.",
                )
        return _PASS

    def _check_read_structure(self, lane_set: LaneBarcodeSet) -> ValidationResult:
        return self._check_uniform(lane_set, READ_STRUCTURE_COLUMN, "READ_STRUCTURE", "read structure")

    def _check_flowcell_id(self, lane_set: LaneBarcodeSet) -> ValidationResult:
        return self._check_uniform(lane_set, FCID_COLUMN, "FLOWCELL_ID", "flow-cell ID")

    def _check_uniform(
        self,
        lane_set: LaneBarcodeSet,
        column: str,
        code: str,
        label: str,
    ) -> ValidationResult:
        values = [row.get(column) for row in lane_set.rows]
        if not values:
            return _PASS
        for value in values[1:]:
            if value != values[0]:
                return ValidationResult.failure(
                    code,
                    f"Lane {lane_set.lane} mixes {label} '{values[0]}' and '{value}'.",
                )
        return _PASS

    def _check_library_not_present(self, lane_set: LaneBarcodeSet) -> ValidationResult:
        if self.skip_library_check:
            logger.debug(f"Lane {lane_set.lane}: library check skipped")
            return _PASS

        libraries = {
            row.get(LIBRARY_NAME_COLUMN) for row in lane_set.rows
        } - {None, "", EMPTY_VALUE}

        for project in lane_set.projects():
            project_root = self.output_root / project
            if not project_root.is_dir():
                continue
            for path in sorted(project_root.rglob("*")):
                if not path.is_file() or path.name.endswith(SAMPLESHEET_SUFFIX):
                    continue
                prefix = path.name.split("_", 1)[0]
                if prefix in libraries:
                    return ValidationResult.failure(
                        "LIBRARY_EXISTS",
                        f"Library '{prefix}' of lane {lane_set.lane} already has output at {path}. "
                        f"Remove it or rerun with --skip-library-check.",
                    )
        return _PASS

    def _check_tools_configured(self, lane_set: LaneBarcodeSet) -> ValidationResult:
        if not self.config.tools_configured:
            return ValidationResult.failure(
                "TOOLS_NOT_CONFIGURED",
                "No external tool location configured (tool_dir); cannot run lane "
                f"{lane_set.lane}.",
            )
        return _PASS
