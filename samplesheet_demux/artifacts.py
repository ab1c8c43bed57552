"""
Artifact collection — run metadata and per-project sample sheets.

Two passes copy files into the output tree:

* **lane-scoped**, right after a lane's barcode decoder exits: the lane's
  barcode file and basecall config go to the Undetermined area, and the
  lane metrics file goes to every project directory fed by that lane;
* **run-level**, once, after every lane is done: instrument metadata goes
  to the Undetermined area (full set) and to every project directory
  (small set), then each project directory receives one filtered sample
  sheet per lane.

A copy whose source is missing is logged as a warning and skipped.
"""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Any

from loguru import logger

from samplesheet_demux.barcodes import CompiledSheet
from samplesheet_demux.context import RunContext
from samplesheet_demux.headers import LANE_COLUMN, PROJECT_COLUMN

#: Run-folder paths copied to ``Undetermined/<runId>/<timestamp>/``.
RUN_ARTIFACTS: tuple[str, ...] = (
    "RunInfo.xml",
    "runParameters.xml",
    "InterOp",
    "RTAComplete.txt",
    "First_Base_Report.htm",
    "Data/Intensities/config.xml",
    "Data/Intensities/BaseCalls/config.xml",
)

#: Run-folder paths copied to every project output directory.
PROJECT_ARTIFACTS: tuple[str, ...] = (
    "RunInfo.xml",
    "runParameters.xml",
    "InterOp",
)


def _resolve(root: Path, relative: str) -> Path:
    """``root / relative``, matching the last component case-insensitively.

    Instruments disagree on ``runParameters.xml`` vs ``RunParameters.xml``.
    """
    path = root / relative
    if path.exists() or not path.parent.is_dir():
        return path
    wanted = path.name.lower()
    for candidate in path.parent.iterdir():
        if candidate.name.lower() == wanted:
            return candidate
    return path


def copy_artifact(src: str | Path, dst: str | Path, *, log: Any = logger) -> Path | None:
    """Copy a file or directory to *dst*, creating parents as needed.

    Parameters
    ----------
    src:
        File or directory to copy.
    dst:
        Destination path (not the containing directory).
    log:
        Logger receiving the skip warning; defaults to the module logger.

    Returns
    -------
    Path | None
        *dst*, or ``None`` if *src* did not exist.
    """
    src, dst = Path(src), Path(dst)
    if not src.exists():
        log.warning(f"Artifact not found, skipping copy: {src}")
        return None

    dst.parent.mkdir(parents=True, exist_ok=True)
    if src.is_dir():
        shutil.copytree(src, dst, dirs_exist_ok=True)
    else:
        shutil.copy2(src, dst)
    log.debug(f"Copied {src} -> {dst}")
    return dst


class ArtifactCollector:
    """
    Copy run metadata and write per-project sample sheets.

    Parameters
    ----------
    context:
        Run context holding the output directory set.
    compiled:
        Compiled sample sheet; its rows carry the original sheet lines.
    """

    def __init__(self, context: RunContext, compiled: CompiledSheet) -> None:
        self.context  = context
        self.compiled = compiled

    # ------------------------------------------------------------------
    # Lane-scoped pass
    # ------------------------------------------------------------------

    def copy_lane_artifacts(self, lane: int, *, log: Any = logger) -> None:
        """Copy the artifacts of one lane once its barcode decoder has exited."""
        ctx = self.context
        for src in (ctx.barcode_file(lane), ctx.lane_config_file(lane)):
            copy_artifact(src, ctx.undetermined_dir / src.name, log=log)

        metrics = ctx.metrics_file(lane)
        for project in ctx.projects_for_lane(lane):
            copy_artifact(metrics, ctx.project_dir(project) / metrics.name, log=log)

    # ------------------------------------------------------------------
    # Run-level pass
    # ------------------------------------------------------------------

    def collect(self) -> list[Path]:
        """Copy run metadata and emit per-project sample sheets.

        Returns
        -------
        list[Path]
            The per-project sample sheets written.
        """
        ctx = self.context
        logger.info(f"Collecting run artifacts for {ctx.run_id}")

        for relative in RUN_ARTIFACTS:
            copy_artifact(_resolve(ctx.run_dir, relative), ctx.undetermined_dir / relative)

        written: list[Path] = []
        for project, project_dir in sorted(ctx.output_dirs.items()):
            for relative in PROJECT_ARTIFACTS:
                copy_artifact(_resolve(ctx.run_dir, relative), project_dir / relative)
            written.extend(self.write_project_sheets(project))

        logger.info(f"Wrote {len(written)} per-project sample sheet(s)")
        return written

    def write_project_sheets(self, project: str) -> list[Path]:
        """Write ``<project>_<runId>_<lane>_samplesheet.txt`` for each lane of *project*."""
        written: list[Path] = []
        for lane in sorted(self.context.lanes_for_project(project)):
            lines = [
                row.line for row in self.compiled.rows
                if row.get(PROJECT_COLUMN) == project
                and int(row[LANE_COLUMN]) == lane
            ]
            path = self.context.project_sheet(project, lane)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as fh:
                fh.write(self.compiled.header_line + "\n")
                for line in lines:
                    fh.write(line + "\n")
            written.append(path)
        return written
