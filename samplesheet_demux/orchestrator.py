"""
Run orchestration — from sample sheet to per-project output tree.

Flow
----
1. Parse the sample sheet and compile barcodes.
2. Partition rows by lane; a lane neither present nor omitted aborts the
   whole run (:class:`~samplesheet_demux.lanes.MissingLanesError`).
3. Validate every runnable lane. A failing lane is recorded and left out;
   the others carry on. Passing lanes get their barcode file written and
   their projects registered in the output directory set.
4. Start one :class:`~samplesheet_demux.pipeline.LanePipeline` per passing
   lane, all at once. The last lane to finish runs the run-level
   :class:`~samplesheet_demux.artifacts.ArtifactCollector` pass.
5. Return every lane outcome, successes and failures, as a :class:`RunResult`.

Examples
--------
>>> ctx = RunContext("/runs/240115_A01234_0042_AHJLG7DRXX", load_config("demux.yaml"))
>>> result = RunOrchestrator("samplesheet.txt", ctx, omit_lanes="8").run()
>>> print(result.summary())
PASS — 7 lane(s) succeeded, 0 failed
"""

from __future__ import annotations

from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from samplesheet_demux.artifacts import ArtifactCollector
from samplesheet_demux.barcodes import BarcodeCompiler, CompiledSheet
from samplesheet_demux.commands import CommandBuilder
from samplesheet_demux.context import RunContext
from samplesheet_demux.lanes import LaneBarcodeSet, LanePartitioner
from samplesheet_demux.logs import RunLog
from samplesheet_demux.pipeline import LaneCountdown, LanePipeline, PipelineOutcome
from samplesheet_demux.sheet import RunSampleSheet
from samplesheet_demux.validators import LaneValidator

# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass
class RunResult:
    """Every lane outcome of one invocation, ordered by lane.

    Attributes
    ----------
    run_id:
        Run identifier from ``RunInfo.xml``.
    outcomes:
        One :class:`PipelineOutcome` per lane that was validated.
    project_sheets:
        Per-project sample sheets written by the artifact collector.
    """
    run_id:         str
    outcomes:       list[PipelineOutcome] = field(default_factory=list)
    project_sheets: list[Path]            = field(default_factory=list)

    @property
    def succeeded(self) -> list[PipelineOutcome]:
        return [o for o in self.outcomes if o.success]

    @property
    def failed(self) -> list[PipelineOutcome]:
        return [o for o in self.outcomes if not o.success]

    @property
    def is_success(self) -> bool:
        return bool(self.outcomes) and not self.failed

    def to_dict(self) -> dict:
        return {
            "run_id":         self.run_id,
            "is_success":     self.is_success,
            "outcomes":       [o.to_dict() for o in self.outcomes],
            "project_sheets": [str(p) for p in self.project_sheets],
        }

    def summary(self) -> str:
        return (
            f"{'PASS' if self.is_success else 'FAIL'} — "
            f"{len(self.succeeded)} lane(s) succeeded, {len(self.failed)} failed"
        )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class RunOrchestrator:
    """
    Prepare, validate and run every lane of a sequencing run.

    Parameters
    ----------
    sheet_path:
        Tab-delimited run sample sheet.
    context:
        Run context (paths, run id, configuration).
    omit_lanes:
        Lanes intentionally left out, e.g. ``"3,5"`` or ``{3, 5}``.
    skip_library_check:
        Skip the already-demultiplexed library validation rule.
    commands:
        Command builder for the two stages; defaults to
        :class:`~samplesheet_demux.commands.CommandBuilder`.
    """

    def __init__(
        self,
        sheet_path: str | Path,
        context: RunContext,
        *,
        omit_lanes: str | Iterable[int] | None = None,
        skip_library_check: bool = False,
        commands: CommandBuilder | None = None,
    ) -> None:
        self.sheet_path         = Path(sheet_path)
        self.context            = context
        self.config             = context.config
        self.partitioner        = LanePartitioner(omit_lanes)
        self.skip_library_check = skip_library_check
        self.commands           = commands or CommandBuilder(self.config, context)
        self.compiled: CompiledSheet | None = None

    # ------------------------------------------------------------------
    # Preparation (single-threaded)
    # ------------------------------------------------------------------

    def compile(self) -> dict[int, LaneBarcodeSet]:
        """Parse, compile and partition the sample sheet; return runnable lanes.

        Raises
        ------
        FileNotFoundError
            If the sample sheet does not exist.
        MissingLanesError
            If a lane is neither in the sheet nor omitted.
        """
        sheet = RunSampleSheet(self.sheet_path, parse=True)
        self.compiled = BarcodeCompiler().compile(sheet)
        lanes = self.partitioner.partition(self.compiled)
        return self.partitioner.runnable(lanes)

    def validate(
        self,
        lanes: dict[int, LaneBarcodeSet],
    ) -> tuple[list[LaneBarcodeSet], list[PipelineOutcome]]:
        """Split lanes into those ready to run and validation failures.

        Ready lanes have their barcode file written and their projects
        registered in the run's output directory set.
        """
        validator = LaneValidator(
            self.config,
            output_root=self.context.output_root,
            skip_library_check=self.skip_library_check,
        )
        ready:    list[LaneBarcodeSet]  = []
        failures: list[PipelineOutcome] = []

        for lane, lane_set in lanes.items():
            result = validator.validate(lane_set)
            if not result.is_valid:
                failures.append(PipelineOutcome(lane, False, result.message or "validation failed"))
                continue

            lane_set.write(self.context.barcode_file(lane))
            for project in lane_set.projects():
                self.context.register_output(project, lane)
            ready.append(lane_set)

        return ready, failures

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    def run(self, *, dry_run: bool = False) -> RunResult:
        """Run the whole invocation.

        Parameters
        ----------
        dry_run:
            Compile, validate and write barcode files, but launch nothing.
            Lanes that pass validation are reported as successful.

        Raises
        ------
        RuntimeError
            If no external tool location is configured (unless dry run).
        FileNotFoundError / ValueError
            If the sample sheet or run metadata is unreadable, or lanes
            are missing from the sheet.
        """
        ctx = self.context
        if not dry_run and not self.config.tools_configured:
            raise RuntimeError("No external tool location configured (tool_dir); refusing to run.")

        run_id = ctx.run_id
        ctx.prepare()

        with RunLog(ctx) as run_log:
            lanes = self.compile()
            ready, outcomes = self.validate(lanes)
            assert self.compiled is not None
            collector = ArtifactCollector(ctx, self.compiled)
            result = RunResult(run_id)

            if dry_run:
                run_log.logger.info(f"Dry run: {len(ready)} lane(s) ready, nothing launched")
                outcomes += [PipelineOutcome(ls.lane, True, "dry run") for ls in ready]
            elif ready:
                lane_outcomes, sheets = self._run_lanes(ready, collector)
                outcomes += lane_outcomes
                result.project_sheets = sheets
            else:
                run_log.logger.warning("No lane passed validation; nothing to run")

            result.outcomes = sorted(outcomes, key=lambda o: o.lane)
            for outcome in result.outcomes:
                run_log.logger.info(str(outcome))
            run_log.logger.info(result.summary())

        return result

    def _run_lanes(
        self,
        lane_sets: list[LaneBarcodeSet],
        collector: ArtifactCollector,
    ) -> tuple[list[PipelineOutcome], list[Path]]:
        barrier = LaneCountdown(len(lane_sets))
        sheets:  list[Path] = []

        def _lane_task(lane_set: LaneBarcodeSet) -> PipelineOutcome:
            pipeline = LanePipeline(lane_set, self.context, self.commands, collector)
            try:
                return pipeline.run()
            finally:
                if barrier.arrive():
                    logger.info("All lanes done; collecting run artifacts")
                    try:
                        sheets.extend(collector.collect())
                    except OSError as exc:
                        logger.error(f"Run artifact collection failed: {exc}")

        logger.info(f"Starting {len(lane_sets)} lane pipeline(s)")
        with ThreadPoolExecutor(max_workers=len(lane_sets), thread_name_prefix="lane") as pool:
            futures = [pool.submit(_lane_task, lane_set) for lane_set in lane_sets]
            outcomes = [future.result() for future in futures]

        return outcomes, sheets
