"""
Per-lane two-stage pipeline and the run-wide join barrier.

Each validated lane runs two external processes connected by an OS pipe::

    stage A (basecall decoder) --stdout--> stdin-- stage B (barcode decoder)

The pipe is a plain kernel pipe, so stage B is back-pressured by stage A
and sees end-of-input when stage A exits. Diagnostic streams of both
processes are copied into the lane log.

Failure rules
-------------
* Stage A exits non-zero: the error is logged at once; stage B keeps
  draining until it sees end-of-input.
* Stage B exits non-zero: stage A is killed if still running, and the
  lane fails with stage B's exit code.
* Stage B exits zero: the lane fails with stage A's exit code if stage A
  failed, otherwise it succeeds.
* A lane-scoped artifact copy that raises ``OSError`` fails an otherwise
  successful lane; it never escapes to the other lanes.

A lane moves through PENDING -> RUNNING -> JOINED -> DONE
(:class:`~samplesheet_demux.enums.LaneState`).
"""

from __future__ import annotations

import subprocess
import threading
from collections.abc import Sequence
from concurrent.futures import Future
from dataclasses import dataclass

from loguru import logger

from samplesheet_demux.artifacts import ArtifactCollector
from samplesheet_demux.commands import CommandBuilder
from samplesheet_demux.context import RunContext
from samplesheet_demux.enums import LaneState, Stage
from samplesheet_demux.lanes import LaneBarcodeSet
from samplesheet_demux.logs import LaneLog

# ---------------------------------------------------------------------------
# Outcome
# ---------------------------------------------------------------------------

@dataclass
class PipelineOutcome:
    """Result of one lane.

    Attributes
    ----------
    lane:
        Lane number.
    success:
        ``True`` if the lane produced its per-sample output.
    summary:
        Summary on success, error message on failure.
    stage:
        Stage that failed, ``None`` on success or for validation failures.
    exit_code:
        Exit code of the failed stage, if any.
    """
    lane:      int
    success:   bool
    summary:   str
    stage:     Stage | None = None
    exit_code: int | None   = None

    def to_dict(self) -> dict:
        return {
            "lane":      self.lane,
            "success":   self.success,
            "summary":   self.summary,
            "stage":     self.stage.value if self.stage else None,
            "exit_code": self.exit_code,
        }

    def __str__(self) -> str:
        status = "OK" if self.success else "FAILED"
        return f"Lane {self.lane}: {status} — {self.summary}"


# ---------------------------------------------------------------------------
# Join barrier
# ---------------------------------------------------------------------------

class LaneCountdown:
    """Count lanes down to zero; only the last arrival is told it was last.

    Examples
    --------
    >>> barrier = LaneCountdown(2)
    >>> barrier.arrive()
    False
    >>> barrier.arrive()
    True
    """

    def __init__(self, count: int) -> None:
        if count < 0:
            raise ValueError(f"Countdown cannot start below zero: {count}")
        self._remaining = count
        self._lock      = threading.Lock()

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._remaining

    def arrive(self) -> bool:
        """Record one finished lane; ``True`` for the arrival that reaches zero."""
        with self._lock:
            if self._remaining <= 0:
                raise RuntimeError("More lanes arrived than were started.")
            self._remaining -= 1
            return self._remaining == 0


# ---------------------------------------------------------------------------
# Process pair
# ---------------------------------------------------------------------------

class PipedStages:
    """
    Own both processes of a lane, stage A's stdout piped into stage B's stdin.

    ``stage_a_exit`` and ``stage_b_exit`` are futures resolved with each
    process's exit code by watcher threads, so the two exits can be
    observed independently.
    """

    def __init__(
        self,
        basecall_cmd: Sequence[str],
        barcode_cmd: Sequence[str],
        log: LaneLog,
    ) -> None:
        self.basecall_cmd = list(basecall_cmd)
        self.barcode_cmd  = list(barcode_cmd)
        self.log          = log

        self.stage_a: subprocess.Popen | None = None
        self.stage_b: subprocess.Popen | None = None
        self.stage_a_exit: Future[int] = Future()
        self.stage_b_exit: Future[int] = Future()

    def start(self) -> None:
        """Launch both stages.

        Raises
        ------
        OSError
            If either executable cannot be started. Stage A is killed if
            stage B fails to start.
        """
        self.log.logger.info(f"Stage A: {' '.join(self.basecall_cmd)}")
        self.stage_a = subprocess.Popen(
            self.basecall_cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE,
        )

        self.log.logger.info(f"Stage B: {' '.join(self.barcode_cmd)}")
        try:
            self.stage_b = subprocess.Popen(
                self.barcode_cmd,
                stdin=self.stage_a.stdout,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
            )
        except OSError:
            self.stage_a.kill()
            self.stage_a.wait()
            if self.stage_a.stderr is not None:
                self.stage_a.stderr.close()
            raise
        finally:
            # Stage B now holds the only read end; stage A's exit closes the
            # write end, which is stage B's end-of-input.
            assert self.stage_a.stdout is not None
            self.stage_a.stdout.close()

        self.log.pump(self.stage_a.stderr, Stage.BASECALL)
        self.log.pump(self.stage_b.stdout, Stage.BARCODE)

        self._watch(self.stage_a, self.stage_a_exit, Stage.BASECALL)
        self._watch(self.stage_b, self.stage_b_exit, Stage.BARCODE)

    def _watch(self, proc: subprocess.Popen, exit_future: Future[int], stage: Stage) -> None:
        def _wait() -> None:
            code = proc.wait()
            if code == 0:
                self.log.logger.info(f"Stage {stage.value} finished")
            elif stage is Stage.BASECALL:
                self.log.logger.error(
                    f"Stage {stage.value} exited with code {code}; draining stage {Stage.BARCODE.value}"
                )
            else:
                self.log.logger.error(f"Stage {stage.value} exited with code {code}")
            exit_future.set_result(code)

        threading.Thread(
            target=_wait, name=f"lane{self.log.lane}-{stage.value}-wait", daemon=True,
        ).start()

    def kill_stage_a(self) -> None:
        """Kill stage A if it has not exited yet."""
        if self.stage_a is not None and self.stage_a.poll() is None:
            self.log.logger.warning("Killing stage A after stage B failure")
            self.stage_a.kill()


# ---------------------------------------------------------------------------
# Lane pipeline
# ---------------------------------------------------------------------------

class LanePipeline:
    """
    Run one validated lane from PENDING to DONE.

    Parameters
    ----------
    lane_set:
        Compiled rows of the lane; its barcode file must already be written.
    context:
        Run context.
    commands:
        Builds the argv of both stages.
    collector:
        Performs the lane-scoped artifact copies after stage B exits.

    Examples
    --------
    >>> outcome = LanePipeline(lane_set, ctx, CommandBuilder(config, ctx), collector).run()
    >>> outcome.success
    True
    """

    def __init__(
        self,
        lane_set: LaneBarcodeSet,
        context: RunContext,
        commands: CommandBuilder,
        collector: ArtifactCollector,
    ) -> None:
        self.lane_set  = lane_set
        self.lane      = lane_set.lane
        self.context   = context
        self.commands  = commands
        self.collector = collector
        self.state:   LaneState              = LaneState.PENDING
        self.outcome: PipelineOutcome | None = None

    def _transition(self, state: LaneState) -> None:
        logger.debug(f"Lane {self.lane}: {self.state.value} -> {state.value}")
        self.state = state

    def run(self) -> PipelineOutcome:
        """Run both stages, copy lane artifacts and return the lane outcome."""
        if self.state is not LaneState.PENDING:
            raise RuntimeError(f"Lane {self.lane} already ran (state {self.state.value}).")

        with LaneLog(self.context, self.lane) as log:
            self._transition(LaneState.RUNNING)
            try:
                outcome = self._run_stages(log)
            except OSError as exc:
                log.logger.error(f"Could not start lane pipeline: {exc}")
                outcome = PipelineOutcome(self.lane, False, f"could not start pipeline: {exc}")

            try:
                self.collector.copy_lane_artifacts(self.lane, log=log.logger)
            except OSError as exc:
                log.logger.error(f"Could not copy lane artifacts: {exc}")
                if outcome.success:
                    outcome = PipelineOutcome(
                        self.lane, False, f"could not copy lane artifacts: {exc}",
                    )
            self._transition(LaneState.JOINED)

            if outcome.success:
                log.logger.info(outcome.summary)
            else:
                log.logger.error(outcome.summary)

        self.outcome = outcome
        self._transition(LaneState.DONE)
        return outcome

    def _run_stages(self, log: LaneLog) -> PipelineOutcome:
        stages = PipedStages(
            self.commands.basecall(self.lane_set),
            self.commands.barcode(self.lane_set),
            log,
        )
        stages.start()

        code_b = stages.stage_b_exit.result()
        if code_b != 0:
            stages.kill_stage_a()
            stages.stage_a_exit.result()
            return PipelineOutcome(
                self.lane, False,
                f"barcode decoder (stage B) exited with code {code_b}",
                stage=Stage.BARCODE, exit_code=code_b,
            )

        code_a = stages.stage_a_exit.result()
        if code_a != 0:
            return PipelineOutcome(
                self.lane, False,
                f"basecall decoder (stage A) exited with code {code_a}",
                stage=Stage.BASECALL, exit_code=code_a,
            )

        return PipelineOutcome(
            self.lane, True,
            f"demultiplexed {len(self.lane_set)} sample(s) "
            f"for project(s) {', '.join(self.lane_set.projects())}",
        )

