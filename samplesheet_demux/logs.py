"""
Run and lane log files on top of loguru.

Two kinds of file sink are attached for the lifetime of a run:

* the **aggregate run log** ``<undetermined>/<runId>.log`` receives every
  record bound to the run (``logger.bind(run_id=...)``) plus unbound
  library records emitted while the run is active;
* one **lane log** ``<undetermined>/lane_<n>.log`` per running lane
  receives only records bound to that lane.

A lane logger is bound with both ``run_id`` and ``lane``, so everything a
lane writes lands in its own file and is forwarded to the aggregate log.
loguru takes a per-sink lock around each write, which keeps lines from
concurrent lanes whole.
"""

from __future__ import annotations

import sys
import threading
from typing import IO, Any

from loguru import logger

from samplesheet_demux.context import RunContext
from samplesheet_demux.enums import Stage

STDERR_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan> - <level>{message}</level>"
)


def setup_logging(level: str = "INFO") -> None:
    """Replace loguru's default handler with a stderr sink at *level*."""
    logger.remove()
    logger.add(sys.stderr, level=level, format=STDERR_FORMAT)


def _file_format(record: dict[str, Any]) -> str:
    tag = record["extra"].get("tag", "run")
    return "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | " + tag + " | {message}\n{exception}"


class RunLog:
    """Aggregate log sink for one run; use as a context manager."""

    def __init__(self, context: RunContext) -> None:
        self.context = context
        self.path    = context.aggregate_log
        self.logger  = logger.bind(run_id=context.run_id, tag="run")
        self._sink_id: int | None = None

    def open(self) -> RunLog:
        run_id = self.context.run_id
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._sink_id = logger.add(
            self.path,
            level="DEBUG",
            format=_file_format,
            filter=lambda record: record["extra"].get("run_id", run_id) == run_id,
        )
        self.logger.info(f"Aggregate log: {self.path}")
        return self

    def close(self) -> None:
        if self._sink_id is not None:
            logger.remove(self._sink_id)
            self._sink_id = None

    def __enter__(self) -> RunLog:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()


class LaneLog:
    """
    Logger bound to one lane: appends to the lane file and forwards to the
    aggregate run log.

    Parameters
    ----------
    context:
        Run context; supplies the run id and the lane log path.
    lane:
        Lane number this log belongs to.

    Examples
    --------
    >>> with LaneLog(ctx, 3) as log:
    ...     log.logger.info("starting")
    ...     log.pump(proc.stderr, Stage.BASECALL)
    """

    def __init__(self, context: RunContext, lane: int) -> None:
        self.lane    = lane
        self.path    = context.lane_log(lane)
        self.run_id  = context.run_id
        self.logger  = logger.bind(run_id=self.run_id, lane=lane, tag=f"lane {lane}")
        self._sink_id: int | None = None
        self._pumps:   list[threading.Thread] = []

    def open(self) -> LaneLog:
        lane, run_id = self.lane, self.run_id
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._sink_id = logger.add(
            self.path,
            level="DEBUG",
            format=_file_format,
            filter=lambda record: (
                record["extra"].get("lane") == lane and record["extra"].get("run_id") == run_id
            ),
        )
        return self

    def pump(self, stream: IO[bytes] | None, stage: Stage) -> threading.Thread | None:
        """Copy *stream* line by line into this log from a reader thread."""
        if stream is None:
            return None

        def _drain() -> None:
            with stream:
                for raw in stream:
                    line = raw.decode("utf-8", errors="replace").rstrip()
                    if line:
                        self.logger.info(f"[{stage.value}] {line}")

        thread = threading.Thread(
            target=_drain, name=f"lane{self.lane}-{stage.value}-log", daemon=True,
        )
        thread.start()
        self._pumps.append(thread)
        return thread

    def drain(self) -> None:
        """Wait for every pumped stream to reach end-of-file."""
        for thread in self._pumps:
            thread.join()
        self._pumps.clear()

    def close(self) -> None:
        self.drain()
        if self._sink_id is not None:
            logger.remove(self._sink_id)
            self._sink_id = None

    def __enter__(self) -> LaneLog:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()
