"""
Run-wide context shared by every lane of one invocation.

The context owns the two identifiers computed once per run (the run id
read from ``RunInfo.xml`` and the run timestamp), every path derived from
them, and the set of project output directories discovered while lanes
are mapped to projects. It is created before any lane starts and is safe
to read from lane worker threads.
"""

from __future__ import annotations

import threading
import xml.etree.ElementTree as ET
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from loguru import logger

from samplesheet_demux.config import DemuxConfig

#: Name of the directory collecting run-wide and unassigned artifacts.
UNDETERMINED = "Undetermined"

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"

#: Ending of the per-project sample sheets written into project directories.
SAMPLESHEET_SUFFIX = "_samplesheet.txt"


def read_run_id(run_dir: str | Path) -> str:
    """Return the ``Id`` attribute of ``<Run>`` in ``RunInfo.xml``.

    Raises
    ------
    FileNotFoundError
        If the run folder has no ``RunInfo.xml``.
    ValueError
        If the file cannot be parsed or carries no run id.
    """
    path = Path(run_dir) / "RunInfo.xml"
    if not path.is_file():
        raise FileNotFoundError(f"Run metadata not found: {path}")

    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise ValueError(f"Cannot parse run metadata {path}: {exc}") from exc

    run = root if root.tag == "Run" else root.find("Run")
    run_id = run.get("Id") if run is not None else None
    if not run_id:
        raise ValueError(f"No <Run Id=...> in {path}")
    return run_id


class RunContext:
    """
    Paths and identifiers for one demultiplexing run.

    Parameters
    ----------
    run_dir:
        Instrument run folder (contains ``RunInfo.xml`` and ``Data/``).
    config:
        Static configuration; ``temp_root`` and ``output_root`` come from here.
    clock:
        Callable returning "now"; only used for the run timestamp.

    Examples
    --------
    >>> ctx = RunContext("/runs/240115_A01234_0042_AHJLG7DRXX", DemuxConfig())
    >>> ctx.run_id
    '240115_A01234_0042_AHJLG7DRXX'
    >>> ctx.project_dir("ProjA")
    PosixPath('demux-output/ProjA/240115_A01234_0042_AHJLG7DRXX')
    """

    def __init__(
        self,
        run_dir: str | Path,
        config: DemuxConfig,
        *,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.run_dir     = Path(run_dir)
        self.config      = config
        self.temp_root   = Path(config.temp_root)
        self.output_root = Path(config.output_root)
        self._clock      = clock

        self._lock:      threading.Lock = threading.Lock()
        self._run_id:    str | None     = None
        self._timestamp: str | None     = None

        # OutputDirectorySet: grows while lanes are mapped to projects.
        self._project_dirs:  dict[str, Path]     = {}
        self._project_lanes: dict[str, set[int]] = {}

    # ------------------------------------------------------------------
    # Compute-once identifiers
    # ------------------------------------------------------------------

    @property
    def run_id(self) -> str:
        with self._lock:
            if self._run_id is None:
                self._run_id = read_run_id(self.run_dir)
                logger.info(f"Run id: {self._run_id}")
            return self._run_id

    @property
    def timestamp(self) -> str:
        with self._lock:
            if self._timestamp is None:
                self._timestamp = self._clock().strftime(TIMESTAMP_FORMAT)
            return self._timestamp

    # ------------------------------------------------------------------
    # Derived paths
    # ------------------------------------------------------------------

    @property
    def temp_dir(self) -> Path:
        return self.temp_root / self.run_id

    @property
    def undetermined_dir(self) -> Path:
        return self.output_root / UNDETERMINED / self.run_id / self.timestamp

    @property
    def basecalls_dir(self) -> Path:
        return self.run_dir / "Data" / "Intensities" / "BaseCalls"

    @property
    def aggregate_log(self) -> Path:
        return self.undetermined_dir / f"{self.run_id}.log"

    def project_root(self, project: str) -> Path:
        return self.output_root / project

    def project_dir(self, project: str) -> Path:
        return self.project_root(project) / self.run_id

    def barcode_file(self, lane: int) -> Path:
        return self.temp_dir / f"barcodes_{lane}.txt"

    def lane_config_file(self, lane: int) -> Path:
        return self.temp_dir / f"config_{lane}.xml"

    def lane_log(self, lane: int) -> Path:
        return self.undetermined_dir / f"lane_{lane}.log"

    def metrics_file(self, lane: int) -> Path:
        return self.undetermined_dir / f"lane_{lane}_metrics.txt"

    def project_sheet(self, project: str, lane: int) -> Path:
        return self.project_dir(project) / f"{project}_{self.run_id}_{lane}{SAMPLESHEET_SUFFIX}"

    # ------------------------------------------------------------------
    # Output directory set
    # ------------------------------------------------------------------

    def register_output(self, project: str, lane: int) -> Path:
        """Record that *lane* writes samples of *project*; return its directory."""
        path = self.project_dir(project)
        with self._lock:
            path = self._project_dirs.setdefault(project, path)
            self._project_lanes.setdefault(project, set()).add(lane)
        return path

    @property
    def output_dirs(self) -> dict[str, Path]:
        """Snapshot of ``project -> output directory``."""
        with self._lock:
            return dict(self._project_dirs)

    def lanes_for_project(self, project: str) -> set[int]:
        with self._lock:
            return set(self._project_lanes.get(project, ()))

    def projects_for_lane(self, lane: int) -> list[str]:
        with self._lock:
            return sorted(p for p, lanes in self._project_lanes.items() if lane in lanes)

    def prepare(self) -> None:
        """Create the temp and Undetermined directories."""
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        self.undetermined_dir.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return f"RunContext(run_dir={str(self.run_dir)!r}, output_root={str(self.output_root)!r})"
