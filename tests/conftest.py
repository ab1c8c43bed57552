"""
Shared pytest fixtures for samplesheet-demux tests.

All fixtures write temporary files to pytest's tmp_path so nothing
is left on disk after the test run. The external decoders are replaced
by small ``/bin/sh`` scripts so lane pipelines run real child processes
connected by a real pipe.
"""

from datetime import datetime

import pytest

from samplesheet_demux.barcodes import BarcodeCompiler
from samplesheet_demux.commands import CommandBuilder
from samplesheet_demux.config import DemuxConfig
from samplesheet_demux.context import RunContext
from samplesheet_demux.lanes import LanePartitioner
from samplesheet_demux.sheet import RunSampleSheet

RUN_ID = "240115_A01234_0042_AHJLG7DRXX"

# ---------------------------------------------------------------------------
# Sample sheet content (tab-delimited)
# ---------------------------------------------------------------------------

HEADER = "#Lane\tProject\tSample Name\tLibrary Name\tIndex\tFlowcell ID (FCID)\tRead Structure\tDescription"

SHEET_TWO_LANES = f"""\
{HEADER}
1\tProjA\tS1\tLIB1\tACGTACGT\tHJLG7DRXX\t8I8I\tfirst
1\tProjA\tS2\tLIB2\tTGCATGCA (BC02)\tHJLG7DRXX\t8I8I\t
# comment lines are skipped

2\tProjB\tS3\tLIB3\tGGGGCCCC\tHJLG7DRXX\t6I2J\tthird
2\tProjA\tS4\tLIB4\tAATTCCGG\tHJLG7DRXX\t6I2J\tfourth
"""

SHEET_FOUR_LANES = f"""\
{HEADER}
1\tProjA\tS1\tLIB1\tACGTACGT\tHJLG7DRXX\t8I\t
2\tProjA\tS2\tLIB2\tTGCATGCA\tHJLG7DRXX\t8I\t
3\tProjB\tS3\tLIB3\tGGGGCCCC\tHJLG7DRXX\t8I\t
4\tProjB\tS4\tLIB4\tAATTCCGG\tHJLG7DRXX\t8I\t
"""

# Lane 1 is fine; lane 2 carries the same barcode twice.
SHEET_DUPLICATE_LANE = f"""\
{HEADER}
1\tProjA\tS1\tLIB1\tACGTACGT\tHJLG7DRXX\t8I\t
2\tProjB\tS2\tLIB2\tGGGGCCCC\tHJLG7DRXX\t8I\t
2\tProjB\tS3\tLIB3\tGGGGCCCC\tHJLG7DRXX\t8I\t
"""

RUN_INFO = f"""\
<?xml version="1.0"?>
<RunInfo Version="2">
  <Run Id="{RUN_ID}" Number="42">
    <Flowcell>HJLG7DRXX</Flowcell>
  </Run>
</RunInfo>
"""

# Stand-in decoders. Stage A writes one read per lane to stdout and a
# diagnostic line to stderr; stage B copies its input to stdout (the lane
# log) and writes the lane metrics file.
STAGE_A_OK = "printf 'read {lane}\\n'; echo 'basecall lane {lane} done' >&2; echo '<config/>' > {config}"
STAGE_B_OK = "cat; echo 'metrics lane {lane}' > {metrics}"


def _write(tmp_path, name, content):
    p = tmp_path / name
    p.write_text(content)
    return p


# ---------------------------------------------------------------------------
# Sheet fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sheet_two_lanes(tmp_path):
    return _write(tmp_path, "samplesheet.txt", SHEET_TWO_LANES)


@pytest.fixture
def sheet_four_lanes(tmp_path):
    return _write(tmp_path, "samplesheet_four.txt", SHEET_FOUR_LANES)


@pytest.fixture
def sheet_duplicate_lane(tmp_path):
    return _write(tmp_path, "samplesheet_dup.txt", SHEET_DUPLICATE_LANE)


@pytest.fixture
def compiled_two_lanes(sheet_two_lanes):
    return BarcodeCompiler().compile(RunSampleSheet(sheet_two_lanes, parse=True))


@pytest.fixture
def lanes_two(compiled_two_lanes):
    return LanePartitioner().group(compiled_two_lanes)


# ---------------------------------------------------------------------------
# Run folder, configuration and context
# ---------------------------------------------------------------------------

@pytest.fixture
def run_dir(tmp_path):
    run = tmp_path / RUN_ID
    basecalls = run / "Data" / "Intensities" / "BaseCalls"
    basecalls.mkdir(parents=True)
    (run / "RunInfo.xml").write_text(RUN_INFO)
    (run / "RunParameters.xml").write_text("<RunParameters/>\n")
    (run / "RTAComplete.txt").write_text("done\n")
    (run / "InterOp").mkdir()
    (run / "InterOp" / "TileMetricsOut.bin").write_bytes(b"\x02\x00")
    (basecalls / "config.xml").write_text("<BaseCallAnalysis/>\n")
    return run


@pytest.fixture
def config(tmp_path):
    return DemuxConfig(
        tool_dir=str(tmp_path / "tools"),
        temp_root=str(tmp_path / "tmp"),
        output_root=str(tmp_path / "out"),
    )


@pytest.fixture
def context(run_dir, config):
    return RunContext(run_dir, config, clock=lambda: datetime(2024, 1, 15, 12, 30, 0))


# ---------------------------------------------------------------------------
# Stand-in decoders
# ---------------------------------------------------------------------------

class ShellCommands(CommandBuilder):
    """Run each stage as a ``/bin/sh -c`` script.

    ``overrides`` maps ``(lane, "a" | "b")`` to a script replacing the
    default for that lane and stage. Scripts are formatted with ``lane``,
    ``metrics`` and ``config``.
    """

    def __init__(self, config, context, stage_a=STAGE_A_OK, stage_b=STAGE_B_OK, overrides=None):
        super().__init__(config, context)
        self.stage_a   = stage_a
        self.stage_b   = stage_b
        self.overrides = overrides or {}

    def _script(self, lane, stage, default):
        script = self.overrides.get((lane, stage), default)
        return ["/bin/sh", "-c", script.format(
            lane=lane,
            metrics=self.context.metrics_file(lane),
            config=self.context.lane_config_file(lane),
        )]

    def basecall(self, lane_set):
        return self._script(lane_set.lane, "a", self.stage_a)

    def barcode(self, lane_set):
        return self._script(lane_set.lane, "b", self.stage_b)


@pytest.fixture
def shell_commands(config, context):
    def _make(**kwargs):
        return ShellCommands(config, context, **kwargs)
    return _make
