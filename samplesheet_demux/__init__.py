"""
samplesheet-demux
=================

Per-lane demultiplexing driver for tab-delimited run sample sheets.

Compiles the physical barcode of every sample from its read structure,
validates each lane, runs the basecall and barcode decoders of all lanes
concurrently, and lays the results out per project.

Quickstart
----------
>>> from samplesheet_demux import RunContext, RunOrchestrator, load_config
>>> ctx = RunContext("/runs/240115_A01234_0042_AHJLG7DRXX", load_config("demux.yaml"))
>>> result = RunOrchestrator("samplesheet.txt", ctx, omit_lanes="8").run()
>>> for outcome in result.outcomes:
...     print(outcome)

Or compile a sheet without running anything:

>>> from samplesheet_demux import BarcodeCompiler, LanePartitioner, RunSampleSheet
>>> compiled = BarcodeCompiler().compile(RunSampleSheet("samplesheet.txt", parse=True))
>>> lanes = LanePartitioner(omit_lanes="8").partition(compiled)
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("samplesheet-demux")
except PackageNotFoundError:
    __version__ = "0.1.0-dev"

from samplesheet_demux.artifacts import ArtifactCollector
from samplesheet_demux.barcodes import BarcodeCompiler, CompiledSheet, ReadStructure, parse_read_structure
from samplesheet_demux.config import DemuxConfig, load_config
from samplesheet_demux.context import RunContext
from samplesheet_demux.enums import LaneState, OutputFormat, Stage
from samplesheet_demux.headers import normalize_header, normalize_headers
from samplesheet_demux.lanes import LaneBarcodeSet, LanePartitioner, MissingLanesError
from samplesheet_demux.orchestrator import RunOrchestrator, RunResult
from samplesheet_demux.pipeline import LanePipeline, PipelineOutcome
from samplesheet_demux.sheet import RunSampleSheet
from samplesheet_demux.validators import LaneValidator, ValidationResult

__all__ = [
    "RunSampleSheet",
    "BarcodeCompiler",
    "CompiledSheet",
    "ReadStructure",
    "parse_read_structure",
    "normalize_header",
    "normalize_headers",
    "LaneBarcodeSet",
    "LanePartitioner",
    "MissingLanesError",
    "LaneValidator",
    "ValidationResult",
    "DemuxConfig",
    "load_config",
    "RunContext",
    "LanePipeline",
    "PipelineOutcome",
    "ArtifactCollector",
    "RunOrchestrator",
    "RunResult",
    "LaneState",
    "OutputFormat",
    "Stage",
    "__version__",
]
