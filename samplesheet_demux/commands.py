"""
Command lines for the two external decoders run per lane.

Both tools are JVM programs taking Picard-style ``KEY=VALUE`` arguments.
Stage A writes its decoded stream to stdout; stage B reads it from stdin.
"""

from __future__ import annotations

from pathlib import Path

from samplesheet_demux.config import DemuxConfig
from samplesheet_demux.context import RunContext
from samplesheet_demux.lanes import LaneBarcodeSet


class CommandBuilder:
    """
    Build argv lists for stage A (basecall decoder) and stage B (barcode
    decoder) of one lane.

    Parameters
    ----------
    config:
        Tool location, memory and mismatch settings.
    context:
        Run paths.

    Examples
    --------
    >>> builder = CommandBuilder(config, ctx)
    >>> builder.basecall(lane_set)[:3]
    ['java', '-Xmx4g', '-jar']
    """

    def __init__(self, config: DemuxConfig, context: RunContext) -> None:
        self.config  = config
        self.context = context

    def _jar(self, name: str, memory: str) -> list[str]:
        tool_dir = Path(self.config.tool_dir or "")
        return [self.config.java, f"-Xmx{memory}", "-jar", str(tool_dir / name)]

    def basecall(self, lane_set: LaneBarcodeSet) -> list[str]:
        """Stage A: decode intensities / base calls of one lane to stdout."""
        ctx  = self.context
        lane = lane_set.lane
        return [
            *self._jar(self.config.basecall_jar, self.config.basecall_memory),
            f"BASECALLS_DIR={ctx.basecalls_dir}",
            f"LANE={lane}",
            f"READ_STRUCTURE={lane_set.read_structure}",
            f"RUN_ID={ctx.run_id}",
            f"TMP_DIR={ctx.temp_dir}",
            f"CONFIG_OUTPUT={ctx.lane_config_file(lane)}",
            f"MAX_MISMATCHES={self.config.max_mismatches}",
            "OUTPUT=/dev/stdout",
        ]

    def barcode(self, lane_set: LaneBarcodeSet) -> list[str]:
        """Stage B: split the decoded stream into per-sample files."""
        ctx  = self.context
        lane = lane_set.lane
        return [
            *self._jar(self.config.barcode_jar, self.config.barcode_memory),
            "INPUT=/dev/stdin",
            f"BARCODE_FILE={ctx.barcode_file(lane)}",
            f"LANE={lane}",
            f"OUTPUT_DIR={ctx.output_root}",
            f"RUN_ID={ctx.run_id}",
            f"OUTPUT_FORMAT={self.config.output_format.value}",
            f"MAX_MISMATCHES={self.config.max_mismatches}",
            f"MIN_MISMATCH_DELTA={self.config.min_mismatch_delta}",
            f"METRICS_FILE={ctx.metrics_file(lane)}",
            f"TMP_DIR={ctx.temp_dir}",
        ]
