"""
Static configuration: tool locations, JVM memory, mismatch tolerance.

Configuration is a small YAML file read once at start-up::

    tool_dir: /opt/demux/tools
    java: /usr/bin/java
    basecall_memory: 8g
    barcode_memory: 4g
    max_mismatches: 1
    output_format: fastq
    temp_root: /scratch/demux
    output_root: /data/demux
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml
from loguru import logger

from samplesheet_demux.enums import OutputFormat


@dataclass(frozen=True)
class DemuxConfig:
    """Settings shared by every lane of a run.

    Attributes
    ----------
    tool_dir:
        Directory holding the two decoder jars. ``None`` means the tools
        are not configured and no lane may run.
    java:
        Launcher used for both stages.
    basecall_jar / barcode_jar:
        Jar file names inside ``tool_dir`` for stage A and stage B.
    basecall_memory / barcode_memory:
        JVM heap sizes (``-Xmx``) for stage A and stage B.
    max_mismatches:
        Mismatches tolerated when matching an observed barcode.
    min_mismatch_delta:
        Minimum mismatch difference between the best and second-best match.
    output_format:
        Per-sample output format written by stage B.
    temp_root / output_root:
        Roots of the per-run temporary and output trees.
    """
    tool_dir:           str | None   = None
    java:               str          = "java"
    basecall_jar:       str          = "BasecallDecoder.jar"
    barcode_jar:        str          = "BarcodeDecoder.jar"
    basecall_memory:    str          = "4g"
    barcode_memory:     str          = "4g"
    max_mismatches:     int          = 1
    min_mismatch_delta: int          = 1
    output_format:      OutputFormat = OutputFormat.FASTQ
    temp_root:          str          = "/tmp/samplesheet-demux"
    output_root:        str          = "demux-output"

    def __post_init__(self) -> None:
        # Accept plain strings from YAML / argparse.
        object.__setattr__(self, "output_format", OutputFormat(self.output_format))
        object.__setattr__(self, "max_mismatches", int(self.max_mismatches))
        object.__setattr__(self, "min_mismatch_delta", int(self.min_mismatch_delta))

    @property
    def tools_configured(self) -> bool:
        return bool(self.tool_dir and str(self.tool_dir).strip())

    def with_overrides(self, **overrides: Any) -> DemuxConfig:
        """Return a copy with every non-``None`` override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ValueError(f"Unknown configuration key(s): {sorted(unknown)}")
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DemuxConfig:
        unknown = set(data) - {f.name for f in fields(cls)}
        if unknown:
            raise ValueError(f"Unknown configuration key(s): {sorted(unknown)}")
        return cls(**data)


def load_config(path: str | Path | None) -> DemuxConfig:
    """Load a :class:`DemuxConfig` from YAML, or defaults when *path* is ``None``.

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    ValueError
        If the file is not a YAML mapping or has unknown keys.
    """
    if path is None:
        return DemuxConfig()

    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    if not isinstance(data, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping.")

    logger.debug(f"Loaded configuration from {path}: {sorted(data)}")
    return DemuxConfig.from_dict(data)
