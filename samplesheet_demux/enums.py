"""
Enumerations for samplesheet-demux.
"""

from enum import Enum


class LaneState(str, Enum):
    """Lifecycle of one lane pipeline.

    PENDING — validated, waiting for its worker.
    RUNNING — both external stages have been launched.
    JOINED  — stage B has exited and lane-scoped artifacts were copied.
    DONE    — outcome recorded; the lane has arrived at the run barrier.
    """
    PENDING = "pending"
    RUNNING = "running"
    JOINED  = "joined"
    DONE    = "done"


class Stage(str, Enum):
    """The two chained external processes run for every lane.

    BASECALL — stage A, decodes intensities / base calls for one lane.
    BARCODE  — stage B, assigns the decoded reads to samples by barcode.
    """
    BASECALL = "basecall"
    BARCODE  = "barcode"


class OutputFormat(str, Enum):
    """Per-sample file format written by the barcode decoder."""
    FASTQ = "fastq"
    BAM   = "bam"
