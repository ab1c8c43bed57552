"""
Barcode compilation — rebuild the physical barcode each lane will see.

A sample sheet records the barcode a library was *ordered* with, which is
not always the string the instrument reads back. The read structure says
how many index cycles are sequenced and which of them are joker cycles
(read but not part of the true index). Compilation reconciles the two.

Read structure grammar
----------------------
Tokens of the form ``<count><I|J>`` (case-insensitive) are index and
joker cycles, in read order. Any other text (``76T``, ``;``) is ignored::

    8I8I       -> 16 index cycles, no jokers
    6I2J8I     -> 16 index cycles, jokers at offsets 6 and 7
    76I8J76I   -> 160 index cycles, jokers at offsets 76..83

Steps per row
-------------
1. Append ``original_barcode_sequence``: the barcode with whitespace and
   a trailing ``(nickname)`` removed.
2. Parse the read structure.
3. Strip whitespace and nickname from the barcode column itself.
4. If the index length is exactly twice the barcode length, double the
   barcode (a dual-index run whose sheet records one physical index).
5. Overwrite every joker offset with :data:`JOKER`; offsets past the end
   of the barcode are left alone.
6. Replace every empty cell with :data:`~samplesheet_demux.sheet.EMPTY_VALUE`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

from loguru import logger

from samplesheet_demux.headers import (
    BARCODE_COLUMN,
    ORIGINAL_BARCODE_COLUMN,
    READ_STRUCTURE_COLUMN,
    find_column,
)
from samplesheet_demux.sheet import EMPTY_VALUE, Row, RunSampleSheet

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Placeholder written over joker positions.
JOKER = "N"

_RX_TOKEN    = re.compile(r"(\d+)([IJ])", re.IGNORECASE)
_RX_NICKNAME = re.compile(r"\([^()]*\)$")
_RX_WS       = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Read structure
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ReadStructure:
    """Decoded index/joker layout of a read structure string.

    Attributes
    ----------
    text:
        The read structure as written in the sheet.
    tokens:
        ``(count, kind)`` pairs in read order, ``kind`` being ``"I"`` or ``"J"``.
    index_length:
        Sum of all token counts.
    joker_offsets:
        Offsets in the index space covered by ``J`` tokens.
    """
    text:          str
    tokens:        tuple[tuple[int, str], ...] = ()
    index_length:  int                         = 0
    joker_offsets: tuple[int, ...]             = field(default=())

    def __bool__(self) -> bool:
        return bool(self.tokens)


def parse_read_structure(text: str | None) -> ReadStructure:
    """Parse the ``<count><I|J>`` tokens of a read structure string."""
    text = text or ""
    tokens:  list[tuple[int, str]] = []
    jokers:  list[int]             = []
    offset = 0

    for match in _RX_TOKEN.finditer(text):
        count = int(match.group(1))
        kind  = match.group(2).upper()
        tokens.append((count, kind))
        if kind == "J":
            jokers.extend(range(offset, offset + count))
        offset += count

    return ReadStructure(
        text=text,
        tokens=tuple(tokens),
        index_length=offset,
        joker_offsets=tuple(jokers),
    )


# ---------------------------------------------------------------------------
# Barcode helpers
# ---------------------------------------------------------------------------

def strip_barcode(value: str | None) -> str:
    """Remove whitespace and a trailing ``(nickname)`` annotation."""
    if not value:
        return ""
    return _RX_NICKNAME.sub("", _RX_WS.sub("", value))


def compile_barcode(value: str | None, structure: ReadStructure) -> str:
    """Return the physical barcode for *value* under *structure*.

    Examples
    --------
    >>> compile_barcode("ACGTACGT", parse_read_structure("8I8I"))
    'ACGTACGTACGTACGT'
    >>> compile_barcode("ACGTACGT (BC01)", parse_read_structure("6I2J"))
    'ACGTACNN'
    """
    barcode = strip_barcode(value)
    if not structure:
        return barcode

    if structure.index_length == 2 * len(barcode):
        barcode = barcode + barcode

    chars = list(barcode)
    for offset in structure.joker_offsets:
        if offset < len(chars):
            chars[offset] = JOKER
    return "".join(chars)


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------

@dataclass
class CompiledSheet:
    """Rows after barcode compilation.

    ``headers`` are the normalised sheet headers plus
    ``original_barcode_sequence``; ``header_line`` is the sheet's
    untouched first line, kept for the per-project sample sheets.
    """
    headers:     list[str]
    rows:        list[Row]
    header_line: str = ""

    def column(self, name: str) -> int | None:
        return find_column(self.headers, name)


class BarcodeCompiler:
    """
    Rewrite sample sheet rows into their compiled barcode form.

    Examples
    --------
    >>> sheet = RunSampleSheet("samplesheet.txt", parse=True)
    >>> compiled = BarcodeCompiler().compile(sheet)
    >>> compiled.rows[0]["original_barcode_sequence"]
    'ACGTACGT'
    """

    def compile(self, sheet: RunSampleSheet) -> CompiledSheet:
        """Compile every row of a parsed sheet."""
        if sheet.headers is None:
            raise RuntimeError("Call parse() on the sample sheet before compiling.")

        headers  = [*sheet.headers, ORIGINAL_BARCODE_COLUMN]
        rs_idx   = find_column(sheet.headers, READ_STRUCTURE_COLUMN)
        bc_idx   = find_column(sheet.headers, BARCODE_COLUMN)

        if bc_idx is None:
            logger.warning(
                f"No {BARCODE_COLUMN!r} column in {sheet.path}; barcodes left uncompiled."
            )

        rows = [
            Row(headers, self.compile_values(row.values, rs_idx, bc_idx), row.line)
            for row in sheet.rows
        ]
        logger.info(f"Compiled barcodes for {len(rows)} row(s) from {sheet.path}")
        return CompiledSheet(headers=headers, rows=rows, header_line=sheet.header_line or "")

    def compile_values(
        self,
        values: list[str],
        rs_idx: int | None,
        bc_idx: int | None,
    ) -> list[str]:
        """Return the compiled cell list for one row (input is not modified)."""
        out = list(values)
        raw_barcode = out[bc_idx] if bc_idx is not None else ""
        out.append(strip_barcode(raw_barcode))

        if bc_idx is not None:
            structure = parse_read_structure(out[rs_idx] if rs_idx is not None else "")
            out[bc_idx] = compile_barcode(raw_barcode, structure)

        return [v if v else EMPTY_VALUE for v in out]
