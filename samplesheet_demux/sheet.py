"""
Tab-delimited run sample sheet reader.

Reference format
----------------
::

    #Lane	Project	Sample Name	Library Name	Index	Flowcell ID (FCID)	Read Structure
    1	ProjA	S1	LIB1	ACGTACGT	HJLG7DRXX	8I8I
    1	ProjA	S2	LIB2	TGCATGCA	HJLG7DRXX	8I8I
    # comment lines and blank lines are ignored
    2	ProjB	S3	LIB3	GGGGCCCC (BC07)	HJLG7DRXX	8I

The first line is always the header line; its leading ``#`` is stripped.
Every other line starting with ``#`` and every blank line is skipped.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from pathlib import Path

from loguru import logger

from samplesheet_demux.headers import find_column, normalize_headers

#: Sentinel written in place of an empty cell.
EMPTY_VALUE = "NA"


class Row:
    """One data line of a sample sheet.

    Values are index-aligned with the sheet headers; lookups by column name
    go through :func:`~samplesheet_demux.headers.find_column`, so they are
    case-insensitive. ``line`` keeps the untouched source text, which is
    what the per-project sample sheets are written from.
    """

    __slots__ = ("headers", "values", "line")

    def __init__(self, headers: Sequence[str], values: Sequence[str], line: str = "") -> None:
        self.headers: tuple[str, ...] = tuple(headers)
        self.values:  list[str]       = list(values)
        self.line:    str             = line

    def get(self, column: str, default: str | None = None) -> str | None:
        idx = find_column(self.headers, column)
        if idx is None or idx >= len(self.values):
            return default
        return self.values[idx]

    def __getitem__(self, column: str) -> str:
        value = self.get(column)
        if value is None:
            raise KeyError(column)
        return value

    def __contains__(self, column: object) -> bool:
        return isinstance(column, str) and find_column(self.headers, column) is not None

    def as_dict(self) -> dict[str, str]:
        """Ordered ``header -> value`` mapping (first occurrence wins)."""
        out: dict[str, str] = {}
        for key, value in zip(self.headers, self.values, strict=False):
            out.setdefault(key, value)
        return out

    def __repr__(self) -> str:
        return f"Row({self.as_dict()!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Row):
            return NotImplemented
        return self.headers == other.headers and self.values == other.values


class RunSampleSheet:
    """
    Parser for tab-delimited run sample sheets.

    Parameters
    ----------
    path:
        Path to the sample sheet.
    parse:
        If ``True``, call :meth:`parse` immediately. Defaults to ``False``.

    Examples
    --------
    >>> sheet = RunSampleSheet("samplesheet.txt", parse=True)
    >>> sheet.headers[:2]
    ['lane', 'project']
    >>> sheet.rows[0]["barcode_sequence"]
    'ACGTACGT'
    """

    def __init__(self, path: str | Path, *, parse: bool = False) -> None:
        self.path: str = str(path)

        # Populated by parse()
        self.header_line: str | None       = None
        self.raw_headers: list[str]        = []
        self.headers:     list[str] | None = None
        self.lines:       list[str]        = []
        self.rows:        list[Row]        = []

        if parse:
            self.parse()

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def parse(self) -> None:
        """Read the file, normalise the header line and split every row.

        Raises
        ------
        FileNotFoundError
            If the sample sheet does not exist.
        ValueError
            If the file has no header line, or a row has more cells than it.
        """
        self.read()
        if self.header_line is None:
            raise ValueError(f"Sample sheet {self.path} is empty.")
        self.parse_header()
        self.parse_rows()

    def read(self) -> None:
        """Read the header line and keep every data line verbatim."""
        path = Path(self.path)
        if not path.is_file():
            raise FileNotFoundError(f"Sample sheet not found: {path}")

        header_line: str | None = None
        lines: list[str] = []

        with open(path, encoding="utf-8-sig") as fh:
            for line in fh:
                line = line.rstrip("\r\n")
                if header_line is None:
                    header_line = line
                    continue
                if not line.strip() or line.startswith("#"):
                    continue
                lines.append(line)

        self.header_line = header_line
        self.lines       = lines

    def parse_header(self) -> None:
        """Split and normalise the header line into ``self.headers``."""
        assert self.header_line is not None
        self.raw_headers = self.header_line.split("\t")
        self.headers     = normalize_headers(self.raw_headers)
        logger.debug(f"Normalised headers for {self.path}: {self.headers}")

    def parse_rows(self) -> None:
        """Split data lines into :class:`Row` objects.

        Short rows (trailing empty cells trimmed by an editor) are padded;
        empty cells past the last header (trailing tabs) are dropped.

        Raises
        ------
        ValueError
            If a line has non-empty cells past the last header.
        """
        assert self.headers is not None
        width = len(self.headers)
        rows: list[Row] = []

        for line in self.lines:
            values = line.split("\t")
            extra  = values[width:]
            if any(v.strip() for v in extra):
                raise ValueError(
                    f"Sample sheet line has {len(values)} cells but the header has {width}: {line!r}"
                )
            values = values[:width]
            if extra:
                logger.debug(f"Dropped {len(extra)} empty trailing cell(s) from {line!r}")
            values += [""] * (width - len(values))
            rows.append(Row(self.headers, values, line))

        self.rows = rows

    def column(self, name: str) -> int | None:
        """Index of *name* in the normalised headers, or ``None``."""
        if self.headers is None:
            raise RuntimeError("Call parse() before calling column().")
        return find_column(self.headers, name)

    # ------------------------------------------------------------------
    # Dunder
    # ------------------------------------------------------------------

    def __iter__(self) -> Iterator[Row]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)

    def __repr__(self) -> str:
        n = len(self.rows) if self.rows else "?"
        return f"RunSampleSheet(path={self.path!r}, rows={n})"
