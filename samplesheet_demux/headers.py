"""
Header canonicalisation for tab-delimited run sample sheets.

Sample sheets are edited by hand and exported from several LIMS, so the
same logical column turns up as ``Index``, ``index`` or ``Barcode``, and
some exports spell columns as ``Long Name (code)``. Every header is
reduced to one canonical lowercase key before any row is interpreted.

Rules, applied in order
-----------------------
1. Strip surrounding whitespace and lowercase.
2. ``Flowcell ID (FCID)`` becomes ``fcid:flowcellid`` (code, colon, name,
   no internal spaces).
3. Apply :data:`RENAME_TABLE`.
4. A blank result becomes :data:`EMPTY_HEADER`.

Normalisation is idempotent: every value of :data:`RENAME_TABLE` is a
fixed point of rules 1–3.

Examples
--------
>>> normalize_headers(["#Lane", "Index", "Flowcell ID (FCID)", ""])
['lane', 'barcode_sequence', 'fcid', 'empty_header']
"""

from __future__ import annotations

import re
from collections.abc import Sequence

# ---------------------------------------------------------------------------
# Canonical column names
# ---------------------------------------------------------------------------

#: Marker substituted for a header that is blank after normalisation.
EMPTY_HEADER = "empty_header"

LANE_COLUMN             = "lane"
PROJECT_COLUMN          = "project"
SAMPLE_NAME_COLUMN      = "sample_name"
LIBRARY_NAME_COLUMN     = "library_name"
BARCODE_COLUMN          = "barcode_sequence"
FCID_COLUMN             = "fcid"
READ_STRUCTURE_COLUMN   = "read_structure"
ORIGINAL_BARCODE_COLUMN = "original_barcode_sequence"

#: Fixed rename table applied after lowercasing and ``Name (code)`` rewriting.
RENAME_TABLE: dict[str, str] = {
    "index":             BARCODE_COLUMN,
    "barcode":           BARCODE_COLUMN,
    "barcode sequence":  BARCODE_COLUMN,
    "sample":            SAMPLE_NAME_COLUMN,
    "sample name":       SAMPLE_NAME_COLUMN,
    "library":           LIBRARY_NAME_COLUMN,
    "library name":      LIBRARY_NAME_COLUMN,
    "read structure":    READ_STRUCTURE_COLUMN,
    "rs:readstructure":  READ_STRUCTURE_COLUMN,
    "fcid:flowcellid":   FCID_COLUMN,
    "flowcell id":       FCID_COLUMN,
    "flowcell":          FCID_COLUMN,
    "project name":      PROJECT_COLUMN,
    "sample project":    PROJECT_COLUMN,
}

#: Columns every row of a lane must carry, mapped to the header name a
#: user sees in a standard sheet (reported when the column is absent).
REQUIRED_COLUMNS: dict[str, str] = {
    PROJECT_COLUMN:        "Project",
    SAMPLE_NAME_COLUMN:    "Sample Name",
    LIBRARY_NAME_COLUMN:   "Library Name",
    BARCODE_COLUMN:        "Index",
    FCID_COLUMN:           "Flowcell ID (FCID)",
    READ_STRUCTURE_COLUMN: "Read Structure",
}

_RX_LONG_NAME = re.compile(r"^(?P<name>[^()]+?)\s*\((?P<code>[^()]+)\)$")
_RX_WS        = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def normalize_header(raw: str) -> str:
    """Return the canonical key for a single raw header string."""
    key = raw.strip().lower()

    match = _RX_LONG_NAME.match(key)
    if match:
        code = _RX_WS.sub("", match.group("code"))
        name = _RX_WS.sub("", match.group("name"))
        key  = f"{code}:{name}" if code else name

    key = RENAME_TABLE.get(key, key)
    return key or EMPTY_HEADER


def normalize_headers(raw_headers: Sequence[str]) -> list[str]:
    """Normalise a header line, index-aligned with the input.

    A leading ``#`` on the first field (commented header line) is removed
    before normalisation.
    """
    headers = list(raw_headers)
    if headers:
        headers[0] = headers[0].lstrip("#")
    return [normalize_header(h) for h in headers]


def find_column(headers: Sequence[str], name: str) -> int | None:
    """Case-insensitive lookup of *name* in *headers*.

    Parameters
    ----------
    headers:
        Header keys, normally already normalised.
    name:
        Column to look for. Surrounding whitespace and case are ignored.

    Returns
    -------
    int | None
        Index of the first matching header, or ``None`` if absent.
    """
    wanted = name.strip().lower()
    for i, header in enumerate(headers):
        if header.strip().lower() == wanted:
            return i
    return None
