"""Tests for read-structure parsing and barcode compilation."""

import pytest

from samplesheet_demux.barcodes import (
    JOKER,
    BarcodeCompiler,
    compile_barcode,
    parse_read_structure,
    strip_barcode,
)
from samplesheet_demux.headers import ORIGINAL_BARCODE_COLUMN
from samplesheet_demux.sheet import EMPTY_VALUE, RunSampleSheet


class TestParseReadStructure:

    def test_dual_index(self):
        rs = parse_read_structure("8I8I")
        assert rs.tokens == ((8, "I"), (8, "I"))
        assert rs.index_length == 16
        assert rs.joker_offsets == ()

    def test_joker_offsets_follow_read_order(self):
        rs = parse_read_structure("76I8J76I")
        assert rs.index_length == 160
        assert rs.joker_offsets == tuple(range(76, 84))

    def test_joker_before_index(self):
        assert parse_read_structure("2J6I").joker_offsets == (0, 1)

    def test_lowercase_and_other_tokens(self):
        rs = parse_read_structure("76T8i8j76T")
        assert rs.tokens == ((8, "I"), (8, "J"))
        assert rs.joker_offsets == tuple(range(8, 16))

    @pytest.mark.parametrize("text", [None, "", "76T76T", "NA"])
    def test_no_tokens_is_falsy(self, text):
        assert not parse_read_structure(text)


class TestStripBarcode:

    def test_whitespace_and_nickname(self):
        assert strip_barcode(" ACGT ACGT (BC01) ") == "ACGTACGT"

    def test_only_trailing_nickname(self):
        assert strip_barcode("(X)ACGT") == "(X)ACGT"

    def test_empty(self):
        assert strip_barcode(None) == ""


class TestCompileBarcode:

    def test_doubles_when_index_is_twice_barcode(self):
        assert compile_barcode("ACGTACGT", parse_read_structure("8I8I")) == "ACGTACGTACGTACGT"

    def test_no_doubling_when_lengths_match(self):
        assert compile_barcode("ACGTACGT", parse_read_structure("8I")) == "ACGTACGT"

    def test_no_doubling_for_other_ratios(self):
        assert compile_barcode("ACGT", parse_read_structure("8I4I")) == "ACGT"

    def test_jokers_overwritten(self):
        assert compile_barcode("ACGTACGT", parse_read_structure("6I2J")) == "ACGTAC" + JOKER * 2

    def test_leading_jokers(self):
        assert compile_barcode("ACGTACGT", parse_read_structure("2J6I")) == "NNGTACGT"

    def test_jokers_after_doubling(self):
        assert compile_barcode("ACGT", parse_read_structure("3I1J4I")) == "ACGNACGT"

    def test_out_of_range_jokers_are_noop(self):
        # 8-base barcode, jokers at 76..83: nothing to overwrite.
        assert compile_barcode("ACGTACGT", parse_read_structure("76I8J76I")) == "ACGTACGT"

    def test_no_tokens_returns_stripped(self):
        assert compile_barcode("ACGT (BC9)", parse_read_structure("")) == "ACGT"


class TestBarcodeCompiler:

    def test_original_column_appended(self, compiled_two_lanes):
        assert compiled_two_lanes.headers[-1] == ORIGINAL_BARCODE_COLUMN
        assert compiled_two_lanes.rows[1][ORIGINAL_BARCODE_COLUMN] == "TGCATGCA"

    def test_compiled_barcodes(self, compiled_two_lanes):
        assert [r["barcode_sequence"] for r in compiled_two_lanes.rows] == [
            "ACGTACGTACGTACGT",
            "TGCATGCATGCATGCA",
            "GGGGCCNN",
            "AATTCCNN",
        ]

    def test_empty_cells_become_sentinel(self, compiled_two_lanes):
        assert compiled_two_lanes.rows[1]["description"] == EMPTY_VALUE
        assert compiled_two_lanes.rows[0]["description"] == "first"

    def test_no_empty_cell_left(self, compiled_two_lanes):
        for row in compiled_two_lanes.rows:
            assert all(v != "" for v in row.values)

    def test_source_lines_preserved(self, compiled_two_lanes):
        assert "TGCATGCA (BC02)" in compiled_two_lanes.rows[1].line
        assert compiled_two_lanes.header_line.startswith("#Lane")

    def test_sheet_without_barcode_column(self, tmp_path):
        p = tmp_path / "nobc.txt"
        p.write_text("Lane\tProject\n1\tProjA\n")
        compiled = BarcodeCompiler().compile(RunSampleSheet(p, parse=True))
        assert compiled.rows[0].values == ["1", "ProjA", EMPTY_VALUE]

    def test_unparsed_sheet_raises(self, sheet_two_lanes):
        with pytest.raises(RuntimeError):
            BarcodeCompiler().compile(RunSampleSheet(sheet_two_lanes))

    def test_barcode_file_reads_back(self, tmp_path, lanes_two):
        path = lanes_two[2].write(tmp_path / "barcodes_2.txt")
        reread = RunSampleSheet(path, parse=True)
        assert reread.headers == lanes_two[2].headers
        assert [r["barcode_sequence"] for r in reread] == ["GGGGCCNN", "AATTCCNN"]

    def test_barcode_file_keeps_every_column(self, tmp_path, sheet_two_lanes, lanes_two):
        path = lanes_two[2].write(tmp_path / "barcodes_2.txt")
        reread = RunSampleSheet(path, parse=True)
        source = [r for r in RunSampleSheet(sheet_two_lanes, parse=True) if r["lane"] == "2"]

        assert [r.values for r in reread] == [r.values for r in lanes_two[2].rows]
        for written, original in zip(reread.rows, source):
            for column in original.headers:
                if column != "barcode_sequence":
                    assert written[column] == original[column]
            assert written[ORIGINAL_BARCODE_COLUMN] == strip_barcode(original["barcode_sequence"])
