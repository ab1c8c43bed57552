"""End-to-end tests for RunOrchestrator with stand-in decoders."""

import pytest

from samplesheet_demux.artifacts import ArtifactCollector
from samplesheet_demux.config import DemuxConfig
from samplesheet_demux.context import RunContext
from samplesheet_demux.lanes import MissingLanesError
from samplesheet_demux.orchestrator import RunOrchestrator, RunResult
from samplesheet_demux.pipeline import PipelineOutcome

from .conftest import RUN_ID

OMIT_UPPER = "5,6,7,8"


def _without_tools(tmp_path):
    return DemuxConfig(temp_root=str(tmp_path / "tmp"), output_root=str(tmp_path / "out"))


@pytest.fixture
def collect_calls(monkeypatch):
    calls = []
    original = ArtifactCollector.collect

    def counting(self):
        calls.append(self)
        return original(self)

    monkeypatch.setattr(ArtifactCollector, "collect", counting)
    return calls


class TestFullRun:

    def test_all_lanes_succeed(self, sheet_four_lanes, context, shell_commands, collect_calls):
        result = RunOrchestrator(
            sheet_four_lanes, context, omit_lanes=OMIT_UPPER, commands=shell_commands(),
        ).run()
        assert result.is_success
        assert [o.lane for o in result.outcomes] == [1, 2, 3, 4]
        assert len(collect_calls) == 1
        assert result.summary() == "PASS — 4 lane(s) succeeded, 0 failed"

    def test_one_failing_lane_does_not_stop_the_others(
        self, sheet_four_lanes, context, shell_commands, collect_calls,
    ):
        commands = shell_commands(overrides={(2, "b"): "cat > /dev/null; exit 3"})
        result = RunOrchestrator(
            sheet_four_lanes, context, omit_lanes=OMIT_UPPER, commands=commands,
        ).run()

        assert not result.is_success
        assert [o.lane for o in result.succeeded] == [1, 3, 4]
        assert [o.lane for o in result.failed] == [2]
        assert result.failed[0].exit_code == 3
        assert len(collect_calls) == 1

    def test_project_layout(self, sheet_four_lanes, context, shell_commands):
        result = RunOrchestrator(
            sheet_four_lanes, context, omit_lanes=OMIT_UPPER, commands=shell_commands(),
        ).run()

        assert sorted(p.name for p in result.project_sheets) == [
            f"ProjA_{RUN_ID}_1_samplesheet.txt",
            f"ProjA_{RUN_ID}_2_samplesheet.txt",
            f"ProjB_{RUN_ID}_3_samplesheet.txt",
            f"ProjB_{RUN_ID}_4_samplesheet.txt",
        ]
        proj_b = context.project_dir("ProjB")
        assert (proj_b / "lane_3_metrics.txt").is_file()
        assert (proj_b / "RunInfo.xml").is_file()
        assert not (proj_b / "lane_1_metrics.txt").exists()
        assert (context.undetermined_dir / "RunInfo.xml").is_file()

    def test_aggregate_log(self, sheet_four_lanes, context, shell_commands):
        commands = shell_commands(overrides={(2, "b"): "cat > /dev/null; exit 3"})
        RunOrchestrator(
            sheet_four_lanes, context, omit_lanes=OMIT_UPPER, commands=commands,
        ).run()

        text = context.aggregate_log.read_text()
        assert "Lane 2: FAILED" in text
        # Lane records are forwarded to the aggregate log.
        assert "[barcode] read 3" in text
        for lane in (1, 2, 3, 4):
            assert context.lane_log(lane).is_file()

    def test_omitted_lane_present_in_sheet_is_skipped(
        self, sheet_four_lanes, context, shell_commands,
    ):
        result = RunOrchestrator(
            sheet_four_lanes, context, omit_lanes="4,5,6,7,8", commands=shell_commands(),
        ).run()
        assert [o.lane for o in result.outcomes] == [1, 2, 3]
        assert not context.lane_log(4).exists()

    def test_lane_copy_error_does_not_stop_the_others(
        self, sheet_four_lanes, context, shell_commands, collect_calls,
    ):
        commands = shell_commands(overrides={(2, "b"): "cat > /dev/null; mkfifo {metrics}"})
        result = RunOrchestrator(
            sheet_four_lanes, context, omit_lanes=OMIT_UPPER, commands=commands,
        ).run()

        assert [o.lane for o in result.succeeded] == [1, 3, 4]
        assert [o.lane for o in result.failed] == [2]
        assert "could not copy lane artifacts" in result.failed[0].summary
        assert len(collect_calls) == 1

    def test_collector_error_keeps_lane_outcomes(
        self, sheet_four_lanes, context, shell_commands, monkeypatch,
    ):
        def broken(self):
            raise OSError("No space left on device")

        monkeypatch.setattr(ArtifactCollector, "collect", broken)
        result = RunOrchestrator(
            sheet_four_lanes, context, omit_lanes=OMIT_UPPER, commands=shell_commands(),
        ).run()

        assert result.is_success
        assert [o.lane for o in result.outcomes] == [1, 2, 3, 4]
        assert result.project_sheets == []
        assert "Run artifact collection failed" in context.aggregate_log.read_text()


class TestValidationFailures:

    def test_failed_lane_reported_and_others_run(
        self, sheet_duplicate_lane, context, shell_commands,
    ):
        result = RunOrchestrator(
            sheet_duplicate_lane, context, omit_lanes="3,4,5,6,7,8", commands=shell_commands(),
        ).run()

        assert [o.lane for o in result.succeeded] == [1]
        failed = result.failed[0]
        assert failed.lane == 2
        assert "GGGGCCCC" in failed.summary
        assert failed.stage is None
        assert not context.barcode_file(2).exists()
        assert not context.lane_log(2).exists()

    def test_no_lane_passes(self, sheet_duplicate_lane, context, shell_commands, collect_calls):
        result = RunOrchestrator(
            sheet_duplicate_lane, context, omit_lanes="1,3,4,5,6,7,8", commands=shell_commands(),
        ).run()
        assert [o.lane for o in result.failed] == [2]
        assert collect_calls == []
        assert not result.is_success

    def test_library_check_and_skip(self, sheet_four_lanes, context, config, shell_commands):
        old = context.project_root("ProjA") / "OLD_RUN"
        old.mkdir(parents=True)
        (old / "LIB1_S1_L001_R1.fastq.gz").write_bytes(b"")

        result = RunOrchestrator(
            sheet_four_lanes, context, omit_lanes=OMIT_UPPER, commands=shell_commands(),
        ).run(dry_run=True)
        assert [o.lane for o in result.failed] == [1]

        ctx = RunContext(context.run_dir, config)
        result = RunOrchestrator(
            sheet_four_lanes, ctx, omit_lanes=OMIT_UPPER, skip_library_check=True,
        ).run(dry_run=True)
        assert result.is_success


class TestFatalErrors:

    def test_missing_lanes_abort_before_any_lane(self, sheet_four_lanes, context, shell_commands):
        with pytest.raises(MissingLanesError) as excinfo:
            RunOrchestrator(sheet_four_lanes, context, commands=shell_commands()).run()
        assert excinfo.value.suggestion == "5,6,7,8"
        assert not context.lane_log(1).exists()

    def test_extra_cells_abort_the_run(self, tmp_path, context, shell_commands):
        p = tmp_path / "extra.txt"
        p.write_text(
            "Lane\tProject\tSample Name\n"
            "1\tProjA\tS1\n"
            "1\tProjA\tS2\tstray\n"
        )
        with pytest.raises(ValueError, match="stray"):
            RunOrchestrator(p, context, omit_lanes="2,3,4,5,6,7,8", commands=shell_commands()).run()
        assert not context.lane_log(1).exists()

    def test_missing_sheet(self, tmp_path, context, shell_commands):
        with pytest.raises(FileNotFoundError):
            RunOrchestrator(tmp_path / "nope.txt", context, commands=shell_commands()).run()

    def test_missing_run_info(self, tmp_path, sheet_four_lanes, config):
        ctx = RunContext(tmp_path / "empty_run", config)
        with pytest.raises(FileNotFoundError):
            RunOrchestrator(sheet_four_lanes, ctx, omit_lanes=OMIT_UPPER).run()

    def test_unconfigured_tools(self, tmp_path, sheet_four_lanes, run_dir):
        ctx = RunContext(run_dir, _without_tools(tmp_path))
        with pytest.raises(RuntimeError, match="tool_dir"):
            RunOrchestrator(sheet_four_lanes, ctx, omit_lanes=OMIT_UPPER).run()


class TestDryRun:

    def test_nothing_launched(self, sheet_four_lanes, context, collect_calls):
        result = RunOrchestrator(sheet_four_lanes, context, omit_lanes=OMIT_UPPER).run(dry_run=True)
        assert result.is_success
        assert all(o.summary == "dry run" for o in result.outcomes)
        assert context.barcode_file(1).is_file()
        assert not context.lane_log(1).exists()
        assert collect_calls == []
        assert result.project_sheets == []

    def test_unconfigured_tools_fail_validation(self, tmp_path, sheet_four_lanes, run_dir):
        ctx = RunContext(run_dir, _without_tools(tmp_path))
        result = RunOrchestrator(sheet_four_lanes, ctx, omit_lanes=OMIT_UPPER).run(dry_run=True)
        assert len(result.failed) == 4
        assert all("tool_dir" in o.summary for o in result.failed)


class TestRunResult:

    def test_empty_result_is_not_success(self):
        assert not RunResult("R").is_success

    def test_to_dict(self):
        result = RunResult("R", [PipelineOutcome(1, True, "ok")])
        data = result.to_dict()
        assert data["run_id"] == "R"
        assert data["is_success"] is True
        assert data["outcomes"][0]["lane"] == 1
