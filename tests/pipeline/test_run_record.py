from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from connflow.pipeline.run_record import RESUMED, PipelineRun, StageStatus, new_run_id

pytestmark = [pytest.mark.unit, pytest.mark.pipeline]


@pytest.fixture
def failed_run():
    run = PipelineRun.for_stages("sub-001", ["n4", "bet", "mni", "seg"], run_id="r1")
    t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)

    n4 = run.outcome("n4")
    n4.status = StageStatus.SKIPPED
    n4.skip_reason = RESUMED

    bet = run.outcome("bet")
    bet.status = StageStatus.FAILED
    bet.started_at = t0
    bet.finished_at = t0 + timedelta(seconds=42)
    bet.error = "ExternalToolFailure"
    bet.error_detail = "'antsBrainExtraction.sh' exited with status 1"
    bet.command = "antsBrainExtraction.sh -d 3"
    bet.tool_stderr = "line one\nline two\n"

    for sid in ("mni", "seg"):
        run.outcome(sid).status = StageStatus.SKIPPED
        run.outcome(sid).skip_reason = "stage 'bet' failed"
    return run


def test_new_run_id_is_unique_and_sortable():
    a, b = new_run_id(), new_run_id()
    assert a != b
    assert a[:8].isdigit()
    assert a.split("_")[0].endswith("Z")


def test_for_stages_starts_pending():
    run = PipelineRun.for_stages("sub-001", ["a", "b"])

    assert run.with_status(StageStatus.PENDING) == ["a", "b"]
    assert run.never_attempted == ["a", "b"]
    assert run.exit_code == 1


def test_all_resumed_is_success():
    run = PipelineRun.for_stages("sub-001", ["a", "b"])
    for outcome in run.outcomes:
        outcome.status = StageStatus.SKIPPED
        outcome.skip_reason = RESUMED

    assert run.succeeded
    assert run.exit_code == 0
    assert run.report() == f"sub-001 run {run.run_id}: 0 succeeded, 2 skipped, 0 failed"


def test_failed_run_summary(failed_run):
    assert failed_run.failed_stage.stage_id == "bet"
    assert failed_run.never_attempted == ["mni", "seg"]
    assert failed_run.exit_code == 1
    assert failed_run.outcome("bet").duration == 42.0
    with pytest.raises(KeyError):
        failed_run.outcome("unknown")


def test_report_lists_failure_and_never_attempted(failed_run):
    lines = failed_run.report().splitlines()

    assert lines[0] == "sub-001 run r1: 0 succeeded, 3 skipped, 1 failed"
    assert "FAILED stage: bet" in lines
    assert "  error: ExternalToolFailure: 'antsBrainExtraction.sh' exited with status 1" in lines
    assert "  command: antsBrainExtraction.sh -d 3" in lines
    assert "    line two" in lines
    assert "Never attempted (2): mni, seg" in lines
    assert "  reason: stage 'bet' failed" in lines


def test_to_dataframe(failed_run):
    df = failed_run.to_dataframe()

    assert list(df["stage_id"]) == ["n4", "bet", "mni", "seg"]
    assert list(df["status"]) == ["SKIPPED", "FAILED", "SKIPPED", "SKIPPED"]
    assert list(df["order"]) == [0, 1, 2, 3]
    assert (df["subject"] == "sub-001").all()
    assert df.loc[1, "duration_s"] == 42.0
    assert pd.isna(df.loc[0, "duration_s"])


@pytest.mark.parametrize("compression", ["snappy", "none"])
def test_save_run_table(failed_run, temp_dir, compression):
    path = failed_run.save_run_table(temp_dir / "logs" / "stages.parquet", compression=compression)

    df = pd.read_parquet(path)
    assert len(df) == 4
    assert list(df["status"]) == ["SKIPPED", "FAILED", "SKIPPED", "SKIPPED"]
    assert df.loc[1, "error"] == "ExternalToolFailure"
