from datetime import datetime, timezone

import pytest

from connflow.pipeline.run_record import PipelineRun, StageStatus
from connflow.pipeline.run_tracker import RunTracker

pytestmark = [pytest.mark.unit, pytest.mark.pipeline]


def make_run(run_id, statuses, subject="sub-001"):
    run = PipelineRun.for_stages(subject, list(statuses), run_id=run_id)
    for outcome in run.outcomes:
        outcome.status = statuses[outcome.stage_id]
    return run


def record_all(tracker, run):
    for order, outcome in enumerate(run.outcomes):
        tracker.record(run, outcome, stage_order=order)


def test_record_and_fetch_run(tracker):
    run = make_run("r1", {"n4": StageStatus.SUCCEEDED, "bet": StageStatus.FAILED})
    bet = run.outcome("bet")
    bet.started_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
    bet.finished_at = datetime(2026, 1, 1, 0, 0, 5, tzinfo=timezone.utc)
    bet.error = "ExternalToolFailure"
    bet.tool_stderr = "boom"

    record_all(tracker, run)
    rows = tracker.get_run("r1")

    assert [r["stage_id"] for r in rows] == ["n4", "bet"]
    assert rows[1]["status"] == "FAILED"
    assert rows[1]["error"] == "ExternalToolFailure"
    assert rows[1]["tool_stderr"] == "boom"
    assert rows[1]["duration_s"] == 5.0
    assert rows[1]["started_at"].startswith("2026-01-01T00:00:00")
    assert rows[0]["mode"] == "resume"


def test_status_change_updates_row(tracker):
    run = make_run("r1", {"n4": StageStatus.RUNNING})
    tracker.record(run, run.outcome("n4"), stage_order=0)

    run.outcome("n4").status = StageStatus.SUCCEEDED
    tracker.record(run, run.outcome("n4"), stage_order=0)

    rows = tracker.get_run("r1")
    assert len(rows) == 1
    assert rows[0]["status"] == "SUCCEEDED"


def test_history_across_runs(tracker):
    record_all(tracker, make_run("20260101T000000Z_aaaaaa",
                                 {"n4": StageStatus.SUCCEEDED, "bet": StageStatus.FAILED}))
    record_all(tracker, make_run("20260102T000000Z_bbbbbb",
                                 {"n4": StageStatus.SKIPPED, "bet": StageStatus.SUCCEEDED}))
    record_all(tracker, make_run("20260102T000000Z_cccccc",
                                 {"n4": StageStatus.SUCCEEDED}, subject="sub-002"))

    assert tracker.get_run_ids("sub-001") == ["20260101T000000Z_aaaaaa", "20260102T000000Z_bbbbbb"]

    latest = tracker.get_latest_outcomes("sub-001")
    assert latest["bet"]["status"] == "SUCCEEDED"
    assert latest["n4"]["run_id"] == "20260102T000000Z_bbbbbb"

    stats = tracker.get_statistics("sub-001")
    assert stats == {"runs": 2, "total": 4, "succeeded": 2, "failed": 1, "skipped": 1}
    assert tracker.get_statistics()["runs"] == 3


def test_statistics_empty_database(tracker):
    stats = tracker.get_statistics("sub-404")
    assert stats == {"runs": 0, "total": 0, "succeeded": 0, "failed": 0, "skipped": 0}


def test_persists_across_connections(temp_dir):
    db = temp_dir / "logs" / "runs.db"
    with RunTracker(db) as tracker:
        record_all(tracker, make_run("r1", {"n4": StageStatus.SUCCEEDED}))

    assert db.exists()
    with RunTracker(db) as tracker:
        assert tracker.get_run_ids("sub-001") == ["r1"]
