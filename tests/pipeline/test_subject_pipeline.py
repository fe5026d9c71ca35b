import json
import logging

import pandas as pd
import pytest

from connflow.pipeline.orchestrator import SubjectPipeline, setup_logging
from connflow.pipeline.run_record import StageStatus
from connflow.pipeline.run_tracker import RunTracker
from tests.helpers.fake_tools import FakeAdapter

pytestmark = [pytest.mark.unit, pytest.mark.pipeline]


def make_pipeline(config, **adapter_kwargs):
    adapter = FakeAdapter(**adapter_kwargs)
    pipeline = SubjectPipeline(config, adapter=adapter)
    adapter.bind(pipeline.stages)
    return pipeline, adapter


def test_full_pipeline_produces_connectome(study):
    pipeline, adapter = make_pipeline(study)

    run = pipeline.run()

    assert run.exit_code == 0, run.report()
    assert len(run.outcomes) == 40
    assert run.with_status(StageStatus.SUCCEEDED) == [s.id for s in pipeline.stages]
    assert adapter.calls[-1] == "connectome"
    assert pipeline.runner.store.exists("connectome")
    assert pipeline.layout.dwi("sc_schaefer400_10M.csv").exists()


def test_run_artifacts_written(study):
    pipeline, _ = make_pipeline(study)
    run = pipeline.run()
    layout = pipeline.layout

    assert layout.log_file.exists()
    assert layout.tracker_db.exists()

    table = pd.read_parquet(layout.run_table(run.run_id))
    assert len(table) == 40
    assert table["stage_id"].iloc[-1] == "connectome"

    saved = json.loads(layout.runtime_config(run.run_id).read_text())
    assert saved["run_id"] == run.run_id
    assert saved["subject"] == "sub-001"
    assert saved["tractography"]["streamlines"] == "10M"

    with RunTracker(layout.tracker_db) as tracker:
        assert tracker.get_statistics("sub-001")["succeeded"] == 40


def test_second_run_resumes_without_invocations(study):
    first, _ = make_pipeline(study)
    first.run()

    pipeline, adapter = make_pipeline(study)
    run = pipeline.run()

    assert adapter.calls == []
    assert run.with_status(StageStatus.SKIPPED) == [s.id for s in pipeline.stages]
    assert run.exit_code == 0


def test_force_mode_reruns_everything(study):
    first, _ = make_pipeline(study)
    first.run()

    pipeline, adapter = make_pipeline(study.model_copy(update={
        "runner": study.runner.model_copy(update={"mode": "force"})
    }))
    pipeline.run()

    assert len(adapter.calls) == 40


def test_failure_reports_first_failed_stage(study):
    pipeline, adapter = make_pipeline(study, fail={"dwi_preproc": (1, "eddy: out of memory")})

    run = pipeline.run()

    assert run.exit_code == 1
    assert run.failed_stage.stage_id == "dwi_preproc"
    assert "dwi_bias_correction" in run.never_attempted
    assert "dwi_preproc" in adapter.calls
    assert "dwi_bias_correction" not in adapter.calls
    # anatomical stages ran before the DWI branch
    assert run.status_of("atlas_to_native") == StageStatus.SUCCEEDED


def test_no_subject_is_value_error(internal_config):
    with pytest.raises(ValueError, match="No subject"):
        SubjectPipeline(internal_config, adapter=FakeAdapter())


def test_setup_logging_replaces_handlers(temp_dir):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("DEBUG", temp_dir / "logs" / "batch.log")
        setup_logging("DEBUG", temp_dir / "logs" / "batch.log")

        assert root.level == logging.DEBUG
        assert len(root.handlers) == 2
        assert (temp_dir / "logs" / "batch.log").exists()
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
            handler.close()
        for handler in saved_handlers:
            root.addHandler(handler)
        root.setLevel(saved_level)
