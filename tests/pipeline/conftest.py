import pytest

from connflow.pipeline.run_tracker import RunTracker
from connflow.pipeline.runner import PipelineRunner
from tests.helpers.fake_tools import FakeAdapter, five_stage_pipeline, write_inputs


@pytest.fixture
def tracker(temp_dir):
    db_path = temp_dir / "runs.db"
    t = RunTracker(db_path)
    yield t
    t.close()


@pytest.fixture
def five_stages(temp_dir):
    """(stages, inputs) of the reduced T1w pipeline, inputs written to disk."""
    stages, inputs = five_stage_pipeline(temp_dir)
    write_inputs(inputs)
    return stages, inputs


@pytest.fixture
def make_runner(five_stages):
    """Factory for runners over the five-stage pipeline.

    Returns a callable ``(adapter=None, **runner_kwargs) -> (runner, adapter)``.
    """
    stages, inputs = five_stages

    def _make(adapter=None, **kwargs):
        adapter = adapter or FakeAdapter(stages)
        runner = PipelineRunner("sub-001", stages, inputs, adapter, **kwargs)
        return runner, adapter

    return _make
