from pathlib import Path

import pytest

from connflow.layout import SubjectLayout


@pytest.fixture
def layout(make_config, tmp_path):
    config = make_config(
        SUBJECT="sub-001",
        BIDS_DIR=str(tmp_path / "BIDS"),
        DERIVATIVES_DIR=str(tmp_path / "derivatives"),
    )
    return SubjectLayout.from_config(config)


def test_setup_output_directories_creates_all(layout):
    dirs = layout.setup_output_directories()

    assert set(dirs.keys()) == {"base", "anat", "dwi", "logs"}
    for path in dirs.values():
        assert isinstance(path, Path)
        assert path.is_dir()


def test_setup_output_directories_is_idempotent(layout):
    assert layout.setup_output_directories() == layout.setup_output_directories()


def test_input_paths(layout, tmp_path):
    assert layout.anat_input == tmp_path / "BIDS" / "sub-001" / "anat"
    assert layout.input_file("dwi", "{subject}_dir-PA_dwi.bval") == (
        tmp_path / "BIDS" / "sub-001" / "dwi" / "sub-001_dir-PA_dwi.bval"
    )
    with pytest.raises(KeyError):
        layout.input_file("func", "{subject}_bold.nii")


def test_output_paths(layout, tmp_path):
    base = tmp_path / "derivatives" / "sub-001"
    assert layout.anat("T1w_n4.nii.gz") == base / "anat" / "sub-001_T1w_n4.nii.gz"
    assert layout.dwi("wmfod.mif") == base / "dwi" / "wmfod.mif"
    assert layout.log_file == base / "logs" / "pipeline_sub-001.log"
    assert layout.tracker_db == base / "logs" / "sub-001_pipeline_runs.db"
    assert layout.run_table("r1") == base / "logs" / "sub-001_stages_r1.parquet"
    assert layout.runtime_config("r1") == base / "logs" / "runtime_config_r1.json"


def test_subject_argument_overrides_config(make_config):
    layout = SubjectLayout.from_config(make_config(SUBJECT="sub-001"), subject="sub-002")
    assert layout.subject == "sub-002"


def test_missing_subject(internal_config):
    with pytest.raises(ValueError):
        SubjectLayout.from_config(internal_config)
