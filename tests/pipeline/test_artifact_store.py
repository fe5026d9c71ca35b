import pytest

from connflow.contracts import (
    ArtifactMissing,
    ArtifactNotRegistered,
    ArtifactProductionFailed,
    ContractViolation,
)
from connflow.pipeline.artifact_store import ArtifactStore
from connflow.pipeline.spaces import CoordinateSpace
from tests.helpers.fake_tools import touch

pytestmark = [pytest.mark.unit, pytest.mark.pipeline]


@pytest.fixture
def store(temp_dir):
    s = ArtifactStore("sub-001")
    s.register("t1w_raw", temp_dir / "T1w.nii", CoordinateSpace.NATIVE)
    s.register("t1w_n4", temp_dir / "T1w_n4.nii.gz", CoordinateSpace.NATIVE,
               produced_by="n4_bias_correction")
    return s


def test_registered_artifact_starts_invalid(store):
    assert store.path_of("t1w_n4").name == "T1w_n4.nii.gz"
    assert not store.exists("t1w_n4")
    with pytest.raises(ArtifactMissing):
        store.get("t1w_n4")


def test_mark_valid_absent_file_fails(store):
    with pytest.raises(ArtifactProductionFailed) as exc:
        store.mark_valid("t1w_n4")
    assert exc.value.reason == "file does not exist"
    assert store.valid_names() == []


def test_mark_valid_empty_file_fails(store, temp_dir):
    (temp_dir / "T1w_n4.nii.gz").write_bytes(b"")

    with pytest.raises(ArtifactProductionFailed):
        store.mark_valid("t1w_n4")
    assert store.valid_names() == []


def test_mark_valid_never_flips_existing_validity_on_failure(store, temp_dir):
    path = touch(temp_dir / "T1w_n4.nii.gz")
    store.mark_valid("t1w_n4")
    store.invalidate("t1w_n4")
    path.unlink()

    with pytest.raises(ArtifactProductionFailed):
        store.mark_valid("t1w_n4")
    assert "t1w_n4" not in store.valid_names()


def test_mark_valid_respects_min_bytes(temp_dir):
    store = ArtifactStore("sub-001", min_bytes=100)
    store.register("fa", touch(temp_dir / "FA.mif", b"tiny"), CoordinateSpace.DWI_B0,
                   produced_by="tensor_metrics")

    with pytest.raises(ArtifactProductionFailed, match="below minimum 100"):
        store.mark_valid("fa")


def test_mark_valid_and_get(store, temp_dir):
    touch(temp_dir / "T1w_n4.nii.gz")

    store.mark_valid("t1w_n4")

    artifact = store.get("t1w_n4")
    assert artifact.valid
    assert artifact.produced_by == "n4_bias_correction"
    assert not artifact.is_input
    assert store.exists("t1w_n4")


def test_exists_notices_deleted_file(store, temp_dir):
    path = touch(temp_dir / "T1w_n4.nii.gz")
    store.mark_valid("t1w_n4")
    path.unlink()

    assert not store.exists("t1w_n4")


def test_probe_does_not_mark_valid(store, temp_dir):
    touch(temp_dir / "T1w_n4.nii.gz")

    assert store.probe("t1w_n4")
    assert not store.exists("t1w_n4")
    assert not store.probe("unknown")


def test_unregistered_name(store):
    with pytest.raises(ArtifactNotRegistered):
        store.get("wm_fod")
    with pytest.raises(ArtifactNotRegistered):
        store.mark_valid("wm_fod")
    assert not store.exists("wm_fod")
    assert "wm_fod" not in store


def test_reregister_same_producer_resets_validity(store, temp_dir):
    touch(temp_dir / "T1w_n4.nii.gz")
    store.mark_valid("t1w_n4")

    store.register("t1w_n4", temp_dir / "T1w_n4.nii.gz", CoordinateSpace.NATIVE,
                   produced_by="n4_bias_correction")

    assert not store.exists("t1w_n4")
    assert len(store) == 2


def test_reregister_other_producer_is_contract_violation(store, temp_dir):
    with pytest.raises(ContractViolation, match="already produced by"):
        store.register("t1w_n4", temp_dir / "T1w_n4.nii.gz", CoordinateSpace.NATIVE,
                       produced_by="brain_extraction")


def test_reregister_other_path_is_contract_violation(store, temp_dir):
    with pytest.raises(ContractViolation):
        store.register("t1w_n4", temp_dir / "elsewhere.nii.gz", CoordinateSpace.NATIVE,
                       produced_by="n4_bias_correction")


def test_summary_and_produced_only(store, temp_dir):
    touch(temp_dir / "T1w.nii")
    store.mark_valid("t1w_raw")

    assert store.summary() == {'declared': 2, 'valid': 1, 'inputs': 1, 'produced': 1}
    assert [a.name for a in store.artifacts(produced_only=True)] == ["t1w_n4"]
    assert store.valid_names(produced_only=True) == []
    assert store.valid_names() == ["t1w_raw"]
