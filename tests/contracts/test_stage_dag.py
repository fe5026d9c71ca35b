"""Definition-time validation of stage lists."""

from pathlib import Path

import pytest

from connflow.contracts import ContractViolation, require, validate_stage_dag
from connflow.pipeline.spaces import CoordinateSpace, TransformKind
from connflow.pipeline.stage import ArtifactDecl, Ref, StageSpec, TransformDecl, XfmRef

pytestmark = pytest.mark.unit

NATIVE = CoordinateSpace.NATIVE


def out(name):
    return ArtifactDecl(Path(f"/derivatives/sub-001/{name}.nii.gz"), NATIVE)


def stage(sid, requires=(), produces=(), **kwargs):
    return StageSpec(
        id=sid,
        tool=f"tool_{sid}",
        requires=set(requires),
        produces={name: out(name) for name in produces},
        **kwargs,
    )


def test_require_passes_and_raises():
    require(True, "not raised")
    with pytest.raises(ContractViolation, match="broken"):
        require(False, "broken")


def test_valid_chain_of_stages():
    stages = [
        stage("n4", ["t1w_raw"], ["t1w_n4"]),
        stage("bet", ["t1w_n4"], ["t1w_brain", "t1w_mask"]),
        stage("seg", ["t1w_brain"], ["t1w_seg"]),
        stage("csf", ["t1w_seg"], ["csf_mask"]),
    ]

    graph = validate_stage_dag(stages, ["t1w_raw"])

    assert graph.order == ["n4", "bet", "seg", "csf"]
    assert graph.producers["t1w_raw"] is None
    assert graph.producers["t1w_mask"] == "bet"
    assert graph.dependencies["seg"] == {"bet"}
    assert graph.dependencies["n4"] == set()


def test_dependents_and_ancestors_are_transitive():
    stages = [
        stage("a", ["raw"], ["x"]),
        stage("b", ["x"], ["y"]),
        stage("c", ["y"], ["z"]),
        stage("d", ["raw"], ["w"]),
    ]
    graph = validate_stage_dag(stages, ["raw"])

    assert graph.dependents("a") == {"b", "c"}
    assert graph.dependents("d") == set()
    assert graph.ancestors("c") == {"a", "b"}


def test_forward_reference_rejected():
    stages = [
        stage("seg", ["t1w_brain"], ["t1w_seg"]),
        stage("bet", ["t1w_raw"], ["t1w_brain"]),
    ]
    with pytest.raises(ContractViolation, match="later stage 'bet'"):
        validate_stage_dag(stages, ["t1w_raw"])


def test_cycle_rejected():
    stages = [
        stage("a", ["y"], ["x"]),
        stage("b", ["x"], ["y"]),
    ]
    with pytest.raises(ContractViolation, match="cycle"):
        validate_stage_dag(stages)


def test_stage_requiring_own_output_is_a_cycle():
    stages = [stage("a", ["x"], ["x"])]
    with pytest.raises(ContractViolation, match="cycle"):
        validate_stage_dag(stages)


def test_missing_producer_rejected():
    stages = [stage("a", ["nothing_makes_this"], ["x"])]
    with pytest.raises(ContractViolation, match="which nothing produces"):
        validate_stage_dag(stages)


def test_duplicate_producer_rejected():
    stages = [
        stage("a", ["raw"], ["x"]),
        stage("b", ["raw"], ["x"]),
    ]
    with pytest.raises(ContractViolation, match="produced by both 'a' and 'b'"):
        validate_stage_dag(stages, ["raw"])


def test_stage_cannot_produce_external_input():
    stages = [stage("a", ["raw"], ["raw"])]
    with pytest.raises(ContractViolation, match="external input"):
        validate_stage_dag(stages, ["raw"])


def test_duplicate_stage_id_rejected():
    stages = [stage("a", ["raw"], ["x"]), stage("a", ["x"], ["y"])]
    with pytest.raises(ContractViolation, match="Duplicate stage id"):
        validate_stage_dag(stages, ["raw"])


def test_undeclared_artifact_in_arguments_rejected():
    bad = StageSpec(
        id="n4",
        tool="N4BiasFieldCorrection",
        args=("-i", Ref("t1w_raw"), "-o", Ref("t1w_n4"), "-x", Ref("t1w_brain")),
        requires={"t1w_raw"},
        produces={"t1w_n4": out("t1w_n4")},
    )
    with pytest.raises(ContractViolation, match=r"undeclared artifacts \['t1w_brain'\]"):
        validate_stage_dag([bad], ["t1w_raw"])


def test_undeclared_transform_in_arguments_rejected():
    producer = StageSpec(
        id="flirt",
        tool="flirt",
        args=("-omat", XfmRef("t1w_to_b0")),
        produces_transforms={
            "t1w_to_b0": TransformDecl(NATIVE, CoordinateSpace.DWI_B0, TransformKind.AFFINE,
                                       Path("/derivatives/T1w_to_b0.mat")),
        },
    )
    consumer = StageSpec(
        id="invert",
        tool="convert_xfm",
        args=("-inverse", XfmRef("t1w_to_b0")),
    )
    with pytest.raises(ContractViolation, match="undeclared transforms"):
        validate_stage_dag([producer, consumer])


def test_transform_requirement_creates_dependency():
    producer = StageSpec(
        id="flirt",
        tool="flirt",
        produces_transforms={
            "t1w_to_b0": TransformDecl(NATIVE, CoordinateSpace.DWI_B0, TransformKind.AFFINE,
                                       Path("/derivatives/T1w_to_b0.mat")),
        },
    )
    consumer = StageSpec(
        id="invert",
        tool="convert_xfm",
        args=("-inverse", XfmRef("t1w_to_b0")),
        requires_transforms={"t1w_to_b0"},
    )

    graph = validate_stage_dag([producer, consumer])

    assert graph.dependencies["invert"] == {"flirt"}
