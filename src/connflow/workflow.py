"""Stage list of the structural connectome pipeline.

Seven parts, each a run of single-tool stages:

1. T1w preprocessing: N4 bias correction, brain extraction (OASIS template),
   SyN normalization to MNI, FAST tissue segmentation, binary tissue masks,
   Schaefer atlas from MNI to native space.
2. DWI preprocessing: conversion, MP-PCA denoising, Gibbs unringing,
   topup/eddy with a reverse phase-encoded b0 pair, bias correction, mask.
3. T1w-DWI registration: rigid T1w -> mean b0, then T1w, brain mask and atlas
   resampled into b0 space.
4. Tensor fit and metrics (FA, MD, AD, RD).
5. Response functions, MSMT-CSD and intensity normalisation.
6. ACT tractography seeded at the GM-WM interface, SIFT2 weights.
7. SIFT2-weighted connectome on the b0-space atlas.

Artifacts are referenced by name; the runner resolves names to paths, so the
argument lists here only encode tool options and data flow.
"""

import logging
from pathlib import Path
from typing import Dict, List

from connflow.layout import SubjectLayout
from connflow.pipeline.spaces import CoordinateSpace, TransformKind
from connflow.pipeline.stage import (
    ArtifactDecl,
    ChainArgs,
    Ref,
    StageSpec,
    TransformDecl,
    XfmRef,
)

__all__ = [
    'build_external_inputs',
    'build_connectome_stages',
    'CONNECTOME',
    'MNI_TRANSFORMS',
    'B0_TRANSFORM',
]

logger = logging.getLogger(__name__)

NATIVE = CoordinateSpace.NATIVE
MNI = CoordinateSpace.MNI
B0 = CoordinateSpace.DWI_B0

# Names other code refers to
CONNECTOME = "connectome"
MNI_TRANSFORMS = ("t1w_to_mni_affine", "t1w_to_mni_warp")
B0_TRANSFORM = "t1w_to_b0_affine"
B0_INVERSE_TRANSFORM = "b0_to_t1w_affine"


def _num(value) -> str:
    """Render a number the way the tools expect it (30 rather than 30.0)."""
    value = float(value)
    return str(int(value)) if value.is_integer() else repr(value)


def _mrtrix_options(config) -> List[str]:
    # MRtrix3 refuses to overwrite outputs without -force
    options = ["-force"]
    if config.tools.nthreads is not None:
        options += ["-nthreads", str(config.tools.nthreads)]
    return options


def _out(path: Path, space: CoordinateSpace) -> ArtifactDecl:
    return ArtifactDecl(path=path, space=space)


def build_external_inputs(config, layout: SubjectLayout) -> Dict[str, ArtifactDecl]:
    """Raw scans, templates and atlas consumed by the pipeline.

    Template-space files are tagged MNI; the OASIS template is only used as
    a brain-extraction prior and never enters a transform chain.
    """
    inputs = config.inputs
    templates = config.templates
    return {
        "t1w_raw": _out(layout.input_file("anat", inputs.t1w), NATIVE),
        "dwi_raw": _out(layout.input_file("dwi", inputs.dwi), B0),
        "dwi_bvec": _out(layout.input_file("dwi", inputs.bvec), B0),
        "dwi_bval": _out(layout.input_file("dwi", inputs.bval), B0),
        "b0_ap_raw": _out(layout.input_file("fmap", inputs.reverse_pe_b0), B0),
        "oasis_template": _out(layout.template(templates.oasis_template), MNI),
        "oasis_probability_mask": _out(layout.template(templates.oasis_probability_mask), MNI),
        "oasis_registration_mask": _out(layout.template(templates.oasis_registration_mask), MNI),
        "mni_brain": _out(layout.template(templates.mni_brain), MNI),
        "atlas_mni": _out(layout.atlas(templates.atlas), MNI),
    }


# =============================================================================
# Part 1: T1w anatomical preprocessing
# =============================================================================

def _anatomical_stages(config, layout: SubjectLayout) -> List[StageSpec]:
    n4 = config.n4
    seg = config.segmentation
    mni_prefix = layout.anat("T1w_to_MNI_")
    seg_prefix = layout.anat("T1w_brain_seg")
    atlas_label = config.templates.atlas_label

    stages = [
        StageSpec(
            id="n4_bias_correction",
            tool="N4BiasFieldCorrection",
            args=("-d", str(n4.dimension),
                  "-i", Ref("t1w_raw"),
                  "-o", Ref("t1w_n4"),
                  "-s", str(n4.shrink_factor),
                  "-b", n4.bspline_fitting,
                  "-c", n4.convergence),
            requires={"t1w_raw"},
            produces={"t1w_n4": _out(layout.anat("T1w_n4.nii.gz"), NATIVE)},
            description="Intensity non-uniformity correction",
        ),
        StageSpec(
            id="brain_extraction",
            tool="antsBrainExtraction.sh",
            args=("-d", str(config.brain_extraction.dimension),
                  "-a", Ref("t1w_n4"),
                  "-e", Ref("oasis_template"),
                  "-m", Ref("oasis_probability_mask"),
                  "-f", Ref("oasis_registration_mask"),
                  "-o", str(layout.anat("T1w_"))),
            requires={"t1w_n4", "oasis_template", "oasis_probability_mask",
                      "oasis_registration_mask"},
            produces={
                "t1w_brain": _out(layout.anat("T1w_BrainExtractionBrain.nii.gz"), NATIVE),
                "t1w_brain_mask": _out(layout.anat("T1w_BrainExtractionMask.nii.gz"), NATIVE),
            },
            idempotent=False,
            description="Skull stripping with the OASIS template",
        ),
        StageSpec(
            id="mni_normalization",
            tool="antsRegistrationSyNQuick.sh",
            args=("-d", str(config.registration.dimension),
                  "-f", Ref("mni_brain"),
                  "-m", Ref("t1w_brain"),
                  "-o", str(mni_prefix),
                  "-t", config.registration.mni_transform_type),
            requires={"mni_brain", "t1w_brain"},
            produces={"t1w_in_mni": _out(Path(f"{mni_prefix}Warped.nii.gz"), MNI)},
            produces_transforms={
                MNI_TRANSFORMS[0]: TransformDecl(
                    NATIVE, MNI, TransformKind.AFFINE,
                    Path(f"{mni_prefix}0GenericAffine.mat"),
                ),
                MNI_TRANSFORMS[1]: TransformDecl(
                    NATIVE, MNI, TransformKind.WARP,
                    Path(f"{mni_prefix}1Warp.nii.gz"),
                    inverse_path=Path(f"{mni_prefix}1InverseWarp.nii.gz"),
                ),
            },
            idempotent=False,
            description="Affine + SyN normalization of the brain to MNI",
        ),
        StageSpec(
            id="tissue_segmentation",
            tool="fast",
            args=("-t", str(seg.image_type),
                  "-n", str(seg.classes),
                  "-H", _num(seg.mrf_beta),
                  "-I", str(seg.bias_iterations),
                  "-l", repr(float(seg.bias_fwhm)),
                  "-o", str(seg_prefix),
                  Ref("t1w_brain")),
            requires={"t1w_brain"},
            produces={"t1w_seg": _out(Path(f"{seg_prefix}_seg.nii.gz"), NATIVE)},
            idempotent=False,
            description="CSF/GM/WM segmentation with FSL FAST",
        ),
    ]

    for tissue, label in (("csf", seg.csf_label), ("gm", seg.gm_label), ("wm", seg.wm_label)):
        name = f"{tissue}_mask"
        stages.append(StageSpec(
            id=f"{tissue}_mask",
            tool="fslmaths",
            args=(Ref("t1w_seg"), "-thr", str(label), "-uthr", str(label), "-bin", Ref(name)),
            requires={"t1w_seg"},
            produces={name: _out(layout.anat(f"T1w_{tissue.upper()}_mask.nii.gz"), NATIVE)},
            description=f"Binary {tissue.upper()} mask (label {label})",
        ))

    stages.append(StageSpec(
        id="atlas_to_native",
        tool="antsApplyTransforms",
        args=("-d", str(config.registration.dimension),
              "-i", Ref("atlas_mni"),
              "-r", Ref("t1w_brain"),
              "-o", Ref("atlas_native"),
              "-n", "NearestNeighbor",
              ChainArgs(MNI, NATIVE, "ants")),
        requires={"atlas_mni", "t1w_brain"},
        requires_transforms=set(MNI_TRANSFORMS),
        produces={"atlas_native": _out(layout.anat_output / f"{atlas_label}.nii.gz", NATIVE)},
        description="Parcellation from MNI to native T1w space",
    ))
    return stages


# =============================================================================
# Part 2: DWI preprocessing
# =============================================================================

def _dwi_stages(config, layout: SubjectLayout) -> List[StageSpec]:
    force = _mrtrix_options(config)
    dwi = config.dwi
    d = layout.dwi

    preproc_args = [Ref("dwi_degibbs"), Ref("dwi_preproc"),
                    "-pe_dir", dwi.pe_dir,
                    "-rpe_pair",
                    "-se_epi", Ref("b0_pair")]
    if dwi.align_seepi:
        preproc_args.append("-align_seepi")
    preproc_args += ["-readout_time", _num(dwi.readout_time),
                     "-eddy_options", dwi.eddy_options]

    return [
        StageSpec(
            id="dwi_convert",
            tool="mrconvert",
            args=(Ref("dwi_raw"), Ref("dwi"),
                  "-fslgrad", Ref("dwi_bvec"), Ref("dwi_bval"), *force),
            requires={"dwi_raw", "dwi_bvec", "dwi_bval"},
            produces={"dwi": _out(d("dwi.mif"), B0)},
            description="NIfTI + bvec/bval to MIF",
        ),
        StageSpec(
            id="dwi_denoise",
            tool="dwidenoise",
            args=(Ref("dwi"), Ref("dwi_denoised"), *force),
            requires={"dwi"},
            produces={"dwi_denoised": _out(d("dwi_den.mif"), B0)},
            description="MP-PCA denoising",
        ),
        StageSpec(
            id="dwi_degibbs",
            tool="mrdegibbs",
            args=(Ref("dwi_denoised"), Ref("dwi_degibbs"), "-axes", dwi.degibbs_axes, *force),
            requires={"dwi_denoised"},
            produces={"dwi_degibbs": _out(d("dwi_den_unr.mif"), B0)},
            description="Gibbs ringing removal",
        ),
        StageSpec(
            id="b0_pa_extract",
            tool="dwiextract",
            args=(Ref("dwi_degibbs"), Ref("b0_pa"), "-bzero", *force),
            requires={"dwi_degibbs"},
            produces={"b0_pa": _out(d("b0_PA.mif"), B0)},
        ),
        StageSpec(
            id="b0_pa_mean",
            tool="mrmath",
            args=(Ref("b0_pa"), "mean", Ref("b0_pa_mean"), "-axis", "3", *force),
            requires={"b0_pa"},
            produces={"b0_pa_mean": _out(d("b0_PA_mean.mif"), B0)},
        ),
        StageSpec(
            id="b0_ap_convert",
            tool="mrconvert",
            args=(Ref("b0_ap_raw"), Ref("b0_ap"), *force),
            requires={"b0_ap_raw"},
            produces={"b0_ap": _out(d("b0_AP.mif"), B0)},
        ),
        StageSpec(
            id="b0_ap_mean",
            tool="mrmath",
            args=(Ref("b0_ap"), "mean", Ref("b0_ap_mean"), "-axis", "3", *force),
            requires={"b0_ap"},
            produces={"b0_ap_mean": _out(d("b0_AP_mean.mif"), B0)},
        ),
        StageSpec(
            id="b0_pair",
            tool="mrcat",
            args=(Ref("b0_pa_mean"), Ref("b0_ap_mean"), Ref("b0_pair"), "-axis", "3", *force),
            requires={"b0_pa_mean", "b0_ap_mean"},
            produces={"b0_pair": _out(d("b0_pair.mif"), B0)},
            description="Reverse phase-encoded b0 pair for topup",
        ),
        StageSpec(
            id="dwi_preproc",
            tool="dwifslpreproc",
            args=(*preproc_args, *force),
            requires={"dwi_degibbs", "b0_pair"},
            produces={"dwi_preproc": _out(d("dwi_den_unr_preproc.mif"), B0)},
            description="Motion, eddy-current and susceptibility correction",
        ),
        StageSpec(
            id="dwi_bias_correction",
            tool="dwibiascorrect",
            args=(dwi.bias_algorithm, Ref("dwi_preproc"), Ref("dwi_unbiased"),
                  "-bias", Ref("dwi_bias_field"), *force),
            requires={"dwi_preproc"},
            produces={
                "dwi_unbiased": _out(d("dwi_den_unr_preproc_unbiased.mif"), B0),
                "dwi_bias_field": _out(d("bias.mif"), B0),
            },
        ),
        StageSpec(
            id="dwi_mask",
            tool="dwi2mask",
            args=(Ref("dwi_unbiased"), Ref("dwi_mask"), *force),
            requires={"dwi_unbiased"},
            produces={"dwi_mask": _out(d("dwi_mask.mif"), B0)},
        ),
    ]


# =============================================================================
# Part 3: T1w-DWI registration
# =============================================================================

def _registration_stages(config, layout: SubjectLayout) -> List[StageSpec]:
    force = _mrtrix_options(config)
    d = layout.dwi
    atlas_label = config.templates.atlas_label
    to_b0 = ChainArgs(NATIVE, B0, "flirt")

    return [
        StageSpec(
            id="b0_preproc_extract",
            tool="dwiextract",
            args=(Ref("dwi_unbiased"), Ref("b0_preproc"), "-bzero", *force),
            requires={"dwi_unbiased"},
            produces={"b0_preproc": _out(d("b0_PA_preproc.mif"), B0)},
        ),
        StageSpec(
            id="b0_preproc_mean",
            tool="mrmath",
            args=(Ref("b0_preproc"), "mean", Ref("b0_preproc_mean"), "-axis", "3", *force),
            requires={"b0_preproc"},
            produces={"b0_preproc_mean": _out(d("b0_PA_preproc_mean.mif"), B0)},
        ),
        StageSpec(
            id="b0_reference",
            tool="mrconvert",
            args=(Ref("b0_preproc_mean"), Ref("b0_reference"), *force),
            requires={"b0_preproc_mean"},
            produces={"b0_reference": _out(d("b0_PA_preproc_mean.nii.gz"), B0)},
            description="Mean preprocessed b0 as NIfTI registration target",
        ),
        StageSpec(
            id="t1w_to_b0_registration",
            tool="flirt",
            args=("-in", Ref("t1w_brain"),
                  "-ref", Ref("b0_reference"),
                  "-out", Ref("t1w_brain_b0"),
                  "-omat", XfmRef(B0_TRANSFORM),
                  "-dof", str(config.registration.b0_dof)),
            requires={"t1w_brain", "b0_reference"},
            produces={"t1w_brain_b0": _out(d("T1w_Brain_b0.nii.gz"), B0)},
            produces_transforms={
                B0_TRANSFORM: TransformDecl(
                    NATIVE, B0, TransformKind.AFFINE, d("T1w_to_b0.mat"), matrix_format="fsl",
                ),
            },
            description="Rigid T1w brain to mean b0",
        ),
        StageSpec(
            id="b0_to_t1w_inverse",
            tool="convert_xfm",
            args=("-omat", XfmRef(B0_INVERSE_TRANSFORM), "-inverse", XfmRef(B0_TRANSFORM)),
            requires_transforms={B0_TRANSFORM},
            produces_transforms={
                B0_INVERSE_TRANSFORM: TransformDecl(
                    B0, NATIVE, TransformKind.AFFINE, d("b0_to_T1w.mat"), matrix_format="fsl",
                ),
            },
            description="Explicit b0 to T1w matrix",
        ),
        StageSpec(
            id="t1w_head_to_b0",
            tool="flirt",
            args=("-in", Ref("t1w_n4"),
                  "-ref", Ref("b0_reference"),
                  "-out", Ref("t1w_b0"),
                  to_b0,
                  "-applyxfm"),
            requires={"t1w_n4", "b0_reference"},
            requires_transforms={B0_TRANSFORM},
            produces={"t1w_b0": _out(d("T1w_b0.nii.gz"), B0)},
            description="Bias-corrected T1w (with skull) resampled to b0",
        ),
        StageSpec(
            id="t1w_mask_to_b0",
            tool="flirt",
            args=("-in", Ref("t1w_brain_mask"),
                  "-ref", Ref("b0_reference"),
                  "-out", Ref("t1w_mask_b0_nii"),
                  to_b0,
                  "-applyxfm",
                  "-interp", "nearestneighbour"),
            requires={"t1w_brain_mask", "b0_reference"},
            requires_transforms={B0_TRANSFORM},
            produces={"t1w_mask_b0_nii": _out(d("T1w_mask_b0.nii.gz"), B0)},
        ),
        StageSpec(
            id="t1w_mask_to_mif",
            tool="mrconvert",
            args=(Ref("t1w_mask_b0_nii"), Ref("t1w_mask_b0"), *force),
            requires={"t1w_mask_b0_nii"},
            produces={"t1w_mask_b0": _out(d("T1w_mask_b0.mif"), B0)},
        ),
        StageSpec(
            id="dwi_masking",
            tool="mrcalc",
            args=(Ref("dwi_unbiased"), Ref("t1w_mask_b0"), "-mult", Ref("dwi_masked"), *force),
            requires={"dwi_unbiased", "t1w_mask_b0"},
            produces={"dwi_masked": _out(d("dwi_preproc_masked.mif"), B0)},
            description="Preprocessed DWI masked with the T1w brain mask",
        ),
        StageSpec(
            id="atlas_to_b0",
            tool="flirt",
            args=("-in", Ref("atlas_native"),
                  "-ref", Ref("b0_reference"),
                  "-out", Ref("atlas_b0_nii"),
                  to_b0,
                  "-applyxfm",
                  "-interp", "nearestneighbour"),
            requires={"atlas_native", "b0_reference"},
            requires_transforms={B0_TRANSFORM},
            produces={"atlas_b0_nii": _out(d(f"{atlas_label}_b0.nii.gz"), B0)},
            description="Native-space parcellation resampled to b0",
        ),
        StageSpec(
            id="atlas_b0_to_mif",
            tool="mrconvert",
            args=(Ref("atlas_b0_nii"), Ref("atlas_b0"), *force),
            requires={"atlas_b0_nii"},
            produces={"atlas_b0": _out(d(f"{atlas_label}_b0.mif"), B0)},
        ),
    ]


# =============================================================================
# Parts 4-7: models, tractography, connectome
# =============================================================================

def _model_stages(config, layout: SubjectLayout) -> List[StageSpec]:
    force = _mrtrix_options(config)
    d = layout.dwi
    fivett = config.fivett

    fivett_args = [config.fivett.algorithm, Ref("t1w_b0"), Ref("fivett")]
    if fivett.sgm_amyg_hipp:
        fivett_args.append("-sgm_amyg_hipp")
    if fivett.nocrop:
        fivett_args.append("-nocrop")

    return [
        StageSpec(
            id="tensor_fit",
            tool="dwi2tensor",
            args=(Ref("dwi_masked"), Ref("tensor"), "-mask", Ref("t1w_mask_b0"), *force),
            requires={"dwi_masked", "t1w_mask_b0"},
            produces={"tensor": _out(d("tensor.mif"), B0)},
        ),
        StageSpec(
            id="tensor_metrics",
            tool="tensor2metric",
            args=(Ref("tensor"),
                  "-fa", Ref("fa"),
                  "-adc", Ref("md"),
                  "-ad", Ref("ad"),
                  "-rd", Ref("rd"),
                  "-vector", Ref("dti_vector"),
                  "-mask", Ref("t1w_mask_b0"), *force),
            requires={"tensor", "t1w_mask_b0"},
            produces={
                "fa": _out(d("FA.mif"), B0),
                "md": _out(d("MD.mif"), B0),
                "ad": _out(d("AD.mif"), B0),
                "rd": _out(d("RD.mif"), B0),
                "dti_vector": _out(d("vector.mif"), B0),
            },
        ),
        StageSpec(
            id="response_estimation",
            tool="dwi2response",
            args=(config.response.algorithm, Ref("dwi_masked"),
                  Ref("wm_response"), Ref("gm_response"), Ref("csf_response"),
                  "-voxels", Ref("response_voxels"), *force),
            requires={"dwi_masked"},
            produces={
                "wm_response": _out(d("wm_response.txt"), B0),
                "gm_response": _out(d("gm_response.txt"), B0),
                "csf_response": _out(d("csf_response.txt"), B0),
                "response_voxels": _out(d("RF_voxels.mif"), B0),
            },
        ),
        StageSpec(
            id="fod_estimation",
            tool="dwi2fod",
            args=(config.fod.algorithm, Ref("dwi_masked"),
                  "-mask", Ref("t1w_mask_b0"),
                  Ref("wm_response"), Ref("wm_fod"),
                  Ref("gm_response"), Ref("gm_fod"),
                  Ref("csf_response"), Ref("csf_fod"), *force),
            requires={"dwi_masked", "t1w_mask_b0", "wm_response", "gm_response", "csf_response"},
            produces={
                "wm_fod": _out(d("wmfod.mif"), B0),
                "gm_fod": _out(d("gm.mif"), B0),
                "csf_fod": _out(d("csf.mif"), B0),
            },
            description="Multi-shell multi-tissue CSD",
        ),
        StageSpec(
            id="fod_normalization",
            tool="mtnormalise",
            args=(Ref("wm_fod"), Ref("wm_fod_norm"),
                  Ref("gm_fod"), Ref("gm_fod_norm"),
                  Ref("csf_fod"), Ref("csf_fod_norm"),
                  "-mask", Ref("t1w_mask_b0"), *force),
            requires={"wm_fod", "gm_fod", "csf_fod", "t1w_mask_b0"},
            produces={
                "wm_fod_norm": _out(d("wmfod_norm.mif"), B0),
                "gm_fod_norm": _out(d("gm_norm.mif"), B0),
                "csf_fod_norm": _out(d("csf_norm.mif"), B0),
            },
        ),
        StageSpec(
            id="fivett_generation",
            tool="5ttgen",
            args=(*fivett_args, *force),
            requires={"t1w_b0"},
            produces={"fivett": _out(d("T1w_5tt.mif"), B0)},
            description="Five-tissue-type image for ACT",
        ),
        StageSpec(
            id="gmwm_interface",
            tool="5tt2gmwmi",
            args=(Ref("fivett"), Ref("gmwm_seed"), *force),
            requires={"fivett"},
            produces={"gmwm_seed": _out(d("gmwmSeed.mif"), B0)},
        ),
    ]


def _tractography_stages(config, layout: SubjectLayout) -> List[StageSpec]:
    force = _mrtrix_options(config)
    d = layout.dwi
    tract = config.tractography
    conn = config.connectome
    count = tract.streamlines
    atlas_label = config.templates.atlas_label

    tckgen_args = ["-act", Ref("fivett")]
    if tract.backtrack:
        tckgen_args.append("-backtrack")
    tckgen_args += ["-seed_gmwmi", Ref("gmwm_seed"),
                    "-minlength", _num(tract.min_length),
                    "-maxlength", _num(tract.max_length),
                    "-cutoff", _num(tract.cutoff),
                    "-select", count,
                    Ref("wm_fod_norm"), Ref("tractogram")]

    connectome_args = []
    if conn.symmetric:
        connectome_args.append("-symmetric")
    if conn.zero_diagonal:
        connectome_args.append("-zero_diagonal")
    if conn.scale_invnodevol:
        connectome_args.append("-scale_invnodevol")
    connectome_args += ["-assignment_radial_search", _num(conn.assignment_radial_search),
                        "-tck_weights_in", Ref("sift2_weights"),
                        Ref("tractogram"), Ref("atlas_b0"), Ref(CONNECTOME)]

    return [
        StageSpec(
            id="tractography",
            tool="tckgen",
            args=(*tckgen_args, *force),
            requires={"fivett", "gmwm_seed", "wm_fod_norm"},
            produces={"tractogram": _out(d(f"tracks_{count}.tck"), B0)},
            description="Whole-brain ACT tractography",
        ),
        StageSpec(
            id="sift2",
            tool="tcksift2",
            args=("-act", Ref("fivett"), Ref("tractogram"), Ref("wm_fod_norm"),
                  Ref("sift2_weights"), *force),
            requires={"fivett", "tractogram", "wm_fod_norm"},
            produces={"sift2_weights": _out(d(f"sift_{count}.txt"), B0)},
        ),
        StageSpec(
            id="connectome",
            tool="tck2connectome",
            args=(*connectome_args, *force),
            requires={"sift2_weights", "tractogram", "atlas_b0"},
            produces={CONNECTOME: _out(d(f"sc_{atlas_label}_{count}.csv"), B0)},
            description="SIFT2-weighted structural connectivity matrix",
        ),
    ]


def build_connectome_stages(config, layout: SubjectLayout) -> List[StageSpec]:
    """Build the ordered stage list for one subject.

    Parameters
    ----------
    config : InternalConfig
        Resolved configuration (tool parameters and file name templates).
    layout : SubjectLayout
        Input and output paths of the subject.

    Returns
    -------
    list of StageSpec
        Stages in execution order. Validate with ``validate_stage_dag``
        (``PipelineRunner`` does this on construction).
    """
    stages = (
        _anatomical_stages(config, layout)
        + _dwi_stages(config, layout)
        + _registration_stages(config, layout)
        + _model_stages(config, layout)
        + _tractography_stages(config, layout)
    )
    logger.debug("Built %d stages for %s", len(stages), layout.subject)
    return stages
