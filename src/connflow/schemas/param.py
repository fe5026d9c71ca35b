"""ParamConfig: Expert defaults for the connectome pipeline.

Every tool parameter and file name template used by the stage list has its
default here. The values reproduce the reference protocol: N4 + OASIS brain
extraction + SyN to MNI152NLin2009cAsym, FSL FAST, MRtrix3 preprocessing with
topup/eddy, MSMT-CSD, ACT tractography with SIFT2 and a Schaefer-400 connectome.

Runtime code NEVER reads from ParamConfig directly - it only receives InternalConfig.
"""

from typing import Literal, Optional
from pydantic import Field, field_validator
from connflow.schemas.base import ConnflowBaseModel


# =============================================================================
# Nested Configuration Models
# =============================================================================

class PathsConfig(ConnflowBaseModel):
    """Root directories."""
    bids_dir: str = "./BIDS"
    derivatives_dir: str = "./derivatives"
    template_dir: str = "./templates"
    atlas_dir: str = "./atlases"


class InputsConfig(ConnflowBaseModel):
    """Raw BIDS file name templates (``{subject}`` is substituted)."""
    t1w: str = "{subject}_run-1_T1w.nii"
    dwi: str = "{subject}_dir-PA_dwi.nii"
    bvec: str = "{subject}_dir-PA_dwi.bvec"
    bval: str = "{subject}_dir-PA_dwi.bval"
    reverse_pe_b0: str = "{subject}_acq-dwi_dir-AP_epi.nii"


class TemplatesConfig(ConnflowBaseModel):
    """Template and atlas file names."""
    oasis_template: str = "T_template0.nii.gz"
    oasis_probability_mask: str = "T_template0_BrainCerebellumProbabilityMask.nii.gz"
    oasis_registration_mask: str = "T_template0_BrainCerebellumRegistrationMask.nii.gz"
    mni_brain: str = "tpl-MNI152NLin2009cAsym_res-01_desc-brain_T1w.nii.gz"
    atlas: str = "Schaefer2018_400Parcels_7Networks_order_FSLMNI152_1mm.nii.gz"
    atlas_label: str = "schaefer400"


class N4Config(ConnflowBaseModel):
    """N4BiasFieldCorrection settings."""
    dimension: int = Field(3, ge=2, le=4)
    shrink_factor: int = Field(4, ge=1)
    bspline_fitting: str = "[200]"
    convergence: str = "[50x50x50x50,0.0000001]"


class BrainExtractionConfig(ConnflowBaseModel):
    """antsBrainExtraction.sh settings."""
    dimension: int = Field(3, ge=2, le=3)


class RegistrationConfig(ConnflowBaseModel):
    """Spatial normalization and T1w-to-DWI registration."""
    dimension: int = Field(3, ge=2, le=3, description="-d of antsRegistrationSyNQuick.sh and antsApplyTransforms")
    mni_transform_type: Literal["s", "b", "a", "r", "t"] = "s"
    b0_dof: Literal[6, 7, 9, 12] = 6


class SegmentationConfig(ConnflowBaseModel):
    """FSL FAST settings."""
    image_type: int = Field(1, ge=1, le=3, description="1=T1, 2=T2, 3=PD")
    classes: int = Field(3, ge=2)
    mrf_beta: float = Field(0.1, ge=0)
    bias_iterations: int = Field(4, ge=0)
    bias_fwhm: float = Field(20.0, gt=0)
    csf_label: int = 1
    gm_label: int = 2
    wm_label: int = 3


class DwiConfig(ConnflowBaseModel):
    """DWI preprocessing (MRtrix3 + FSL topup/eddy)."""
    degibbs_axes: str = "0,1"
    pe_dir: Literal["AP", "PA", "LR", "RL", "IS", "SI"] = "PA"
    readout_time: float = Field(0.0836197, gt=0)
    eddy_options: str = " --slm=linear --data_is_shelled"
    align_seepi: bool = True
    bias_algorithm: Literal["ants", "fsl"] = "ants"

    @field_validator("readout_time", mode="before")
    @classmethod
    def coerce_readout_time_to_float(cls, v):
        """Allow int or float for readout_time."""
        return float(v)


class ResponseConfig(ConnflowBaseModel):
    """dwi2response settings."""
    algorithm: Literal["dhollander"] = "dhollander"


class FodConfig(ConnflowBaseModel):
    """dwi2fod settings."""
    algorithm: Literal["msmt_csd"] = "msmt_csd"


class FiveTTConfig(ConnflowBaseModel):
    """5ttgen settings."""
    algorithm: Literal["fsl"] = "fsl"
    sgm_amyg_hipp: bool = True
    nocrop: bool = True


class TractographyConfig(ConnflowBaseModel):
    """tckgen settings."""
    streamlines: str = Field("10M", description="tckgen -select, MRtrix notation")
    min_length: float = Field(30.0, gt=0)
    max_length: float = Field(250.0, gt=0)
    cutoff: float = Field(0.06, gt=0)
    backtrack: bool = True

    @field_validator("streamlines", mode="before")
    @classmethod
    def coerce_streamlines(cls, v):
        """Accept integer counts as well as '10M' style strings."""
        return str(v)


class ConnectomeConfig(ConnflowBaseModel):
    """tck2connectome settings."""
    symmetric: bool = True
    zero_diagonal: bool = True
    scale_invnodevol: bool = True
    assignment_radial_search: float = Field(2.0, ge=0)


class ToolsConfig(ConnflowBaseModel):
    """External tool invocation."""
    overrides: dict[str, str] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)
    nthreads: Optional[int] = Field(None, ge=0, description="MRtrix3 -nthreads")
    timeout_sec: Optional[float] = Field(None, gt=0)


class RunnerConfig(ConnflowBaseModel):
    """Execution semantics."""
    mode: Literal["resume", "force"] = "resume"
    failure_policy: Literal["fail_fast", "skip_dependents"] = "fail_fast"
    min_artifact_bytes: int = Field(1, ge=1)


class BatchConfig(ConnflowBaseModel):
    """Multi-subject driver."""
    subject_glob: str = "sub-*"
    max_workers: int = Field(1, ge=1)


class OutputConfig(ConnflowBaseModel):
    """Output file configuration."""
    compression: Literal["snappy", "gzip", "lz4", "none"] = "snappy"
    save_run_table: bool = True


class LoggingConfig(ConnflowBaseModel):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


# =============================================================================
# Main ParamConfig
# =============================================================================

class ParamConfig(ConnflowBaseModel):
    """Complete expert configuration with all defaults.

    This is the single source of truth for all pipeline parameters.

    Usage
    -----
    This config is NOT used directly by runtime code. It serves as the
    base layer in config resolution:

        internal_cfg = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    subject: Optional[str] = None
    paths: PathsConfig = Field(default_factory=PathsConfig)
    inputs: InputsConfig = Field(default_factory=InputsConfig)
    templates: TemplatesConfig = Field(default_factory=TemplatesConfig)
    n4: N4Config = Field(default_factory=N4Config)
    brain_extraction: BrainExtractionConfig = Field(default_factory=BrainExtractionConfig)
    registration: RegistrationConfig = Field(default_factory=RegistrationConfig)
    segmentation: SegmentationConfig = Field(default_factory=SegmentationConfig)
    dwi: DwiConfig = Field(default_factory=DwiConfig)
    response: ResponseConfig = Field(default_factory=ResponseConfig)
    fod: FodConfig = Field(default_factory=FodConfig)
    fivett: FiveTTConfig = Field(default_factory=FiveTTConfig)
    tractography: TractographyConfig = Field(default_factory=TractographyConfig)
    connectome: ConnectomeConfig = Field(default_factory=ConnectomeConfig)
    tools: ToolsConfig = Field(default_factory=ToolsConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    batch: BatchConfig = Field(default_factory=BatchConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
