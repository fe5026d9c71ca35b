"""InternalConfig: Authoritative runtime configuration.

This is the ONLY config schema that runtime code sees. It is fully validated,
normalized, and contains NO optional fields that processing code depends on.
"""

from typing import Literal, Optional
from pydantic import Field, ConfigDict
from connflow.schemas.base import ConnflowBaseModel


# =============================================================================
# Nested Configuration Models (Runtime)
# =============================================================================

class InternalPathsConfig(ConnflowBaseModel):
    """Runtime root directories."""
    bids_dir: str
    derivatives_dir: str
    template_dir: str
    atlas_dir: str


class InternalInputsConfig(ConnflowBaseModel):
    """Runtime input file name templates."""
    t1w: str
    dwi: str
    bvec: str
    bval: str
    reverse_pe_b0: str


class InternalTemplatesConfig(ConnflowBaseModel):
    """Runtime template and atlas file names."""
    oasis_template: str
    oasis_probability_mask: str
    oasis_registration_mask: str
    mni_brain: str
    atlas: str
    atlas_label: str


class InternalN4Config(ConnflowBaseModel):
    dimension: int
    shrink_factor: int
    bspline_fitting: str
    convergence: str


class InternalBrainExtractionConfig(ConnflowBaseModel):
    dimension: int


class InternalRegistrationConfig(ConnflowBaseModel):
    dimension: int
    mni_transform_type: Literal["s", "b", "a", "r", "t"]
    b0_dof: Literal[6, 7, 9, 12]


class InternalSegmentationConfig(ConnflowBaseModel):
    image_type: int
    classes: int
    mrf_beta: float
    bias_iterations: int
    bias_fwhm: float
    csf_label: int
    gm_label: int
    wm_label: int


class InternalDwiConfig(ConnflowBaseModel):
    degibbs_axes: str
    pe_dir: Literal["AP", "PA", "LR", "RL", "IS", "SI"]
    readout_time: float = Field(gt=0)
    eddy_options: str
    align_seepi: bool
    bias_algorithm: Literal["ants", "fsl"]


class InternalResponseConfig(ConnflowBaseModel):
    algorithm: Literal["dhollander"]


class InternalFodConfig(ConnflowBaseModel):
    algorithm: Literal["msmt_csd"]


class InternalFiveTTConfig(ConnflowBaseModel):
    algorithm: Literal["fsl"]
    sgm_amyg_hipp: bool
    nocrop: bool


class InternalTractographyConfig(ConnflowBaseModel):
    """Runtime tckgen settings."""
    streamlines: str
    min_length: float
    max_length: float
    cutoff: float
    backtrack: bool


class InternalConnectomeConfig(ConnflowBaseModel):
    symmetric: bool
    zero_diagonal: bool
    scale_invnodevol: bool
    assignment_radial_search: float


class InternalToolsConfig(ConnflowBaseModel):
    """Runtime tool invocation settings."""
    overrides: dict[str, str]
    env: dict[str, str]
    nthreads: Optional[int]
    timeout_sec: Optional[float]


class InternalRunnerConfig(ConnflowBaseModel):
    """Runtime execution semantics."""
    mode: Literal["resume", "force"]
    failure_policy: Literal["fail_fast", "skip_dependents"]
    min_artifact_bytes: int = Field(ge=1)


class InternalBatchConfig(ConnflowBaseModel):
    subject_glob: str
    max_workers: int = Field(ge=1)


class InternalOutputConfig(ConnflowBaseModel):
    """Runtime output configuration."""
    compression: Literal["snappy", "gzip", "lz4", "none"]
    save_run_table: bool


class InternalLoggingConfig(ConnflowBaseModel):
    """Runtime logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


# =============================================================================
# Main InternalConfig
# =============================================================================

class InternalConfig(ConnflowBaseModel):
    """Authoritative runtime configuration.

    Runtime modules receive InternalConfig and access fields directly:

        def build_connectome_stages(config: InternalConfig, layout):
            cutoff = config.tractography.cutoff  # NOT .get()

    ``subject`` may be None for batch runs; each subject run gets its own copy
    with the subject filled in (see ``InternalConfig.for_subject``).
    """

    subject: Optional[str]
    paths: InternalPathsConfig
    inputs: InternalInputsConfig
    templates: InternalTemplatesConfig
    n4: InternalN4Config
    brain_extraction: InternalBrainExtractionConfig
    registration: InternalRegistrationConfig
    segmentation: InternalSegmentationConfig
    dwi: InternalDwiConfig
    response: InternalResponseConfig
    fod: InternalFodConfig
    fivett: InternalFiveTTConfig
    tractography: InternalTractographyConfig
    connectome: InternalConnectomeConfig
    tools: InternalToolsConfig
    runner: InternalRunnerConfig
    batch: InternalBatchConfig
    output: InternalOutputConfig
    logging: InternalLoggingConfig

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
        frozen=True,  # Immutable after construction
    )

    def for_subject(self, subject: str) -> "InternalConfig":
        """Copy of this config bound to one subject."""
        return self.model_copy(update={"subject": subject})
