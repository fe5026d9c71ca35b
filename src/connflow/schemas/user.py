"""UserConfig: Forgiving, minimal user-facing configuration.

This schema accepts user inputs with flat upper-case aliases for the settings
people actually change between studies (SUBJECT, BIDS_DIR, STREAMLINES,
READOUT_TIME...), plus nested sections for advanced overrides.

Users only specify what they want to override from the expert defaults.
Unknown keys are ignored.
"""

from typing import Literal, Optional, Any
from pydantic import Field, field_validator
from connflow.schemas.base import ConnflowBaseModel, normalize_subject


class UserSection(ConnflowBaseModel):
    """Nested override section: any keys, validated later against InternalConfig."""
    model_config = ConnflowBaseModel.model_config.copy()
    model_config.update({"extra": "allow"})


class UserConfig(ConnflowBaseModel):
    """User-facing configuration schema.

    Usage
    -----
        user_cfg = UserConfig(
            SUBJECT="sub-001",
            BIDS_DIR="/data/study/BIDS",
            STREAMLINES="5M",
            tractography={"cutoff": 0.05},
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    # Subject and directories
    subject: Optional[str] = Field(None, alias="SUBJECT")
    bids_dir: Optional[str] = Field(None, alias="BIDS_DIR")
    derivatives_dir: Optional[str] = Field(None, alias="DERIVATIVES_DIR")
    template_dir: Optional[str] = Field(None, alias="TEMPLATE_DIR")
    atlas_dir: Optional[str] = Field(None, alias="ATLAS_DIR")

    # Execution
    mode: Optional[Literal["resume", "force"]] = Field(None, alias="MODE")
    failure_policy: Optional[Literal["fail_fast", "skip_dependents"]] = Field(None, alias="FAILURE_POLICY")
    max_workers: Optional[int] = Field(None, alias="MAX_WORKERS")
    nthreads: Optional[int] = Field(None, alias="N_THREADS")
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = Field(None, alias="LOG_LEVEL")

    # Acquisition / protocol (flat aliases)
    readout_time: Optional[float] = Field(None, alias="READOUT_TIME")
    pe_dir: Optional[str] = Field(None, alias="PE_DIR")
    streamlines: Optional[str] = Field(None, alias="STREAMLINES")
    atlas: Optional[str] = Field(None, alias="ATLAS")
    atlas_label: Optional[str] = Field(None, alias="ATLAS_LABEL")

    # Nested overrides (advanced users)
    paths: Optional[UserSection] = None
    inputs: Optional[UserSection] = None
    templates: Optional[UserSection] = None
    n4: Optional[UserSection] = None
    brain_extraction: Optional[UserSection] = None
    registration: Optional[UserSection] = None
    segmentation: Optional[UserSection] = None
    dwi: Optional[UserSection] = None
    response: Optional[UserSection] = None
    fod: Optional[UserSection] = None
    fivett: Optional[UserSection] = None
    tractography: Optional[UserSection] = None
    connectome: Optional[UserSection] = None
    tools: Optional[UserSection] = None
    runner: Optional[UserSection] = None
    batch: Optional[UserSection] = None
    output: Optional[UserSection] = None
    logging: Optional[UserSection] = None

    model_config = ConnflowBaseModel.model_config.copy()
    # Allow forgiving input dictionaries (ignore unknown legacy keys)
    model_config.update({"populate_by_name": True, "extra": "ignore"})

    @field_validator("subject", mode="before")
    @classmethod
    def normalize_subject_id(cls, v):
        return normalize_subject(v)

    @field_validator("mode", "failure_policy", mode="before")
    @classmethod
    def lower_case_choices(cls, v):
        """Accept any case for execution choices."""
        if isinstance(v, str):
            return v.lower().strip()
        return v

    @field_validator("log_level", "pe_dir", mode="before")
    @classmethod
    def upper_case_choices(cls, v):
        """Accept any case for log levels and phase-encoding directions."""
        if isinstance(v, str):
            return v.upper().strip()
        return v

    @field_validator("readout_time", mode="before")
    @classmethod
    def coerce_numeric_fields(cls, v):
        """Accept int or float for numeric fields."""
        if v is not None:
            return float(v)
        return v

    @field_validator("streamlines", mode="before")
    @classmethod
    def coerce_streamlines(cls, v):
        if v is not None:
            return str(v)
        return v

    def to_internal_overrides(self) -> dict:
        """Convert flat UserConfig to nested InternalConfig structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides: dict[str, Any] = {}

        if self.subject is not None:
            overrides["subject"] = self.subject

        flat = {
            "paths": {
                "bids_dir": self.bids_dir,
                "derivatives_dir": self.derivatives_dir,
                "template_dir": self.template_dir,
                "atlas_dir": self.atlas_dir,
            },
            "runner": {
                "mode": self.mode,
                "failure_policy": self.failure_policy,
            },
            "batch": {"max_workers": self.max_workers},
            "tools": {"nthreads": self.nthreads},
            "logging": {"level": self.log_level},
            "dwi": {"readout_time": self.readout_time, "pe_dir": self.pe_dir},
            "tractography": {"streamlines": self.streamlines},
            "templates": {"atlas": self.atlas, "atlas_label": self.atlas_label},
        }

        for section, values in flat.items():
            values = {k: v for k, v in values.items() if v is not None}
            nested = getattr(self, section, None)
            if nested is not None:
                # Explicit nested values win over flat aliases
                values.update(nested.model_dump(exclude_none=True))
            if values:
                overrides[section] = values

        for section in ("inputs", "n4", "brain_extraction", "registration",
                        "segmentation", "response", "fod", "fivett",
                        "connectome", "output"):
            nested = getattr(self, section)
            if nested is not None:
                values = nested.model_dump(exclude_none=True)
                if values:
                    overrides[section] = values

        return overrides
