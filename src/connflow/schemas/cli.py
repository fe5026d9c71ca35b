"""CLIConfig: Command-line operational overrides.

Operational parameters that commonly change between runs: subject,
directories, run mode, failure policy, parallelism, verbosity.
"""

from typing import Literal, Optional
from pydantic import Field, field_validator
from connflow.schemas.base import ConnflowBaseModel, normalize_subject


class CLIConfig(ConnflowBaseModel):
    """Command-line configuration overrides.

    Highest priority in config resolution.

    Usage
    -----
        cli_cfg = CLIConfig(
            subject="sub-001",
            derivatives_dir="/scratch/derivatives",
            mode="force",
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    subject: Optional[str] = None
    bids_dir: Optional[str] = None
    derivatives_dir: Optional[str] = None
    template_dir: Optional[str] = None
    atlas_dir: Optional[str] = None
    mode: Optional[Literal["resume", "force"]] = None
    failure_policy: Optional[Literal["fail_fast", "skip_dependents"]] = None
    max_workers: Optional[int] = Field(None, ge=1)
    nthreads: Optional[int] = Field(None, ge=0)
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = None

    @field_validator("subject", mode="before")
    @classmethod
    def normalize_subject_id(cls, v):
        return normalize_subject(v)

    def to_internal_overrides(self) -> dict:
        """Convert CLI config to internal config structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        if self.subject is not None:
            overrides["subject"] = self.subject

        paths = {
            k: getattr(self, k)
            for k in ("bids_dir", "derivatives_dir", "template_dir", "atlas_dir")
            if getattr(self, k) is not None
        }
        if paths:
            overrides["paths"] = paths

        runner = {}
        if self.mode is not None:
            runner["mode"] = self.mode
        if self.failure_policy is not None:
            runner["failure_policy"] = self.failure_policy
        if runner:
            overrides["runner"] = runner

        if self.max_workers is not None:
            overrides["batch"] = {"max_workers": self.max_workers}

        if self.nthreads is not None:
            overrides["tools"] = {"nthreads": self.nthreads}

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        return overrides
