"""Directory layout for one subject.

Input (BIDS):
    {bids_dir}/{subject}/anat, dwi, fmap

Output (derivatives):
    {derivatives_dir}/{subject}/anat   T1w products and the native-space atlas
    {derivatives_dir}/{subject}/dwi    DWI products, tractogram, connectome
    {derivatives_dir}/{subject}/logs   log file, run database, run tables

Output file names are deterministic per subject, so the presence of a file
is what marks its stage complete.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubjectLayout:
    """Resolved input and output paths for one subject."""
    subject: str
    bids_dir: Path
    derivatives_dir: Path
    template_dir: Path
    atlas_dir: Path

    @classmethod
    def from_config(cls, config, subject=None) -> "SubjectLayout":
        subject = subject or config.subject
        if not subject:
            raise ValueError("No subject given (set SUBJECT or pass it on the command line)")
        paths = config.paths
        return cls(
            subject=subject,
            bids_dir=Path(paths.bids_dir).expanduser(),
            derivatives_dir=Path(paths.derivatives_dir).expanduser(),
            template_dir=Path(paths.template_dir).expanduser(),
            atlas_dir=Path(paths.atlas_dir).expanduser(),
        )

    # Inputs ---------------------------------------------------------------

    @property
    def subject_input(self) -> Path:
        return self.bids_dir / self.subject

    @property
    def anat_input(self) -> Path:
        return self.subject_input / "anat"

    @property
    def dwi_input(self) -> Path:
        return self.subject_input / "dwi"

    @property
    def fmap_input(self) -> Path:
        return self.subject_input / "fmap"

    def input_file(self, folder: str, template: str) -> Path:
        """Raw BIDS file from a ``{subject}`` name template."""
        base = {"anat": self.anat_input, "dwi": self.dwi_input, "fmap": self.fmap_input}[folder]
        return base / template.format(subject=self.subject)

    def template(self, name: str) -> Path:
        return self.template_dir / name

    def atlas(self, name: str) -> Path:
        return self.atlas_dir / name

    # Outputs --------------------------------------------------------------

    @property
    def subject_output(self) -> Path:
        return self.derivatives_dir / self.subject

    @property
    def anat_output(self) -> Path:
        return self.subject_output / "anat"

    @property
    def dwi_output(self) -> Path:
        return self.subject_output / "dwi"

    @property
    def logs_dir(self) -> Path:
        return self.subject_output / "logs"

    def anat(self, suffix: str) -> Path:
        """Subject-prefixed anatomical output, e.g. ``sub-001_T1w_n4.nii.gz``."""
        return self.anat_output / f"{self.subject}_{suffix}"

    def dwi(self, name: str) -> Path:
        return self.dwi_output / name

    @property
    def log_file(self) -> Path:
        return self.logs_dir / f"pipeline_{self.subject}.log"

    @property
    def tracker_db(self) -> Path:
        return self.logs_dir / f"{self.subject}_pipeline_runs.db"

    def run_table(self, run_id: str) -> Path:
        return self.logs_dir / f"{self.subject}_stages_{run_id}.parquet"

    def runtime_config(self, run_id: str) -> Path:
        return self.logs_dir / f"runtime_config_{run_id}.json"

    def setup_output_directories(self) -> Dict[str, Path]:
        """Create the derivatives tree for this subject.

        Returns
        -------
        dict
            Paths: 'base', 'anat', 'dwi', 'logs'
        """
        directories = {
            "base": self.subject_output,
            "anat": self.anat_output,
            "dwi": self.dwi_output,
            "logs": self.logs_dir,
        }
        for path in directories.values():
            path.mkdir(parents=True, exist_ok=True)
        logger.debug("Output directories ready under %s", self.subject_output)
        return directories
