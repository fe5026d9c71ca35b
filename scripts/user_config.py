"""connflow user configuration.

This is the user-facing configuration file. Modify settings here to customize
the pipeline for a study. Expert defaults (tool parameters, file name
templates) live in connflow.schemas.param.

Usage:
    python scripts/run_connectome_pipeline.py sub-001 --config scripts/user_config.py
    python scripts/run_connectome_pipeline.py sub-001 --config scripts/user_config.py --force
    connflow-batch --config scripts/user_config.py --jobs 2
"""

CONFIG = {
    # ========================================================================
    # DIRECTORIES
    # ========================================================================
    "BIDS_DIR": "./BIDS",                # {BIDS_DIR}/{subject}/anat|dwi|fmap
    "DERIVATIVES_DIR": "./derivatives",  # outputs go to {DERIVATIVES_DIR}/{subject}
    "TEMPLATE_DIR": "./templates",       # OASIS template + MNI152NLin2009cAsym brain
    "ATLAS_DIR": "./atlases",            # Schaefer 2018 parcellation

    # ========================================================================
    # EXECUTION
    # ========================================================================
    "MODE": "resume",                # "resume" skips finished stages, "force" re-runs all
    "FAILURE_POLICY": "fail_fast",   # or "skip_dependents"
    "MAX_WORKERS": 1,                # subjects in parallel (connflow-batch)
    "N_THREADS": None,               # MRtrix3 -nthreads (None = MRtrix default)

    # ========================================================================
    # ACQUISITION
    # ========================================================================
    "PE_DIR": "PA",                  # phase encoding of the DWI series
    "READOUT_TIME": 0.0836197,       # total readout time in seconds

    # ========================================================================
    # TRACTOGRAPHY / CONNECTOME
    # ========================================================================
    "STREAMLINES": "10M",
    "ATLAS": "Schaefer2018_400Parcels_7Networks_order_FSLMNI152_1mm.nii.gz",
    "ATLAS_LABEL": "schaefer400",

    # Advanced: nested sections override any expert default, e.g.
    # "tractography": {"cutoff": 0.06, "max_length": 250},
    # "tools": {"overrides": {"dwifslpreproc": "/opt/mrtrix3/bin/dwifslpreproc"}},
}
