#!/usr/bin/env python3
"""``connflow`` structural connectome pipeline runner.

Usage:
    python scripts/run_connectome_pipeline.py sub-001 --config scripts/user_config.py
    python scripts/run_connectome_pipeline.py sub-001 --config scripts/user_config.py --force
    python scripts/run_connectome_pipeline.py sub-001 --failure-policy skip_dependents

Thin wrapper around ``connflow.cli.main``; after ``pip install`` the same
command is available as ``connflow``.
"""

import sys
from pathlib import Path

# Add src to path
project_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(project_root / "src"))

from connflow.cli import main


if __name__ == "__main__":
    sys.exit(main())
