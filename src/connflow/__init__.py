"""`connflow` - Structural connectome pipeline for T1w + DWI MRI.

Subpackages:
- pipeline: Artifact store, transform registry, stage runner, tool adapter
- contracts: Failure taxonomy and stage DAG validation
- schemas: Pydantic configuration (param < user < CLI)
- cli: Command-line entry points
"""

__version__ = "0.1.0"
