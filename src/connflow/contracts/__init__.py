"""Contracts for the connectome pipeline.

Definition-time checks of the stage graph and the failure taxonomy used by
the runner.
"""

from connflow.contracts.failure import (
    FailurePolicy,
    ContractViolation,
    StageFailure,
    UnsatisfiedDependency,
    ExternalToolFailure,
    IncompleteStageOutput,
    OutputPreparationFailed,
    ArtifactError,
    ArtifactNotRegistered,
    ArtifactMissing,
    ArtifactProductionFailed,
    NoTransformPath,
)
from connflow.contracts.base import require
from connflow.contracts.dag import StageGraph, validate_stage_dag

__all__ = [
    'FailurePolicy',
    'ContractViolation',
    'StageFailure',
    'UnsatisfiedDependency',
    'ExternalToolFailure',
    'IncompleteStageOutput',
    'OutputPreparationFailed',
    'ArtifactError',
    'ArtifactNotRegistered',
    'ArtifactMissing',
    'ArtifactProductionFailed',
    'NoTransformPath',
    'require',
    'StageGraph',
    'validate_stage_dag',
]
