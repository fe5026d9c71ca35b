"""Centralized failure taxonomy for the connectome pipeline.

Three families of errors:

- ContractViolation: the pipeline definition itself is wrong (cyclic stage
  graph, duplicate producers, forward references). Raised before any tool runs.
- StageFailure: one stage could not complete for a subject. Halts only that
  subject's run and ends up in the stage-scoped failure report.
- ArtifactError / NoTransformPath: bookkeeping errors from the artifact store
  and transform registry.
"""

from enum import Enum
from typing import Optional


class FailurePolicy(str, Enum):
    """What the runner does with the rest of a run after a stage fails.

    FAIL_FAST (default): stop the run, report every remaining stage as skipped.
    SKIP_DEPENDENTS: skip only stages that depend on the failed stage's outputs
    and keep running the independent ones.
    """
    FAIL_FAST = "fail_fast"
    SKIP_DEPENDENTS = "skip_dependents"


class ContractViolation(RuntimeError):
    """Raised when the pipeline definition breaks one of its invariants.

    This indicates a bug in the stage list, not bad input data.

    Key distinction:
    - ValueError: User/config error (handled by Pydantic)
    - ContractViolation: Pipeline definition bug (programmer error)
    - StageFailure: A stage did not complete for this subject
    """
    pass


class StageFailure(Exception):
    """Base class for per-stage failures recorded in the run report."""

    def __init__(self, stage_id: str, message: str):
        super().__init__(f"{stage_id}: {message}")
        self.stage_id = stage_id
        self.message = message


class UnsatisfiedDependency(StageFailure):
    """A required artifact or transform is missing or invalid.

    The stage is never attempted.
    """

    def __init__(self, stage_id: str, missing: str, kind: str = "artifact"):
        super().__init__(stage_id, f"required {kind} '{missing}' is not available")
        self.missing = missing
        self.kind = kind


class ExternalToolFailure(StageFailure):
    """The external tool exited with a nonzero status."""

    def __init__(self, stage_id: str, command: str, returncode: int, stderr: str = ""):
        super().__init__(stage_id, f"'{command}' exited with status {returncode}")
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class IncompleteStageOutput(StageFailure):
    """The tool exited zero but a declared output is missing or empty."""

    def __init__(self, stage_id: str, output: str, reason: Optional[str] = None):
        message = f"declared output '{output}' was not produced"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(stage_id, message)
        self.output = output


class OutputPreparationFailed(StageFailure):
    """Stale outputs could not be removed or output directories created.

    The tool is never invoked.
    """

    def __init__(self, stage_id: str, path, reason: str):
        super().__init__(stage_id, f"cannot prepare output '{path}': {reason}")
        self.path = path


class ArtifactError(Exception):
    """Base class for artifact bookkeeping errors."""

    def __init__(self, name: str, message: str):
        super().__init__(message)
        self.name = name


class ArtifactNotRegistered(ArtifactError):
    """The artifact name was never declared in the store."""

    def __init__(self, name: str):
        super().__init__(name, f"Artifact '{name}' is not registered")


class ArtifactMissing(ArtifactError):
    """The artifact is registered but not (yet) valid."""

    def __init__(self, name: str):
        super().__init__(name, f"Artifact '{name}' is not valid yet")


class ArtifactProductionFailed(ArtifactError):
    """The artifact file is absent or too small to be a real output."""

    def __init__(self, name: str, path, reason: str):
        super().__init__(name, f"Artifact '{name}' at {path}: {reason}")
        self.path = path
        self.reason = reason


class NoTransformPath(Exception):
    """No chain of registered transforms connects two coordinate spaces."""

    def __init__(self, source, target):
        super().__init__(f"No transform path from {source} to {target}")
        self.source = source
        self.target = target
