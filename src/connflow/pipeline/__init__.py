"""Pipeline modules.

- artifact_store: Per-subject named file artifacts
- transforms: Spatial transform registry and chain resolution
- stage: Declarative stage records
- runner: Sequential stage execution
- tool_adapter: External tool invocation
- run_record / run_tracker: Run outcomes in memory and in SQLite
- orchestrator: Per-subject controller (logging, config persistence, tracker)
"""

from connflow.pipeline.spaces import CoordinateSpace, TransformKind
from connflow.pipeline.artifact_store import Artifact, ArtifactStore
from connflow.pipeline.transforms import TransformRegistry, TransformChain
from connflow.pipeline.stage import StageSpec, ArtifactDecl, TransformDecl, Ref, XfmRef, ChainArgs
from connflow.pipeline.tool_adapter import ExternalToolAdapter, ToolResult
from connflow.pipeline.run_record import PipelineRun, StageOutcome, StageStatus
from connflow.pipeline.run_tracker import RunTracker
from connflow.pipeline.runner import PipelineRunner, RunMode
from connflow.pipeline.orchestrator import SubjectPipeline, setup_logging

__all__ = [
    "CoordinateSpace",
    "TransformKind",
    "Artifact",
    "ArtifactStore",
    "TransformRegistry",
    "TransformChain",
    "StageSpec",
    "ArtifactDecl",
    "TransformDecl",
    "Ref",
    "XfmRef",
    "ChainArgs",
    "ExternalToolAdapter",
    "ToolResult",
    "PipelineRun",
    "StageOutcome",
    "StageStatus",
    "RunTracker",
    "PipelineRunner",
    "RunMode",
    "SubjectPipeline",
    "setup_logging",
]
