"""Sequential execution of a validated stage list for one subject.

Each stage moves PENDING -> RUNNING -> SUCCEEDED | FAILED once its
preconditions hold. A stage with a missing input goes PENDING -> FAILED
without being started. Stages go straight to SKIPPED when their outputs are
already complete (resume mode), when the run was stopped, or when a stage they
depend on failed.
"""
import logging
import threading
import time
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence

from connflow.contracts.dag import validate_stage_dag
from connflow.contracts.failure import (
    ArtifactProductionFailed,
    ExternalToolFailure,
    FailurePolicy,
    IncompleteStageOutput,
    OutputPreparationFailed,
    NoTransformPath,
    StageFailure,
    UnsatisfiedDependency,
)
from connflow.pipeline.artifact_store import ArtifactStore
from connflow.pipeline.run_record import RESUMED, PipelineRun, StageOutcome, StageStatus
from connflow.pipeline.stage import ArtifactDecl, StageSpec, render_args
from connflow.pipeline.transforms import TransformRegistry

__all__ = ['RunMode', 'PipelineRunner']

logger = logging.getLogger(__name__)


class RunMode(str, Enum):
    """RESUME skips stages whose outputs are complete; FORCE re-runs everything."""
    RESUME = "resume"
    FORCE = "force"


class PipelineRunner:
    """Runs a fixed, validated sequence of stages for one subject.

    The stage list is validated on construction, so a broken pipeline
    definition raises ``ContractViolation`` before any tool is invoked.

    Parameters
    ----------
    subject : str
        Subject identifier (e.g. ``sub-001``).
    stages : sequence of StageSpec
        Stages in execution order.
    external_inputs : dict
        Name -> ``ArtifactDecl`` for files supplied from outside the pipeline.
    adapter : ExternalToolAdapter
        Anything with ``invoke(command, args) -> ToolResult``.
    mode : RunMode or str
        ``"resume"`` (default) or ``"force"``.
    failure_policy : FailurePolicy or str
        ``"fail_fast"`` (default) stops at the first failed stage;
        ``"skip_dependents"`` keeps running stages independent of it.
    tracker : RunTracker, optional
        Receives every stage outcome as it changes.
    min_artifact_bytes : int
        Smallest file size accepted as a produced output.

    Examples
    --------
    >>> runner = PipelineRunner("sub-001", stages, inputs, ExternalToolAdapter())
    >>> run = runner.run()
    >>> run.exit_code
    0
    """

    def __init__(self, subject: str, stages: Sequence[StageSpec],
                 external_inputs: Mapping[str, ArtifactDecl], adapter,
                 mode=RunMode.RESUME,
                 failure_policy=FailurePolicy.FAIL_FAST,
                 tracker=None,
                 min_artifact_bytes: int = 1,
                 run_id: Optional[str] = None):
        self.subject = subject
        self.stages = list(stages)
        self.external_inputs = dict(external_inputs)
        self.graph = validate_stage_dag(self.stages, self.external_inputs)

        self.adapter = adapter
        self.mode = RunMode(mode)
        self.failure_policy = FailurePolicy(failure_policy)
        self.tracker = tracker
        self.min_artifact_bytes = min_artifact_bytes
        self.run_id = run_id

        self.store = ArtifactStore(subject, min_bytes=min_artifact_bytes)
        self.registry = TransformRegistry(subject)
        self._stop_event = threading.Event()

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def request_stop(self):
        """Ask the runner to stop before the next stage. Thread-safe."""
        logger.warning("Stop requested for %s; finishing current stage", self.subject)
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _register_declarations(self):
        for name, decl in self.external_inputs.items():
            self.store.register(name, decl.path, decl.space)
            try:
                self.store.mark_valid(name)
            except ArtifactProductionFailed as e:
                logger.warning("Input %s unavailable: %s", name, e.reason)
                logger.warning("  path: %s", decl.path)

        for stage in self.stages:
            for name, decl in stage.produces.items():
                self.store.register(name, decl.path, decl.space, produced_by=stage.id)

    def _file_ok(self, path: Path) -> bool:
        path = Path(path)
        return path.is_file() and path.stat().st_size >= self.min_artifact_bytes

    def _outputs_complete(self, stage: StageSpec) -> bool:
        if not stage.outputs:
            return False
        if not all(self.store.probe(name) for name in stage.produces):
            return False
        return all(self._file_ok(f)
                   for decl in stage.produces_transforms.values() for f in decl.files())

    def _register_transforms(self, stage: StageSpec):
        for name, decl in stage.produces_transforms.items():
            self.registry.register(
                name, decl.source, decl.target, decl.kind, decl.path,
                inverse_path=decl.inverse_path, matrix_format=decl.matrix_format,
            )

    def _adopt_outputs(self, stage: StageSpec):
        for name in stage.produces:
            self.store.mark_valid(name)
        self._register_transforms(stage)

    def _record(self, run: PipelineRun, outcome: StageOutcome):
        if self.tracker is not None:
            self.tracker.record(run, outcome, stage_order=self.graph.order.index(outcome.stage_id))

    def _skip(self, run: PipelineRun, outcome: StageOutcome, reason: str):
        outcome.status = StageStatus.SKIPPED
        outcome.skip_reason = reason
        self._record(run, outcome)

    # ------------------------------------------------------------------
    # Stage execution
    # ------------------------------------------------------------------

    def _check_preconditions(self, stage: StageSpec):
        for name in sorted(stage.requires):
            if not self.store.exists(name):
                raise UnsatisfiedDependency(stage.id, name)
        for name in sorted(stage.requires_transforms):
            if name not in self.registry:
                raise UnsatisfiedDependency(stage.id, name, kind="transform")

    def _check_postconditions(self, stage: StageSpec):
        for name in stage.produces:
            try:
                self.store.mark_valid(name)
            except ArtifactProductionFailed as e:
                raise IncompleteStageOutput(stage.id, name, e.reason) from e
        for name, decl in stage.produces_transforms.items():
            for path in decl.files():
                if not self._file_ok(path):
                    raise IncompleteStageOutput(stage.id, name, f"{path.name} missing or empty")
        self._register_transforms(stage)

    def _clear_outputs(self, stage: StageSpec):
        for path in stage.output_files():
            if path.exists():
                logger.debug("Removing stale output %s", path)
                path.unlink()

    def _prepare_outputs(self, stage: StageSpec):
        for name in stage.produces:
            self.store.invalidate(name)
        try:
            if not stage.idempotent:
                self._clear_outputs(stage)
            for path in stage.output_files():
                path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputPreparationFailed(stage.id, e.filename or stage.id,
                                          e.strerror or str(e)) from e

    def _render(self, stage: StageSpec):
        self._check_preconditions(stage)
        try:
            return render_args(stage, self.store, self.registry)
        except NoTransformPath as e:
            raise UnsatisfiedDependency(
                stage.id, f"{e.source} -> {e.target}", kind="transform path") from e

    def _fail(self, outcome: StageOutcome, stage: StageSpec, error: StageFailure):
        outcome.status = StageStatus.FAILED
        outcome.error = type(error).__name__
        outcome.error_detail = error.message
        outcome.tool_stderr = getattr(error, 'stderr', None) or None
        logger.error("  %s FAILED: %s", stage.id, error)
        if outcome.tool_stderr:
            logger.error("  tool stderr: %s", outcome.tool_stderr.strip()[-2000:])

    def _execute(self, run: PipelineRun, outcome: StageOutcome, stage: StageSpec):
        # Unmet preconditions go PENDING -> FAILED; the stage is never started.
        try:
            args = self._render(stage)
        except UnsatisfiedDependency as e:
            self._fail(outcome, stage, e)
            outcome.finished_at = datetime.now(timezone.utc)
            self._record(run, outcome)
            return

        outcome.status = StageStatus.RUNNING
        outcome.started_at = datetime.now(timezone.utc)
        self._record(run, outcome)
        start = time.monotonic()

        try:
            self._prepare_outputs(stage)
            result = self.adapter.invoke(stage.tool, args)
            outcome.command = result.command_line
            if result.returncode != 0:
                raise ExternalToolFailure(stage.id, result.command_line,
                                          result.returncode, result.stderr)

            self._check_postconditions(stage)
            outcome.status = StageStatus.SUCCEEDED
            logger.info("  %s completed in %.1fs", stage.id, time.monotonic() - start)

        except StageFailure as e:
            self._fail(outcome, stage, e)

        finally:
            outcome.finished_at = datetime.now(timezone.utc)
            self._record(run, outcome)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self) -> PipelineRun:
        """Execute every stage in order and return the run record.

        Raises
        ------
        ContractViolation
            If a stage breaks a definition-time contract while rendering
            (e.g. uses an undeclared transform). The run is not continued.
        """
        run = PipelineRun.for_stages(self.subject, self.graph.order,
                                     mode=self.mode.value, run_id=self.run_id)
        logger.info("=" * 60)
        logger.info("Pipeline start: %s (run %s, mode=%s, policy=%s)",
                    self.subject, run.run_id, self.mode.value, self.failure_policy.value)
        logger.info("=" * 60)

        self._register_declarations()

        halted: Optional[str] = None
        blocked_by: Dict[str, str] = {}
        total = len(self.stages)

        for index, stage in enumerate(self.stages, start=1):
            outcome = run.outcomes[index - 1]

            if halted is None and self._stop_event.is_set():
                halted = "run aborted"
            if halted is not None:
                self._skip(run, outcome, halted)
                continue
            if stage.id in blocked_by:
                self._skip(run, outcome, f"depends on failed stage '{blocked_by[stage.id]}'")
                continue
            if self.mode == RunMode.RESUME and self._outputs_complete(stage):
                self._adopt_outputs(stage)
                self._skip(run, outcome, RESUMED)
                logger.info("[%d/%d] %s: outputs present, skipping", index, total, stage.id)
                continue

            logger.info("[%d/%d] %s: %s", index, total, stage.id, stage.tool)
            self._execute(run, outcome, stage)

            if outcome.status == StageStatus.FAILED:
                if self.failure_policy == FailurePolicy.FAIL_FAST:
                    halted = f"stage '{stage.id}' failed"
                else:
                    for dependent in self.graph.dependents(stage.id):
                        blocked_by.setdefault(dependent, stage.id)

        run.finished_at = datetime.now(timezone.utc)
        logger.info("=" * 60)
        logger.info(run.report().splitlines()[0])
        logger.info("=" * 60)
        return run
