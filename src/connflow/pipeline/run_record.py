"""In-memory record of one pipeline run and its failure report."""

import logging
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

import pandas as pd

__all__ = ['StageStatus', 'StageOutcome', 'PipelineRun', 'new_run_id', 'RESUMED']

logger = logging.getLogger(__name__)

# skip_reason of stages whose outputs were already complete
RESUMED = "outputs already present"


class StageStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    SKIPPED = "SKIPPED"


def new_run_id() -> str:
    """Sortable, unique run id: UTC timestamp plus a short random suffix."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    return f"{stamp}_{uuid.uuid4().hex[:6]}"


@dataclass
class StageOutcome:
    stage_id: str
    status: StageStatus = StageStatus.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    error: Optional[str] = None          # failure class name
    error_detail: Optional[str] = None
    tool_stderr: Optional[str] = None
    skip_reason: Optional[str] = None
    command: Optional[str] = None

    @property
    def duration(self) -> Optional[float]:
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class PipelineRun:
    """Ordered stage outcomes for one subject.

    The outcome list always has one entry per stage, in execution order.
    """
    subject: str
    run_id: str = field(default_factory=new_run_id)
    mode: str = "resume"
    outcomes: List[StageOutcome] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @classmethod
    def for_stages(cls, subject: str, stage_ids, mode: str = "resume",
                   run_id: Optional[str] = None) -> "PipelineRun":
        run = cls(subject=subject, mode=mode, run_id=run_id or new_run_id())
        run.outcomes = [StageOutcome(stage_id=sid) for sid in stage_ids]
        return run

    def outcome(self, stage_id: str) -> StageOutcome:
        for outcome in self.outcomes:
            if outcome.stage_id == stage_id:
                return outcome
        raise KeyError(stage_id)

    def status_of(self, stage_id: str) -> StageStatus:
        return self.outcome(stage_id).status

    def with_status(self, status: StageStatus) -> List[str]:
        return [o.stage_id for o in self.outcomes if o.status == status]

    @property
    def succeeded(self) -> bool:
        return all(o.status in (StageStatus.SUCCEEDED, StageStatus.SKIPPED)
                   for o in self.outcomes) and not self.never_attempted

    @property
    def failed_stage(self) -> Optional[StageOutcome]:
        """First failed stage, if any."""
        for outcome in self.outcomes:
            if outcome.status == StageStatus.FAILED:
                return outcome
        return None

    @property
    def never_attempted(self) -> List[str]:
        """Stages skipped because of a failure or an abort (not resumed ones)."""
        return [
            o.stage_id for o in self.outcomes
            if (o.status == StageStatus.SKIPPED and o.skip_reason != RESUMED)
            or o.status == StageStatus.PENDING
        ]

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1

    def report(self) -> str:
        """Human-readable failure report (or a one-line success summary)."""
        counts = {s.value: len(self.with_status(s)) for s in StageStatus}
        header = (f"{self.subject} run {self.run_id}: "
                  f"{counts['SUCCEEDED']} succeeded, {counts['SKIPPED']} skipped, "
                  f"{counts['FAILED']} failed")
        failed = [o for o in self.outcomes if o.status == StageStatus.FAILED]
        if not failed and not self.never_attempted:
            return header

        lines = [header]
        for outcome in failed:
            lines.append(f"FAILED stage: {outcome.stage_id}")
            lines.append(f"  error: {outcome.error}: {outcome.error_detail}")
            if outcome.command:
                lines.append(f"  command: {outcome.command}")
            if outcome.tool_stderr:
                lines.append("  tool stderr:")
                lines.extend(f"    {line}" for line in outcome.tool_stderr.rstrip().splitlines())
        never = self.never_attempted
        if never:
            reasons = {self.outcome(sid).skip_reason for sid in never}
            lines.append(f"Never attempted ({len(never)}): {', '.join(never)}")
            for reason in sorted(r for r in reasons if r):
                lines.append(f"  reason: {reason}")
        return "\n".join(lines)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per stage, in execution order."""
        rows = []
        for order, outcome in enumerate(self.outcomes):
            row = asdict(outcome)
            row['status'] = outcome.status.value
            row['duration_s'] = outcome.duration
            row['order'] = order
            row['subject'] = self.subject
            row['run_id'] = self.run_id
            row['mode'] = self.mode
            rows.append(row)
        columns = ['subject', 'run_id', 'mode', 'order', 'stage_id', 'status',
                   'started_at', 'finished_at', 'duration_s', 'error',
                   'error_detail', 'skip_reason', 'command', 'tool_stderr']
        return pd.DataFrame(rows, columns=columns)

    def save_run_table(self, path, compression: str = "snappy") -> Path:
        """Write the stage table to Parquet."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if compression == "none":
            compression = None
        self.to_dataframe().to_parquet(path, engine="pyarrow",
                                       compression=compression, index=False)
        logger.info("Run table saved: %s", path)
        return path

