"""Run the pipeline over every subject of a BIDS directory.

Subjects are independent: each gets its own layout, artifact store,
transform registry and run record. A failing subject never stops the batch.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pandas as pd

from connflow.contracts.failure import ContractViolation
from connflow.pipeline.orchestrator import SubjectPipeline

__all__ = ['SubjectResult', 'discover_subjects', 'run_subject', 'run_batch', 'results_table']

logger = logging.getLogger(__name__)


@dataclass
class SubjectResult:
    """Outcome of one subject in a batch."""
    subject: str
    exit_code: int
    run_id: Optional[str] = None
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    duration: float = 0.0


def discover_subjects(bids_dir, pattern: str = "sub-*") -> List[str]:
    """Subject directories under ``bids_dir``, sorted by name."""
    bids_dir = Path(bids_dir)
    if not bids_dir.is_dir():
        raise FileNotFoundError(f"BIDS directory not found: {bids_dir}")
    return sorted(p.name for p in bids_dir.glob(pattern) if p.is_dir())


def run_subject(config, subject: str, adapter=None) -> SubjectResult:
    """Run one subject and condense the outcome. Never raises."""
    start = time.monotonic()
    try:
        pipeline = SubjectPipeline(config.for_subject(subject), adapter=adapter)
        run = pipeline.run()
    except ContractViolation as e:
        logger.critical("Pipeline definition invalid for %s: %s", subject, e)
        return SubjectResult(subject, 2, error=f"ContractViolation: {e}",
                             duration=time.monotonic() - start)
    except Exception as e:
        logger.exception("Error processing %s", subject)
        return SubjectResult(subject, 1, error=f"{type(e).__name__}: {e}",
                             duration=time.monotonic() - start)

    failed = run.failed_stage
    return SubjectResult(
        subject=subject,
        exit_code=run.exit_code,
        run_id=run.run_id,
        failed_stage=failed.stage_id if failed else None,
        error=f"{failed.error}: {failed.error_detail}" if failed else None,
        duration=time.monotonic() - start,
    )


def run_batch(config, subjects: Optional[Sequence[str]] = None,
              adapter_factory: Optional[Callable[[], object]] = None) -> List[SubjectResult]:
    """Run every subject and return results in subject order.

    Parameters
    ----------
    config : InternalConfig
        Resolved configuration; ``subject`` is ignored.
    subjects : sequence of str, optional
        Subjects to run. Discovered from ``paths.bids_dir`` when omitted.
    adapter_factory : callable, optional
        Returns a tool adapter per subject (tests use fakes).
    """
    if subjects is None:
        subjects = discover_subjects(config.paths.bids_dir, config.batch.subject_glob)
    subjects = list(subjects)
    max_workers = min(config.batch.max_workers, max(len(subjects), 1))

    logger.info("=" * 60)
    logger.info("Batch: %d subjects, %d worker(s)", len(subjects), max_workers)
    logger.info("=" * 60)

    def _one(subject):
        adapter = adapter_factory() if adapter_factory else None
        result = run_subject(config, subject, adapter=adapter)
        status = "OK" if result.exit_code == 0 else f"FAILED ({result.failed_stage or result.error})"
        logger.info("%s: %s in %.1fs", subject, status, result.duration)
        return result

    if max_workers == 1:
        results = [_one(s) for s in subjects]
    else:
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="subject") as pool:
            results = list(pool.map(_one, subjects))

    failed = sum(1 for r in results if r.exit_code != 0)
    logger.info("=" * 60)
    logger.info("Batch complete: %d succeeded, %d failed", len(results) - failed, failed)
    logger.info("=" * 60)
    return results


def results_table(results: Sequence[SubjectResult]) -> pd.DataFrame:
    """One row per subject."""
    columns = ['subject', 'exit_code', 'run_id', 'failed_stage', 'error', 'duration']
    return pd.DataFrame([vars(r) for r in results], columns=columns)
