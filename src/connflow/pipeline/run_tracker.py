"""SQLite-based record of stage outcomes across pipeline runs.

Each run of a subject appends one row per stage. The table answers "what
happened last time" without re-reading log files, and keeps the history of
earlier attempts.
"""

import sqlite3
import logging
from pathlib import Path
from datetime import datetime
from typing import Optional, Dict, List
import threading

__all__ = ['RunTracker']

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class RunTracker:
    """Persists ``StageOutcome`` records in SQLite.

    **Database Schema:**

    Table ``stage_runs`` keyed by (run_id, stage_id):

    - subject, run_id, mode, stage_order
    - status: PENDING, RUNNING, SUCCEEDED, FAILED, SKIPPED
    - started_at / finished_at (ISO format), duration_s
    - error, error_detail, tool_stderr, skip_reason, command

    **Thread Safety:**

    All methods are thread-safe via internal locking.

    **Typical Usage:**

    ::

        with RunTracker(layout.tracker_db) as tracker:
            runner = PipelineRunner(..., tracker=tracker)
            runner.run()
            print(tracker.get_statistics("sub-001"))
    """

    def __init__(self, db_path: Path | str):
        """Initialize tracker.

        Parameters
        ----------
        db_path : Path or str
            Path to SQLite database file. Created if doesn't exist.
            Typically: {derivatives}/{subject}/logs/{subject}_pipeline_runs.db
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = None
        self._lock = threading.Lock()

        self._init_database()
        logger.info(f"Run tracker initialized: {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
        return self._conn

    def _init_database(self):
        """Create database schema if it doesn't exist."""
        conn = self._get_connection()

        with self._lock:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS stage_runs (
                    run_id TEXT NOT NULL,
                    stage_id TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    mode TEXT,
                    stage_order INTEGER,

                    status TEXT NOT NULL,
                    started_at TEXT,
                    finished_at TEXT,
                    duration_s REAL,

                    error TEXT,
                    error_detail TEXT,
                    tool_stderr TEXT,
                    skip_reason TEXT,
                    command TEXT,

                    updated_at TEXT DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (run_id, stage_id)
                )
            """)

            conn.execute("CREATE INDEX IF NOT EXISTS idx_subject ON stage_runs(subject)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_status ON stage_runs(status)")

            conn.commit()

    def record(self, run, outcome, stage_order: Optional[int] = None):
        """Insert or update the row for one stage outcome of ``run``."""
        conn = self._get_connection()

        with self._lock:
            conn.execute("""
                INSERT OR REPLACE INTO stage_runs
                (run_id, stage_id, subject, mode, stage_order, status,
                 started_at, finished_at, duration_s,
                 error, error_detail, tool_stderr, skip_reason, command, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
            """, (
                run.run_id,
                outcome.stage_id,
                run.subject,
                run.mode,
                stage_order,
                outcome.status.value,
                _iso(outcome.started_at),
                _iso(outcome.finished_at),
                outcome.duration,
                outcome.error,
                outcome.error_detail,
                outcome.tool_stderr,
                outcome.skip_reason,
                outcome.command,
            ))
            conn.commit()

    def get_run(self, run_id: str) -> List[Dict]:
        """All stage rows of one run, in execution order."""
        conn = self._get_connection()

        with self._lock:
            cursor = conn.execute(
                "SELECT * FROM stage_runs WHERE run_id = ? ORDER BY stage_order",
                (run_id,)
            )
            return [dict(row) for row in cursor.fetchall()]

    def get_run_ids(self, subject: str) -> List[str]:
        conn = self._get_connection()

        with self._lock:
            cursor = conn.execute(
                "SELECT DISTINCT run_id FROM stage_runs WHERE subject = ? ORDER BY run_id",
                (subject,)
            )
            return [row['run_id'] for row in cursor.fetchall()]

    def get_latest_outcomes(self, subject: str) -> Dict[str, Dict]:
        """Most recent recorded row per stage for ``subject``."""
        conn = self._get_connection()

        with self._lock:
            cursor = conn.execute("""
                SELECT * FROM stage_runs
                WHERE subject = ?
                ORDER BY run_id, stage_order
            """, (subject,))
            latest = {}
            for row in cursor.fetchall():
                latest[row['stage_id']] = dict(row)
            return latest

    def get_statistics(self, subject: Optional[str] = None) -> Dict:
        """Counts of stage rows per status (optionally for one subject)."""
        conn = self._get_connection()

        where = "WHERE subject = ?" if subject else ""
        params = (subject,) if subject else ()

        with self._lock:
            cursor = conn.execute(f"""
                SELECT
                    COUNT(DISTINCT run_id) as runs,
                    COUNT(*) as total,
                    SUM(CASE WHEN status = 'SUCCEEDED' THEN 1 ELSE 0 END) as succeeded,
                    SUM(CASE WHEN status = 'FAILED' THEN 1 ELSE 0 END) as failed,
                    SUM(CASE WHEN status = 'SKIPPED' THEN 1 ELSE 0 END) as skipped
                FROM stage_runs
                {where}
            """, params)
            row = cursor.fetchone()
            stats = dict(row) if row else {}
            return {k: (v or 0) for k, v in stats.items()}

    def close(self):
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.debug("Run tracker closed")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
