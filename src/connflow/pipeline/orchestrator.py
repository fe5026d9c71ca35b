"""Per-subject pipeline controller.

Wires a resolved configuration to the stage list, the tool adapter, the run
tracker and the log file, runs the stages and writes the run artifacts
(runtime config, stage table).
"""

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from connflow.layout import SubjectLayout
from connflow.pipeline.run_record import PipelineRun, new_run_id
from connflow.pipeline.run_tracker import RunTracker
from connflow.pipeline.runner import PipelineRunner
from connflow.pipeline.tool_adapter import ExternalToolAdapter
from connflow.workflow import build_connectome_stages, build_external_inputs

__all__ = ['SubjectPipeline', 'setup_logging']

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def setup_logging(level: str = "INFO", log_path: Optional[Path] = None):
    """Configure the root logger with a console handler and an optional log file.

    Existing root handlers are replaced, so calling this twice does not
    duplicate output.
    """
    log_level = getattr(logging, str(level).upper(), logging.INFO)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    root = logging.getLogger()
    root.setLevel(log_level)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    if log_path is not None:
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_path)
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    root.addHandler(ch)

    logger.debug("Logging: level=%s, file=%s", logging.getLevelName(log_level), log_path)


class _ThreadFilter(logging.Filter):
    """Pass only records emitted by one thread."""

    def __init__(self, thread_id: int):
        super().__init__()
        self.thread_id = thread_id

    def filter(self, record: logging.LogRecord) -> bool:
        return record.thread == self.thread_id


class SubjectPipeline:
    """Runs the connectome pipeline for one subject.

    The stage list is built and validated on construction, so a broken
    pipeline definition raises ``ContractViolation`` before anything is
    written.

    **Outputs written besides the stage products** (``{derivatives}/{subject}/logs``):

    - ``pipeline_{subject}.log``: this subject's log records
    - ``{subject}_pipeline_runs.db``: SQLite history of stage outcomes
    - ``runtime_config_{run_id}.json``: resolved configuration of the run
    - ``{subject}_stages_{run_id}.parquet``: stage table of the run

    Parameters
    ----------
    config : InternalConfig
        Resolved configuration with ``subject`` set.
    adapter : ExternalToolAdapter, optional
        Tool adapter; built from ``config.tools`` when omitted.

    Examples
    --------
    >>> pipeline = SubjectPipeline(config.for_subject("sub-001"))
    >>> run = pipeline.run()
    >>> print(run.report())
    """

    def __init__(self, config, adapter=None):
        self.config = config
        self.layout = SubjectLayout.from_config(config)
        self.run_id = new_run_id()

        if adapter is None:
            adapter = ExternalToolAdapter(
                overrides=config.tools.overrides,
                env=config.tools.env,
                timeout=config.tools.timeout_sec,
            )
        self.adapter = adapter

        self.stages = build_connectome_stages(config, self.layout)
        self.external_inputs = build_external_inputs(config, self.layout)
        self.runner = PipelineRunner(
            self.layout.subject,
            self.stages,
            self.external_inputs,
            adapter,
            mode=config.runner.mode,
            failure_policy=config.runner.failure_policy,
            min_artifact_bytes=config.runner.min_artifact_bytes,
            run_id=self.run_id,
        )
        self._log_handler = None

    @property
    def subject(self) -> str:
        return self.layout.subject

    def request_stop(self):
        """Stop between stages. Safe to call from a signal handler or another thread."""
        self.runner.request_stop()

    def _attach_log_file(self):
        """Send this thread's log records to the subject log file."""
        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)
        handler = logging.FileHandler(self.layout.log_file)
        handler.setLevel(getattr(logging, self.config.logging.level, logging.INFO))
        handler.setFormatter(formatter)
        handler.addFilter(_ThreadFilter(threading.get_ident()))
        logging.getLogger().addHandler(handler)
        self._log_handler = handler

    def _detach_log_file(self):
        if self._log_handler is not None:
            logging.getLogger().removeHandler(self._log_handler)
            self._log_handler.close()
            self._log_handler = None

    def _persist_runtime_config(self) -> Path:
        """Save the resolved configuration next to the logs for reproducibility."""
        config_file = self.layout.runtime_config(self.run_id)
        config_dict = self.config.model_dump()
        config_dict["run_id"] = self.run_id
        config_dict["created_at"] = datetime.now(timezone.utc).isoformat()

        with open(config_file, 'w') as f:
            json.dump(config_dict, f, indent=2, default=str)

        logger.info("Runtime config saved: %s", config_file)
        return config_file

    def run(self) -> PipelineRun:
        """Run all stages and return the run record."""
        self.layout.setup_output_directories()
        self._attach_log_file()
        try:
            logger.info("Subject: %s", self.subject)
            logger.info("Raw data: %s", self.layout.subject_input)
            logger.info("Derivatives: %s", self.layout.subject_output)
            self._persist_runtime_config()

            with RunTracker(self.layout.tracker_db) as tracker:
                self.runner.tracker = tracker
                try:
                    run = self.runner.run()
                finally:
                    self.runner.tracker = None
                stats = tracker.get_statistics(self.subject)
                logger.info("Run history: %d runs, %d succeeded, %d failed, %d skipped stage records",
                            stats.get('runs', 0), stats.get('succeeded', 0),
                            stats.get('failed', 0), stats.get('skipped', 0))

            if self.config.output.save_run_table:
                run.save_run_table(self.layout.run_table(self.run_id),
                                   compression=self.config.output.compression)

            if run.exit_code != 0:
                logger.error("\n%s", run.report())
            return run
        finally:
            self._detach_log_file()
