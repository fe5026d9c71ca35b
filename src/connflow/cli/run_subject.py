"""Command-line entry points.

``connflow SUBJECT`` runs one subject; ``connflow-batch`` runs every subject
found in the BIDS directory.

Exit codes: 0 success, 1 a stage (or subject) failed, 2 configuration or
pipeline-definition error.
"""

import argparse
import importlib.util
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from connflow.batch import results_table, run_batch
from connflow.contracts.failure import ContractViolation
from connflow.pipeline.orchestrator import SubjectPipeline, setup_logging
from connflow.schemas import CLIConfig, ParamConfig, UserConfig, resolve_config

__all__ = ['load_user_config_dict', 'load_config', 'main', 'batch_main']

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def load_user_config_dict(config_path: str) -> dict:
    """Load user config dict from Python file.

    Returns the raw dict before Pydantic validation.

    Raises
    ------
    FileNotFoundError
        If config file does not exist.
    ValueError
        If no CONFIG dict found in file.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    spec = importlib.util.spec_from_file_location("config_module", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load config module from {path}")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    for name in dir(module):
        if name.startswith('CONFIG'):
            obj = getattr(module, name)
            if isinstance(obj, dict):
                return obj

    raise ValueError(f"No CONFIG dict found in {path}")


def load_config(config_path: Optional[str], cli_args: dict):
    """Resolve Param < User file < CLI into an InternalConfig."""
    user_cfg = UserConfig.model_validate(load_user_config_dict(config_path)) if config_path else UserConfig()
    cli_cfg = CLIConfig.model_validate({k: v for k, v in cli_args.items() if v is not None})
    return resolve_config(ParamConfig(), user_cfg, cli_cfg)


def _add_common_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--config", help="User config file (Python file with a CONFIG dict)")
    parser.add_argument("--bids-dir", help="Raw BIDS directory")
    parser.add_argument("--derivatives-dir", help="Output directory")
    parser.add_argument("--template-dir", help="Template directory (OASIS, MNI)")
    parser.add_argument("--atlas-dir", help="Atlas directory")
    parser.add_argument("--force", action="store_true",
                        help="Re-run every stage even when its outputs exist")
    parser.add_argument("--failure-policy", choices=["fail_fast", "skip_dependents"],
                        help="What to do with the remaining stages after a failure")
    parser.add_argument("--nthreads", type=int, help="Threads for MRtrix3 tools")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")


def _cli_args(args) -> dict:
    return {
        "subject": getattr(args, "subject", None),
        "bids_dir": args.bids_dir,
        "derivatives_dir": args.derivatives_dir,
        "template_dir": args.template_dir,
        "atlas_dir": args.atlas_dir,
        "mode": "force" if args.force else None,
        "failure_policy": args.failure_policy,
        "max_workers": getattr(args, "jobs", None),
        "nthreads": args.nthreads,
        "log_level": "DEBUG" if args.verbose else None,
    }


def _resolve_or_exit(args):
    try:
        return load_config(args.config, _cli_args(args))
    except (FileNotFoundError, ImportError, ValueError, ValidationError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return None


def _install_stop_handler(stop):
    """First Ctrl+C stops between stages; a second one interrupts immediately."""
    def _handler(signum, frame):
        logger.warning("Interrupt received; stopping after the current stage (Ctrl+C again to abort)")
        signal.signal(signal.SIGINT, signal.default_int_handler)
        stop()

    signal.signal(signal.SIGINT, _handler)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the connectome pipeline for one subject."""
    parser = argparse.ArgumentParser(
        prog="connflow",
        description="Structural connectome pipeline (T1w + DWI) for one subject",
    )
    parser.add_argument("subject", help="Subject id, e.g. sub-001")
    _add_common_arguments(parser)
    args = parser.parse_args(argv)

    config = _resolve_or_exit(args)
    if config is None:
        return EXIT_CONFIG

    setup_logging(config.logging.level)

    print(f"\n{'='*60}")
    print("connflow structural connectome pipeline")
    print('='*60)
    print(f"Subject:     {config.subject}")
    print(f"BIDS:        {config.paths.bids_dir}")
    print(f"Derivatives: {config.paths.derivatives_dir}")
    print(f"Mode:        {config.runner.mode} ({config.runner.failure_policy})")
    print('='*60)

    if args.verbose:
        print("\nFull Internal Configuration:")
        print(json.dumps(config.model_dump(), indent=2))
        print('='*60)

    try:
        pipeline = SubjectPipeline(config)
    except ContractViolation as e:
        logger.critical("Pipeline definition invalid: %s", e)
        return EXIT_CONFIG
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    _install_stop_handler(pipeline.request_stop)
    try:
        run = pipeline.run()
    except ContractViolation as e:
        logger.critical("Pipeline contract violated: %s", e)
        return EXIT_CONFIG

    print(run.report())
    return run.exit_code


def batch_main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the connectome pipeline for every subject of a BIDS directory."""
    parser = argparse.ArgumentParser(
        prog="connflow-batch",
        description="Run the structural connectome pipeline for many subjects",
    )
    parser.add_argument("--subjects", nargs="+", help="Subjects to run (default: all sub-* directories)")
    parser.add_argument("-j", "--jobs", type=int, help="Subjects to run in parallel")
    _add_common_arguments(parser)
    args = parser.parse_args(argv)

    config = _resolve_or_exit(args)
    if config is None:
        return EXIT_CONFIG

    log_path = Path(config.paths.derivatives_dir).expanduser() / "logs" / "batch.log"
    setup_logging(config.logging.level, log_path)

    subjects = args.subjects
    if subjects:
        subjects = [CLIConfig(subject=s).subject for s in subjects]

    try:
        results = run_batch(config, subjects)
    except FileNotFoundError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    table = results_table(results)
    print(table[['subject', 'exit_code', 'failed_stage', 'error']].to_string(index=False))
    return EXIT_OK if all(r.exit_code == 0 for r in results) else EXIT_FAILED
