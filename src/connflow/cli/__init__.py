"""Command-line interface modules for connflow pipeline execution.

This package contains the execution logic, making scripts/ optional.
"""

from connflow.cli.run_subject import main, batch_main, load_config

__all__ = ['main', 'batch_main', 'load_config']
