"""Pydantic configuration schemas for the connectome pipeline.

Exports
-------
resolve_config : function
    Single entrypoint for configuration resolution
InternalConfig : class
    Fully validated, authoritative runtime configuration
ParamConfig : class
    Expert defaults (complete)
UserConfig : class
    User-facing configuration (forgiving, minimal)
CLIConfig : class
    Command-line operational overrides
"""

from connflow.schemas.resolve import resolve_config, deep_merge
from connflow.schemas.internal import InternalConfig
from connflow.schemas.param import ParamConfig
from connflow.schemas.user import UserConfig
from connflow.schemas.cli import CLIConfig

__all__ = [
    'resolve_config',
    'deep_merge',
    'InternalConfig',
    'ParamConfig',
    'UserConfig',
    'CLIConfig',
]
