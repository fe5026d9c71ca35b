"""Configuration resolution and merging logic.

This module provides the single entrypoint for configuration resolution:
resolve_config(). It merges ParamConfig, UserConfig, and CLIConfig in
the correct precedence order and returns a validated InternalConfig.

Precedence (highest to lowest):
1. CLIConfig (command-line overrides)
2. UserConfig (user file)
3. ParamConfig (expert defaults)
"""

from typing import Union, Optional
from connflow.schemas.param import ParamConfig
from connflow.schemas.user import UserConfig
from connflow.schemas.cli import CLIConfig
from connflow.schemas.internal import InternalConfig


def deep_merge(base: dict, *overrides: dict) -> dict:
    """Deep merge multiple dictionaries.

    Later dictionaries override earlier ones. Nested dictionaries are
    merged recursively; other values are replaced.

    Examples
    --------
    >>> base = {"a": 1, "b": {"c": 2, "d": 3}}
    >>> override = {"b": {"d": 4, "e": 5}, "f": 6}
    >>> deep_merge(base, override)
    {'a': 1, 'b': {'c': 2, 'd': 4, 'e': 5}, 'f': 6}
    """
    result = base.copy()

    for override in overrides:
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = deep_merge(result[key], value)
            else:
                result[key] = value

    return result


def _as_model(value, model_cls):
    if value is None or (isinstance(value, dict) and not value):
        return model_cls()
    if isinstance(value, model_cls):
        return value
    return model_cls.model_validate(value)


def resolve_config(
    param_cfg: Union[dict, ParamConfig],
    user_cfg: Optional[Union[dict, UserConfig]] = None,
    cli_cfg: Optional[Union[dict, CLIConfig]] = None,
) -> InternalConfig:
    """Resolve final runtime configuration from param, user, and CLI configs.

    Parameters
    ----------
    param_cfg : dict or ParamConfig
        Expert configuration with complete defaults. Required.
    user_cfg : dict or UserConfig, optional
        User configuration with overrides.
    cli_cfg : dict or CLIConfig, optional
        Command-line overrides.

    Returns
    -------
    InternalConfig
        Fully validated, immutable runtime configuration

    Raises
    ------
    ValidationError
        If any config fails Pydantic validation (including unknown keys in
        nested user sections).

    Examples
    --------
    >>> config = resolve_config(ParamConfig(), {"STREAMLINES": "5M"}, {"subject": "001"})
    >>> config.tractography.streamlines
    '5M'
    >>> config.subject
    'sub-001'
    """
    param = param_cfg if isinstance(param_cfg, ParamConfig) else ParamConfig.model_validate(param_cfg)
    user = _as_model(user_cfg, UserConfig)
    cli = _as_model(cli_cfg, CLIConfig)

    merged = deep_merge(
        param.model_dump(),
        user.to_internal_overrides(),
        cli.to_internal_overrides(),
    )

    # tckgen rejects a maximum length below the minimum
    tract = merged["tractography"]
    if tract["max_length"] <= tract["min_length"]:
        raise ValueError(
            f"tractography.max_length ({tract['max_length']}) must exceed "
            f"min_length ({tract['min_length']})"
        )

    return InternalConfig.model_validate(merged)
