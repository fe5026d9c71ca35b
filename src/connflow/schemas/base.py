"""Base Pydantic model with strict defaults for connflow configs.

All connflow config schemas inherit from this base to ensure consistent
validation behavior across parameter, user, CLI, and internal configs.
"""

from pydantic import BaseModel, ConfigDict


class ConnflowBaseModel(BaseModel):
    """Base model for all connflow configuration schemas.

    Enforces strict validation:
    - No extra fields allowed
    - Validates assignments after initialization
    - Stores enum values, not enum members
    - Strips whitespace from strings
    """

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
    )


def normalize_subject(value):
    """Accept ``001`` as well as ``sub-001`` for subject identifiers."""
    if value is None:
        return value
    value = str(value).strip().rstrip("/")
    if value and not value.startswith("sub-"):
        value = f"sub-{value}"
    return value
