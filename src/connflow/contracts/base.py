"""Base contract enforcement utilities.

The require() function is the single enforcement mechanism for definition-time
invariants of the stage graph.
"""

from connflow.contracts.failure import ContractViolation


def require(condition: bool, message: str) -> None:
    """Enforce a pipeline contract.

    Parameters
    ----------
    condition : bool
        The invariant that must be true. If False, ContractViolation is raised.

    message : str
        Error message explaining the contract violation.

    Raises
    ------
    ContractViolation
        If condition is False. This indicates a bug in the stage list.

    Examples
    --------
    >>> require(stage.id not in seen, f"Duplicate stage id '{stage.id}'")
    """
    if not condition:
        raise ContractViolation(message)
