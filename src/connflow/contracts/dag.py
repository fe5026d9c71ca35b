"""Definition-time validation of the stage dependency graph.

Runs once when a pipeline is constructed, before any external tool is
invoked. Every problem found here is a ContractViolation.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from connflow.contracts.base import require

__all__ = ['StageGraph', 'validate_stage_dag']

logger = logging.getLogger(__name__)


@dataclass
class StageGraph:
    """Validated stage graph.

    Attributes
    ----------
    order : list of str
        Stage ids in execution order.
    producers : dict
        Artifact or transform name -> producing stage id (``None`` for inputs).
    dependencies : dict
        Stage id -> ids of the stages it directly depends on.
    """
    order: List[str]
    producers: Dict[str, Optional[str]]
    dependencies: Dict[str, Set[str]] = field(default_factory=dict)

    def dependents(self, stage_id: str) -> Set[str]:
        """All stages that transitively depend on ``stage_id``."""
        children: Dict[str, Set[str]] = {sid: set() for sid in self.order}
        for sid, deps in self.dependencies.items():
            for dep in deps:
                children[dep].add(sid)

        found: Set[str] = set()
        stack = list(children.get(stage_id, ()))
        while stack:
            sid = stack.pop()
            if sid not in found:
                found.add(sid)
                stack.extend(children[sid])
        return found

    def ancestors(self, stage_id: str) -> Set[str]:
        found: Set[str] = set()
        stack = list(self.dependencies.get(stage_id, ()))
        while stack:
            sid = stack.pop()
            if sid not in found:
                found.add(sid)
                stack.extend(self.dependencies[sid])
        return found


def _find_cycle(dependencies: Dict[str, Set[str]], order: List[str]) -> Optional[List[str]]:
    """Depth-first search for a cycle; returns the stage ids on it."""
    WHITE, GREY, BLACK = 0, 1, 2
    colour = {sid: WHITE for sid in order}
    stack_path: List[str] = []

    def visit(sid):
        colour[sid] = GREY
        stack_path.append(sid)
        for dep in sorted(dependencies[sid], key=order.index):
            if colour[dep] == GREY:
                return stack_path[stack_path.index(dep):] + [dep]
            if colour[dep] == WHITE:
                cycle = visit(dep)
                if cycle:
                    return cycle
        stack_path.pop()
        colour[sid] = BLACK
        return None

    for sid in order:
        if colour[sid] == WHITE:
            cycle = visit(sid)
            if cycle:
                return cycle
    return None


def validate_stage_dag(stages: Iterable, external_inputs: Iterable[str] = ()) -> StageGraph:
    """Validate an ordered stage list against its data dependencies.

    Parameters
    ----------
    stages : iterable of StageSpec
        Stages in the order they will be executed.
    external_inputs : iterable of str
        Artifact names supplied from outside the pipeline (raw scans, templates).

    Returns
    -------
    StageGraph
        Execution order, producers and direct dependencies.

    Raises
    ------
    ContractViolation
        On duplicate stage ids, duplicate producers, requirements with no
        producer, requirements produced by a later stage, cycles, or argument
        placeholders the stage did not declare.
    """
    stages = list(stages)
    producers: Dict[str, Optional[str]] = {}
    position: Dict[str, int] = {}

    for name in external_inputs:
        require(name not in producers, f"External input '{name}' declared twice")
        producers[name] = None

    for index, stage in enumerate(stages):
        require(stage.id not in position, f"Duplicate stage id '{stage.id}'")
        position[stage.id] = index
        for name in stage.outputs:
            owner = producers.get(name) or "external input"
            require(
                name not in producers,
                f"'{name}' produced by both '{owner}' and '{stage.id}'"
            )
            producers[name] = stage.id

    dependencies: Dict[str, Set[str]] = {}
    for stage in stages:
        deps: Set[str] = set()
        for name in sorted(stage.requires | stage.requires_transforms):
            require(
                name in producers,
                f"Stage '{stage.id}' requires '{name}' which nothing produces"
            )
            producer = producers[name]
            if producer is not None:
                deps.add(producer)
        dependencies[stage.id] = deps

        declared = stage.requires | set(stage.produces)
        undeclared = stage.referenced_artifacts() - declared
        require(
            not undeclared,
            f"Stage '{stage.id}' argument template references undeclared artifacts "
            f"{sorted(undeclared)}"
        )

        undeclared = stage.referenced_transforms() - (
            stage.requires_transforms | set(stage.produces_transforms))
        require(
            not undeclared,
            f"Stage '{stage.id}' argument template references undeclared transforms "
            f"{sorted(undeclared)}"
        )

    order = [stage.id for stage in stages]
    cycle = _find_cycle(dependencies, order)
    require(cycle is None, f"Stage graph has a cycle: {' -> '.join(cycle or [])}")

    for stage in stages:
        for dep in dependencies[stage.id]:
            require(
                position[dep] < position[stage.id],
                f"Stage '{stage.id}' requires output of later stage '{dep}'"
            )

    logger.debug("Validated stage graph: %d stages, %d named outputs",
                 len(stages), len(producers))
    return StageGraph(order=order, producers=producers, dependencies=dependencies)
