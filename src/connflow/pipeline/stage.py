"""Declarative stage records.

A stage is one external tool invocation described as data: which artifacts and
transforms it consumes, which it produces, and an argument template whose
placeholders are filled from the artifact store and transform registry at run
time.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from connflow.contracts.base import require
from connflow.pipeline.spaces import CoordinateSpace, TransformKind

__all__ = [
    'Ref', 'XfmRef', 'ChainArgs', 'ArtifactDecl', 'TransformDecl', 'StageSpec', 'render_args',
]


@dataclass(frozen=True)
class Ref:
    """Argument placeholder replaced by the path of artifact ``name``.

    ``fmt`` wraps the path, e.g. ``"[{},1]"`` for ANTs inverse syntax or
    ``"{}_"`` for output prefixes.
    """
    name: str
    fmt: str = "{}"


@dataclass(frozen=True)
class XfmRef:
    """Argument placeholder replaced by the file of transform ``name``."""
    name: str


@dataclass(frozen=True)
class ChainArgs:
    """Argument placeholder expanded into transform options for a chain."""
    source: CoordinateSpace
    target: CoordinateSpace
    style: str = "ants"   # "ants" | "flirt"


@dataclass(frozen=True)
class ArtifactDecl:
    """Declared output file of a stage."""
    path: Path
    space: CoordinateSpace


@dataclass(frozen=True)
class TransformDecl:
    """Declared transform file written by a stage."""
    source: CoordinateSpace
    target: CoordinateSpace
    kind: TransformKind
    path: Path
    inverse_path: Optional[Path] = None
    matrix_format: Optional[str] = None

    def files(self) -> List[Path]:
        files = [self.path]
        if self.inverse_path is not None:
            files.append(self.inverse_path)
        return files


@dataclass(frozen=True)
class StageSpec:
    """One pipeline stage.

    Parameters
    ----------
    id : str
        Unique stage id, used in logs and the failure report.
    tool : str
        Executable name (resolved through ``tools.overrides``).
    args : tuple
        Argument template: ``str``/``Path`` tokens, ``Ref`` and ``ChainArgs``.
    requires, requires_transforms : frozenset of str
        Names that must be valid / registered before the stage is attempted.
    produces : dict
        Output artifact name -> ``ArtifactDecl``.
    produces_transforms : dict
        Output transform name -> ``TransformDecl``.
    idempotent : bool
        False for tools that leave partial prefix-named files behind; their
        declared outputs are removed before a re-run.
    """
    id: str
    tool: str
    args: Tuple = ()
    requires: FrozenSet[str] = frozenset()
    requires_transforms: FrozenSet[str] = frozenset()
    produces: Mapping[str, ArtifactDecl] = field(default_factory=dict)
    produces_transforms: Mapping[str, TransformDecl] = field(default_factory=dict)
    idempotent: bool = True
    description: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'args', tuple(self.args))
        object.__setattr__(self, 'requires', frozenset(self.requires))
        object.__setattr__(self, 'requires_transforms', frozenset(self.requires_transforms))
        object.__setattr__(self, 'produces', dict(self.produces))
        object.__setattr__(self, 'produces_transforms', dict(self.produces_transforms))

    def __hash__(self):
        return hash(self.id)

    @property
    def outputs(self) -> FrozenSet[str]:
        return frozenset(self.produces) | frozenset(self.produces_transforms)

    def referenced_artifacts(self) -> set:
        return {token.name for token in self.args if isinstance(token, Ref)}

    def referenced_transforms(self) -> set:
        return {token.name for token in self.args if isinstance(token, XfmRef)}

    def referenced_chains(self) -> List[ChainArgs]:
        return [token for token in self.args if isinstance(token, ChainArgs)]

    def output_files(self) -> List[Path]:
        files = [decl.path for decl in self.produces.values()]
        for decl in self.produces_transforms.values():
            files.extend(decl.files())
        return files


def render_args(stage: StageSpec, store, registry) -> List[str]:
    """Expand a stage's argument template into a concrete argument list.

    Required artifacts must be valid in ``store``; produced artifacts render to
    their declared path. Transform chains are resolved through ``registry``
    and every transform they use must be listed in ``requires_transforms``.

    Raises
    ------
    ContractViolation
        If a chain uses a transform the stage did not declare.
    ArtifactMissing, NoTransformPath
        If a placeholder cannot be filled.
    """
    args: List[str] = []
    for token in stage.args:
        if isinstance(token, Ref):
            if token.name in stage.produces:
                path = store.path_of(token.name)
            else:
                path = store.get(token.name).path
            args.append(token.fmt.format(path))
        elif isinstance(token, XfmRef):
            if token.name in stage.produces_transforms:
                args.append(str(stage.produces_transforms[token.name].path))
            else:
                args.append(str(registry.get(token.name).path))
        elif isinstance(token, ChainArgs):
            chain = registry.resolve(token.source, token.target)
            undeclared = set(chain.names) - stage.requires_transforms
            require(
                not undeclared,
                f"Stage '{stage.id}' uses undeclared transforms {sorted(undeclared)}"
            )
            args.extend(chain.flirt_init() if token.style == "flirt" else chain.ants_args())
        else:
            args.append(str(token))
    return args
