"""Registry of spatial transforms between coordinate spaces.

Transforms are edges of a small directed graph of coordinate spaces. Several
transforms registered between the same pair of spaces (an ANTs affine followed
by its nonlinear warp) form one hop and are traversed together. A hop can be
walked backwards: its components are reversed and each one is inverted.

Chains are returned in application order: step 0 is applied first.
"""

import logging
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import numpy as np

from connflow.contracts.base import require
from connflow.contracts.failure import NoTransformPath
from connflow.pipeline.spaces import CoordinateSpace, TransformKind

__all__ = ['Transform', 'TransformStep', 'TransformChain', 'TransformRegistry']

logger = logging.getLogger(__name__)


@dataclass
class Transform:
    """A named transform file mapping ``source`` space to ``target`` space.

    Parameters
    ----------
    name : str
        Unique name per subject (e.g. ``t1w_to_b0_affine``).
    source, target : CoordinateSpace
        Direction of the mapping as registered.
    kind : TransformKind
        Kind as stored on disk.
    path : Path
        Transform file (affine matrix or warp field).
    inverse_path : Path, optional
        Precomputed inverse field, used when a warp is traversed backwards.
    matrix : numpy.ndarray, optional
        4x4 homogeneous matrix of the file, when already known.
    matrix_format : {"fsl"}, optional
        Plain-text 4x4 matrix that can be loaded lazily from ``path``.
    """
    name: str
    source: CoordinateSpace
    target: CoordinateSpace
    kind: TransformKind
    path: Path
    inverse_path: Optional[Path] = None
    matrix: Optional[np.ndarray] = field(default=None, repr=False)
    matrix_format: Optional[str] = None

    def load_matrix(self) -> np.ndarray:
        """Return the stored 4x4 matrix, loading FSL text matrices on demand."""
        if self.matrix is None:
            if self.matrix_format != "fsl":
                raise ValueError(f"Transform '{self.name}' has no readable matrix")
            self.matrix = np.loadtxt(self.path).reshape(4, 4)
        return np.asarray(self.matrix, dtype=float)

    def forward_matrix(self) -> np.ndarray:
        """Matrix mapping ``source`` coordinates to ``target`` coordinates."""
        if not self.kind.is_affine:
            raise ValueError(f"Transform '{self.name}' is a warp field, not a matrix")
        matrix = self.load_matrix()
        if self.kind == TransformKind.INVERSE_AFFINE:
            return np.linalg.inv(matrix)
        return matrix


@dataclass(frozen=True)
class TransformStep:
    """One transform as used inside a chain, possibly traversed backwards."""
    transform: Transform
    inverted: bool = False

    @property
    def name(self) -> str:
        return self.transform.name

    @property
    def source(self) -> CoordinateSpace:
        return self.transform.target if self.inverted else self.transform.source

    @property
    def target(self) -> CoordinateSpace:
        return self.transform.source if self.inverted else self.transform.target

    @property
    def kind(self) -> TransformKind:
        return self.transform.kind.inverse if self.inverted else self.transform.kind

    def matrix(self) -> np.ndarray:
        forward = self.transform.forward_matrix()
        return np.linalg.inv(forward) if self.inverted else forward


class TransformChain:
    """Ordered transform steps mapping one space to another."""

    def __init__(self, source: CoordinateSpace, target: CoordinateSpace,
                 steps: Optional[List[TransformStep]] = None):
        self.source = source
        self.target = target
        self.steps = list(steps or [])

    def __iter__(self):
        return iter(self.steps)

    def __len__(self):
        return len(self.steps)

    def __repr__(self):
        names = ", ".join(
            f"{s.name}{'^-1' if s.inverted else ''}" for s in self.steps
        )
        return f"TransformChain({self.source.value}->{self.target.value}: [{names}])"

    @property
    def names(self) -> List[str]:
        return [step.name for step in self.steps]

    def is_valid(self) -> bool:
        """Check that consecutive steps chain spaces end to end.

        Components of one hop share their endpoints, so a step may also repeat
        the (source, target) pair of the previous one.
        """
        if not self.steps:
            return self.source == self.target
        if self.steps[0].source != self.source or self.steps[-1].target != self.target:
            return False
        for prev, nxt in zip(self.steps, self.steps[1:]):
            same_hop = (prev.source, prev.target) == (nxt.source, nxt.target)
            if prev.target != nxt.source and not same_hop:
                return False
        return True

    def as_matrix(self) -> np.ndarray:
        """Compose the chain into one 4x4 matrix (affine steps only)."""
        result = np.eye(4)
        for step in self.steps:
            result = step.matrix() @ result
        return result

    def apply_to_points(self, points) -> np.ndarray:
        """Map an (N, 3) array of coordinates through the chain."""
        pts = np.atleast_2d(np.asarray(points, dtype=float))
        homogeneous = np.hstack([pts, np.ones((pts.shape[0], 1))])
        mapped = homogeneous @ self.as_matrix().T
        return mapped[:, :3]

    def _ants_order(self) -> List[TransformStep]:
        """Steps in the order antsApplyTransforms expects them.

        ANTs applies the last ``-t`` first, so a forward hop lists its warp
        before the affine (``-t 1Warp -t 0GenericAffine``). Backward hops keep
        chain order (``-t 1InverseWarp -t [0GenericAffine,1]``).
        """
        ordered: List[TransformStep] = []
        hop: List[TransformStep] = []
        for step in self.steps:
            if hop and (step.source, step.target, step.inverted) != (
                    hop[0].source, hop[0].target, hop[0].inverted):
                ordered += hop if hop[0].inverted else hop[::-1]
                hop = []
            hop.append(step)
        if hop:
            ordered += hop if hop[0].inverted else hop[::-1]
        return ordered

    def ants_args(self) -> List[str]:
        """Render ``-t`` options for antsApplyTransforms, one per step.

        Inverted affines use the ``[file,1]`` syntax. Inverted warps need the
        precomputed inverse field since ANTs cannot invert a field on the fly.
        """
        args: List[str] = []
        for step in self._ants_order():
            transform = step.transform
            if step.kind == TransformKind.INVERSE_AFFINE:
                args += ["-t", f"[{transform.path},1]"]
            elif step.kind == TransformKind.INVERSE_WARP:
                require(
                    transform.inverse_path is not None,
                    f"Warp '{transform.name}' traversed backwards but has no inverse field"
                )
                args += ["-t", str(transform.inverse_path)]
            else:
                args += ["-t", str(transform.path)]
        return args

    def flirt_init(self) -> List[str]:
        """Render ``-init <matrix>`` for flirt ``-applyxfm``."""
        require(
            len(self.steps) == 1 and self.steps[0].kind == TransformKind.AFFINE,
            f"flirt needs exactly one forward affine, got {self!r}"
        )
        return ["-init", str(self.steps[0].transform.path)]


class TransformRegistry:
    """Tracks named transforms for one subject and resolves chains between spaces.

    The connectome pipeline only ever registers Native<->MNI and
    Native<->DWI_B0, but resolution is a breadth-first search over the space
    graph, so new spaces and multi-hop chains need no changes here.

    Examples
    --------
    >>> registry = TransformRegistry("sub-001")
    >>> registry.register("t1w_to_b0_affine", CoordinateSpace.NATIVE,
    ...                   CoordinateSpace.DWI_B0, TransformKind.AFFINE,
    ...                   Path("T1w_to_b0.mat"), matrix_format="fsl")
    >>> chain = registry.resolve(CoordinateSpace.DWI_B0, CoordinateSpace.NATIVE)
    >>> chain.names
    ['t1w_to_b0_affine']
    """

    def __init__(self, subject: str):
        self.subject = subject
        self._transforms: Dict[str, Transform] = {}
        # (source, target) -> components in registration order
        self._hops: Dict[Tuple[CoordinateSpace, CoordinateSpace], List[Transform]] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._transforms

    def __len__(self) -> int:
        return len(self._transforms)

    def register(self, name: str, source: CoordinateSpace, target: CoordinateSpace,
                 kind: TransformKind, path, inverse_path=None,
                 matrix=None, matrix_format: Optional[str] = None) -> Transform:
        """Register a transform mapping ``source`` to ``target``.

        Registering the same name twice with identical endpoints and path
        replaces the entry (a stage re-run); anything else is a contract
        violation.
        """
        source = CoordinateSpace(source)
        target = CoordinateSpace(target)
        kind = TransformKind(kind)
        require(source != target, f"Transform '{name}' maps {source.value} onto itself")

        existing = self._transforms.get(name)
        if existing is not None:
            require(
                (existing.source, existing.target, Path(existing.path)) == (source, target, Path(path)),
                f"Transform '{name}' already registered with a different definition"
            )
            self._hops[(source, target)].remove(existing)

        transform = Transform(
            name=name,
            source=source,
            target=target,
            kind=kind,
            path=Path(path),
            inverse_path=Path(inverse_path) if inverse_path else None,
            matrix=None if matrix is None else np.asarray(matrix, dtype=float),
            matrix_format=matrix_format,
        )
        self._transforms[name] = transform
        self._hops.setdefault((source, target), []).append(transform)
        logger.debug("Registered transform %s: %s -> %s (%s)",
                     name, source.value, target.value, kind.value)
        return transform

    def get(self, name: str) -> Transform:
        return self._transforms[name]

    def transforms(self) -> List[Transform]:
        return list(self._transforms.values())

    def spaces(self) -> set:
        return {space for hop in self._hops for space in hop}

    def _neighbours(self, space: CoordinateSpace):
        """Yield (next_space, steps) for every hop leaving ``space``.

        Forward hops come before backward ones.
        """
        for (source, target), components in self._hops.items():
            if source == space and components:
                yield target, [TransformStep(t) for t in components]
        for (source, target), components in self._hops.items():
            if target == space and components:
                yield source, [TransformStep(t, inverted=True) for t in reversed(components)]

    def resolve(self, from_space: CoordinateSpace, to_space: CoordinateSpace) -> TransformChain:
        """Return the shortest chain of transforms mapping ``from_space`` to ``to_space``.

        Raises
        ------
        NoTransformPath
            If no chain of registered transforms connects the two spaces.
        """
        from_space = CoordinateSpace(from_space)
        to_space = CoordinateSpace(to_space)
        if from_space == to_space:
            return TransformChain(from_space, to_space)

        visited = {from_space}
        queue = deque([(from_space, [])])
        while queue:
            space, steps = queue.popleft()
            for neighbour, hop_steps in self._neighbours(space):
                if neighbour in visited:
                    continue
                chain_steps = steps + hop_steps
                if neighbour == to_space:
                    chain = TransformChain(from_space, to_space, chain_steps)
                    require(chain.is_valid(), f"Resolved an inconsistent chain: {chain!r}")
                    logger.debug("Resolved %r", chain)
                    return chain
                visited.add(neighbour)
                queue.append((neighbour, chain_steps))

        raise NoTransformPath(from_space.value, to_space.value)
