"""Per-subject registry of named file artifacts.

An artifact is declared (pending) before its stage runs and becomes valid
only once the producing stage has finished and the file exists with nonzero
size. Validity is what later stages check before they are attempted.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

from connflow.contracts.base import require
from connflow.contracts.failure import (
    ArtifactMissing,
    ArtifactNotRegistered,
    ArtifactProductionFailed,
)
from connflow.pipeline.spaces import CoordinateSpace

__all__ = ['Artifact', 'ArtifactStore']

logger = logging.getLogger(__name__)


@dataclass
class Artifact:
    """A named file produced by a stage or supplied as pipeline input."""
    name: str
    path: Path
    space: CoordinateSpace
    produced_by: Optional[str] = None
    valid: bool = False

    @property
    def is_input(self) -> bool:
        return self.produced_by is None


class ArtifactStore:
    """Map of artifact name to file, space, producing stage and validity.

    One store per subject. Stage outputs are registered up front by the runner
    so that a stage can only ever write the names it declared.

    Parameters
    ----------
    subject : str
        Subject identifier owning the store.
    min_bytes : int, optional
        Smallest file size accepted as a real output (default 1).

    Examples
    --------
    >>> store = ArtifactStore("sub-001")
    >>> store.register("t1w_n4", "/out/sub-001_T1w_N4.nii.gz",
    ...                CoordinateSpace.NATIVE, produced_by="n4_bias_correction")
    >>> store.exists("t1w_n4")
    False
    """

    def __init__(self, subject: str, min_bytes: int = 1):
        self.subject = subject
        self.min_bytes = min_bytes
        self._artifacts: Dict[str, Artifact] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._artifacts

    def __len__(self) -> int:
        return len(self._artifacts)

    def register(self, name: str, path, space: CoordinateSpace,
                 produced_by: Optional[str] = None) -> Artifact:
        """Declare an artifact as pending.

        Re-registering a name is allowed only for the same producer and path
        (a stage re-run); validity is reset in that case.
        """
        path = Path(path)
        space = CoordinateSpace(space)
        existing = self._artifacts.get(name)
        if existing is not None:
            require(
                existing.produced_by == produced_by,
                f"Artifact '{name}' already produced by '{existing.produced_by}', "
                f"cannot be registered for '{produced_by}'"
            )
            require(
                existing.path == path,
                f"Artifact '{name}' already registered at {existing.path}, not {path}"
            )
            existing.space = space
            existing.valid = False
            return existing

        artifact = Artifact(name=name, path=path, space=space, produced_by=produced_by)
        self._artifacts[name] = artifact
        logger.debug("Registered artifact %s -> %s", name, path)
        return artifact

    def _lookup(self, name: str) -> Artifact:
        artifact = self._artifacts.get(name)
        if artifact is None:
            raise ArtifactNotRegistered(name)
        return artifact

    def _file_problem(self, path: Path) -> Optional[str]:
        if not path.is_file():
            return "file does not exist"
        size = path.stat().st_size
        if size < self.min_bytes:
            return f"file size {size} below minimum {self.min_bytes}"
        return None

    def mark_valid(self, name: str) -> Artifact:
        """Mark an artifact valid after checking its file on disk.

        Raises
        ------
        ArtifactNotRegistered
            If ``name`` was never declared.
        ArtifactProductionFailed
            If the file is absent or empty. Validity is left unchanged.
        """
        artifact = self._lookup(name)
        problem = self._file_problem(artifact.path)
        if problem is not None:
            raise ArtifactProductionFailed(name, artifact.path, problem)
        artifact.valid = True
        return artifact

    def invalidate(self, name: str) -> None:
        self._lookup(name).valid = False

    def get(self, name: str) -> Artifact:
        """Return a valid artifact.

        Raises
        ------
        ArtifactNotRegistered
            If ``name`` was never declared.
        ArtifactMissing
            If the artifact is declared but not valid.
        """
        artifact = self._lookup(name)
        if not artifact.valid:
            raise ArtifactMissing(name)
        return artifact

    def path_of(self, name: str) -> Path:
        """Declared path of an artifact, whether or not it is valid yet."""
        return self._lookup(name).path

    def exists(self, name: str) -> bool:
        """True if the artifact is declared, valid and its file is still on disk."""
        artifact = self._artifacts.get(name)
        if artifact is None or not artifact.valid:
            return False
        return self._file_problem(artifact.path) is None

    def probe(self, name: str) -> bool:
        """True if the declared file is present and large enough. Does not mark valid."""
        artifact = self._artifacts.get(name)
        if artifact is None:
            return False
        return self._file_problem(artifact.path) is None

    def artifacts(self, produced_only: bool = False) -> List[Artifact]:
        items = list(self._artifacts.values())
        if produced_only:
            items = [a for a in items if not a.is_input]
        return items

    def valid_names(self, produced_only: bool = False) -> List[str]:
        return [a.name for a in self.artifacts(produced_only) if a.valid]

    def summary(self) -> Dict[str, int]:
        """Counts of declared, valid, input and produced artifacts."""
        items = self.artifacts()
        return {
            'declared': len(items),
            'valid': sum(1 for a in items if a.valid),
            'inputs': sum(1 for a in items if a.is_input),
            'produced': sum(1 for a in items if not a.is_input),
        }
