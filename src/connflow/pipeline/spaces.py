"""Coordinate spaces and transform kinds shared by the store and the registry."""

from enum import Enum


class CoordinateSpace(str, Enum):
    """Reference frames images are represented in."""
    NATIVE = "native"   # subject T1w anatomy
    MNI = "mni"         # standard template
    DWI_B0 = "dwi_b0"   # diffusion b0


class TransformKind(str, Enum):
    """Kind of a spatial transform, as registered or as traversed."""
    AFFINE = "affine"
    WARP = "warp"
    INVERSE_AFFINE = "inverse_affine"
    INVERSE_WARP = "inverse_warp"

    @property
    def inverse(self) -> "TransformKind":
        return _INVERSE_KIND[self]

    @property
    def is_affine(self) -> bool:
        return self in (TransformKind.AFFINE, TransformKind.INVERSE_AFFINE)


_INVERSE_KIND = {
    TransformKind.AFFINE: TransformKind.INVERSE_AFFINE,
    TransformKind.INVERSE_AFFINE: TransformKind.AFFINE,
    TransformKind.WARP: TransformKind.INVERSE_WARP,
    TransformKind.INVERSE_WARP: TransformKind.WARP,
}
