"""Per-voxel descriptor images painted from the identity field."""
from __future__ import annotations

from typing import Dict, Sequence

import numpy as np

from ellipsoidfactor.constants.constants import DESCRIPTOR_DTYPE
from ellipsoidfactor.core.exceptions import InvalidArgumentError
from ellipsoidfactor.processing.backends.ellipsoid.ellipsoid import Ellipsoid

DESCRIPTOR_NAMES = ("ellipsoid_factor", "volume", "a_to_b", "b_to_c")


def ellipsoid_descriptors(ellipsoids: Sequence[Ellipsoid]) -> Dict[str, np.ndarray]:
    """One float64 array per descriptor, indexed like the ellipsoid list."""
    return {
        name: np.array([getattr(e, name) for e in ellipsoids], dtype=np.float64)
        for name in DESCRIPTOR_NAMES
    }


def paint_labeled_regions(identity: np.ndarray, values: np.ndarray) -> np.ndarray:
    """
    Replace every identity label with values[label].

    Args:
        identity: int (Z, Y, X) identity field, negative where unassigned
        values: 1D array of per-ellipsoid values

    Returns:
        float32 array of identity's shape, NaN where unassigned
    """
    values = np.asarray(values)
    if values.ndim != 1:
        raise InvalidArgumentError(f"Descriptor values must be 1D, got shape {values.shape}")
    if identity.size and identity.max() >= values.size:
        raise InvalidArgumentError(
            f"Identity field references ellipsoid {identity.max()} but only {values.size} values were given"
        )

    painted = np.full(identity.shape, np.nan, dtype=DESCRIPTOR_DTYPE)
    assigned = identity >= 0
    painted[assigned] = values[identity[assigned]]
    return painted


def count_assigned_voxels(identity: np.ndarray) -> int:
    return int(np.count_nonzero(identity >= 0))


def filling_percentage(identity: np.ndarray, foreground: np.ndarray) -> float:
    """Share of foreground voxels that received an ellipsoid, in percent; 0 for an empty foreground."""
    total = int(np.count_nonzero(foreground))
    if total == 0:
        return 0.0
    return 100.0 * count_assigned_voxels(identity) / total
