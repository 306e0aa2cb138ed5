"""
Read-only binary voxel grid.

Volumes are stored the way every image stack in the package is stored, as
(Z, Y, X) arrays, while points and indices handed to the grid are (x, y, z).
Real-valued positions are mapped to voxels by truncation toward zero, so a
voxel with index i covers [i, i + 1) and its centre is i + 0.5.
"""
from __future__ import annotations

from typing import Tuple

import numpy as np

from ellipsoidfactor.core.exceptions import InvalidArgumentError


def validate_binary_volume(volume: np.ndarray, name: str = "volume") -> np.ndarray:
    """
    Check that volume is a 3D binary array and return it as a boolean array.

    Args:
        volume: Candidate volume, any dtype with at most two distinct values
        name: Name of the array for error messages

    Returns:
        Boolean (Z, Y, X) array, non-zero voxels being foreground

    Raises:
        InvalidArgumentError: If the array is not 3D or holds more than two values
    """
    if not isinstance(volume, np.ndarray):
        raise InvalidArgumentError(f"{name} must be a NumPy array, got {type(volume)}")

    if volume.ndim != 3:
        raise InvalidArgumentError(f"{name} must be a 3D array (Z, Y, X), got {volume.ndim}D")

    if volume.dtype != np.bool_ and np.unique(volume).size > 2:
        raise InvalidArgumentError(f"{name} must be binary, got more than two distinct values")

    return volume != 0


class VoxelGrid:
    """Bounds-checked view of a binary volume; never mutated."""

    def __init__(self, volume: np.ndarray):
        mask = validate_binary_volume(volume)
        mask.setflags(write=False)
        self._mask = mask
        depth, height, width = mask.shape
        self._shape_xyz = np.array([width, height, depth])

    @property
    def mask(self) -> np.ndarray:
        """Read-only boolean (Z, Y, X) array."""
        return self._mask

    def dimensions(self) -> Tuple[int, int, int]:
        """Grid extent as (width, height, depth)."""
        width, height, depth = (int(v) for v in self._shape_xyz)
        return width, height, depth

    def contains_index(self, index) -> bool:
        index = np.asarray(index)
        return bool(np.all(index >= 0) and np.all(index < self._shape_xyz))

    def get(self, x: int, y: int, z: int) -> bool:
        """Foreground value at integer index (x, y, z); False outside the grid."""
        if not self.contains_index((x, y, z)):
            return False
        return bool(self._mask[z, y, x])

    def is_foreground(self, point) -> bool:
        """Foreground value of the voxel holding a real-valued (x, y, z) point."""
        x, y, z = to_voxel_index(point)
        return self.get(x, y, z)

    def indices_in_bounds(self, indices: np.ndarray) -> np.ndarray:
        """Vectorised bounds check for (..., 3) integer (x, y, z) indices."""
        return np.all((indices >= 0) & (indices < self._shape_xyz), axis=-1)

    def foreground_at(self, points: np.ndarray, outside=False) -> np.ndarray:
        """
        Vectorised voxel lookup for (..., 3) real-valued (x, y, z) points.

        Args:
            points: Array of points, last axis (x, y, z)
            outside: Value reported for points whose voxel lies outside the grid

        Returns:
            Boolean array with the shape of points minus the last axis
        """
        indices = to_voxel_index(points)
        inside = self.indices_in_bounds(indices)
        result = np.full(inside.shape, bool(outside))
        hits = indices[inside]
        result[inside] = self._mask[hits[:, 2], hits[:, 1], hits[:, 0]]
        return result


def to_voxel_index(points) -> np.ndarray:
    """Truncate real-valued (x, y, z) positions toward zero to integer voxel indices."""
    return np.trunc(np.asarray(points, dtype=np.float64)).astype(np.int64)


def voxel_centre(x: int, y: int, z: int) -> Tuple[float, float, float]:
    return x + 0.5, y + 0.5, z + 0.5
