"""
Voxel-to-ellipsoid assignment.

Every foreground voxel is labelled with the index of the first ellipsoid, in
descending-volume order, that strictly contains the voxel centre. Slices are
independent, so each one can be computed by a different worker and stitched
afterwards.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ellipsoidfactor.constants.constants import (
    DEFAULT_ASSIGNMENT_BUDGET, DEFAULT_ASSIGNMENT_CHUNK, IDENTITY_DTYPE, UNASSIGNED
)
from ellipsoidfactor.processing.backends.ellipsoid.ellipsoid import Ellipsoid, inside_matrix
from ellipsoidfactor.processing.backends.ellipsoid.voxel_grid import VoxelGrid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EllipsoidArrays:
    """Ellipsoids stacked into arrays, index i being the i-th ellipsoid of the sorted list."""
    centroids: np.ndarray
    axes: np.ndarray
    orientations: np.ndarray

    @classmethod
    def from_ellipsoids(cls, ellipsoids: Sequence[Ellipsoid]) -> 'EllipsoidArrays':
        if not ellipsoids:
            return cls(np.zeros((0, 3)), np.ones((0, 3)), np.zeros((0, 3, 3)))
        return cls(
            centroids=np.stack([e.centroid for e in ellipsoids]),
            axes=np.stack([e.semi_axes for e in ellipsoids]),
            orientations=np.stack([e.orientation for e in ellipsoids]),
        )

    def __len__(self) -> int:
        return self.centroids.shape[0]

    @property
    def reach(self) -> np.ndarray:
        """Largest semi-axis of each ellipsoid."""
        return self.axes.max(axis=1)


def slice_candidates(arrays: EllipsoidArrays, z: int) -> np.ndarray:
    """Indices, in ascending order, of ellipsoids whose z-extent can reach the centre plane of slice z."""
    if len(arrays) == 0:
        return np.zeros(0, dtype=np.intp)
    return np.flatnonzero(np.abs(arrays.centroids[:, 2] - (z + 0.5)) < arrays.reach)


def assign_slice(
    grid: VoxelGrid,
    arrays: EllipsoidArrays,
    z: int,
    chunk: int = DEFAULT_ASSIGNMENT_CHUNK,
    budget: int = DEFAULT_ASSIGNMENT_BUDGET
) -> np.ndarray:
    """
    Identity labels for one (H, W) slice.

    Candidates are tested in blocks of chunk ellipsoids against the voxels that
    are still unassigned; within a block the lowest index that contains a
    voxel centre wins, which equals a linear scan in volume order. Voxels are
    themselves split so that no more than budget voxel-ellipsoid pairs are
    tested at once, which bounds memory independently of the slice size.

    Returns:
        int32 (H, W) array of ellipsoid indices, UNASSIGNED for background or
        voxels no ellipsoid contains
    """
    _, height, width = grid.mask.shape
    labels = np.full((height, width), UNASSIGNED, dtype=IDENTITY_DTYPE)

    ys, xs = np.nonzero(grid.mask[z])
    candidates = slice_candidates(arrays, z)
    if ys.size == 0 or candidates.size == 0:
        return labels

    centres = np.column_stack((xs + 0.5, ys + 0.5, np.full(xs.size, z + 0.5)))
    identity = np.full(xs.size, UNASSIGNED, dtype=np.int64)
    pending = np.arange(xs.size)

    for start in range(0, candidates.size, chunk):
        block = candidates[start:start + chunk]
        centroids, axes, orientations = arrays.centroids[block], arrays.axes[block], arrays.orientations[block]
        step = max(1, budget // block.size)

        matched = np.zeros(pending.size, dtype=bool)
        for first in range(0, pending.size, step):
            voxels = pending[first:first + step]
            hits = inside_matrix(centres[voxels], centroids, axes, orientations)
            found = hits.any(axis=1)
            identity[voxels[found]] = block[hits[found].argmax(axis=1)]
            matched[first:first + step] = found

        pending = pending[~matched]
        if pending.size == 0:
            break

    labels[ys, xs] = identity
    return labels


def assign_ellipsoid_ids(
    grid: VoxelGrid,
    ellipsoids: Sequence[Ellipsoid],
    chunk: int = DEFAULT_ASSIGNMENT_CHUNK,
    budget: int = DEFAULT_ASSIGNMENT_BUDGET
) -> np.ndarray:
    """Serial assignment of every slice; returns the int32 (Z, Y, X) identity field."""
    arrays = EllipsoidArrays.from_ellipsoids(ellipsoids)
    if len(arrays) == 0:
        logger.warning("No ellipsoids to assign; identity field is entirely unassigned")
    depth = grid.mask.shape[0]
    return np.stack([assign_slice(grid, arrays, z, chunk, budget) for z in range(depth)])
