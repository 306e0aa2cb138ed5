"""
Whole-ellipsoid containment validation.

An ellipsoid is accepted when, after shrinking each semi-axis by √3, the surface
point along each of its six principal directions and along every sample direction
falls on a foreground voxel (or outside the grid).
"""
from __future__ import annotations

import numpy as np

from ellipsoidfactor.constants.constants import AXIS_REDUCTION
from ellipsoidfactor.processing.backends.ellipsoid.ellipsoid import (
    Ellipsoid, quadratic_forms, ray_surface_intersections
)
from ellipsoidfactor.processing.backends.ellipsoid.voxel_grid import VoxelGrid, to_voxel_index


def validation_directions(orientations: np.ndarray, sample_directions: np.ndarray) -> np.ndarray:
    """(N, 6 + K, 3) test directions: +rows, -rows, then the shared sample directions."""
    sample_directions = np.asarray(sample_directions, dtype=np.float64).reshape(-1, 3)
    count = orientations.shape[0]
    shared = np.broadcast_to(sample_directions, (count,) + sample_directions.shape)
    return np.concatenate((orientations, -orientations, shared), axis=1)


def validate_ellipsoids(
    grid: VoxelGrid,
    centroids: np.ndarray,
    axes: np.ndarray,
    orientations: np.ndarray,
    sample_directions: np.ndarray
) -> np.ndarray:
    """
    Vectorised containment check over stacked ellipsoids.

    Args:
        grid: Binary voxel grid
        centroids: (N, 3) centroids
        axes: (N, 3) semi-axes
        orientations: (N, 3, 3) orientation matrices, rows are principal axes
        sample_directions: (K, 3) unit directions shared by every ellipsoid

    Returns:
        Boolean (N,) array, True where the ellipsoid is wholly in the foreground
    """
    if centroids.shape[0] == 0:
        return np.zeros(0, dtype=bool)

    centroid_ok = grid.indices_in_bounds(to_voxel_index(centroids))
    forms = quadratic_forms(axes - AXIS_REDUCTION, orientations)
    directions = validation_directions(orientations, sample_directions)
    surface = ray_surface_intersections(centroids, forms, directions)
    return centroid_ok & grid.foreground_at(surface, outside=True).all(axis=1)


def wholly_contained_in_foreground(grid: VoxelGrid, ellipsoid: Ellipsoid, sample_directions: np.ndarray) -> bool:
    """True if the ellipsoid's centroid is in the grid and none of its test directions hit background."""
    return bool(validate_ellipsoids(
        grid,
        ellipsoid.centroid[None, :],
        ellipsoid.semi_axes[None, :],
        ellipsoid.orientation[None],
        sample_directions,
    )[0])
