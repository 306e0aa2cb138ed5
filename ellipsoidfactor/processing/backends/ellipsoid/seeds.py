"""
Seed point extraction from the ridge of the distance transform.

The ridge field is the grey closing minus the grey opening of the Euclidean
distance transform; it peaks along medial-axis-like structures, which are good
places to grow maximal inscribed ellipsoids from.
"""
from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np
from scipy import ndimage
from skimage.morphology import ball

from ellipsoidfactor.constants.constants import DEFAULT_RIDGE_FRACTION, DEFAULT_RIDGE_RADIUS, SEED_MASK_VALUE
from ellipsoidfactor.core.exceptions import InvalidArgumentError
from ellipsoidfactor.processing.backends.ellipsoid.voxel_grid import validate_binary_volume

logger = logging.getLogger(__name__)


def compute_ridge_field(volume: np.ndarray, radius: int = DEFAULT_RIDGE_RADIUS) -> np.ndarray:
    """
    Ridge field of a binary (Z, Y, X) volume.

    Args:
        volume: Binary volume, non-zero voxels are foreground
        radius: Radius of the spherical structuring element

    Returns:
        float32 array, closing(edt) - opening(edt)
    """
    mask = validate_binary_volume(volume)
    if radius < 1:
        raise InvalidArgumentError(f"Ridge radius must be at least 1, got {radius}")

    distance = ndimage.distance_transform_edt(mask).astype(np.float32)
    footprint = ball(radius).astype(bool)
    closed = ndimage.grey_closing(distance, footprint=footprint)
    opened = ndimage.grey_opening(distance, footprint=footprint)
    return closed - opened


def _retained_ridge(volume: np.ndarray, ridge: np.ndarray, fraction: float) -> Tuple[np.ndarray, float]:
    mask = validate_binary_volume(volume)
    ridge = np.asarray(ridge)
    if ridge.shape != mask.shape:
        raise InvalidArgumentError(f"Ridge field shape {ridge.shape} does not match volume shape {mask.shape}")
    if not 0.0 < fraction <= 1.0:
        raise InvalidArgumentError(f"Ridge fraction must be in (0, 1], got {fraction}")

    # Ridge values outside the foreground are never seeds
    masked = np.where(mask, ridge, 0).astype(np.float64)
    threshold = fraction * float(masked.max()) if masked.size else 0.0
    return masked > threshold, threshold


def extract_seed_points(
    volume: np.ndarray,
    ridge: np.ndarray,
    fraction: float = DEFAULT_RIDGE_FRACTION
) -> List[Tuple[float, float, float]]:
    """
    Voxel centres whose ridge value exceeds fraction * max(ridge).

    Seeds are listed in raster order: x fastest, then y, then z.

    Args:
        volume: Binary (Z, Y, X) volume
        ridge: Ridge field with the same shape
        fraction: Retention fraction in (0, 1]

    Returns:
        List of (x, y, z) seed coordinates, empty when the ridge is uniformly zero
    """
    retained, threshold = _retained_ridge(volume, ridge, fraction)

    # argwhere walks C order over (Z, Y, X): x varies fastest
    zyx = np.argwhere(retained)
    seeds = [(x + 0.5, y + 0.5, z + 0.5) for z, y, x in zyx.tolist()]

    if not seeds:
        logger.warning(f"No ridge voxel exceeds threshold {threshold:.4f}; no seed points found")
    else:
        logger.info(f"Found {len(seeds)} seed points above ridge threshold {threshold:.4f}")
    return seeds


def seed_point_mask(
    volume: np.ndarray,
    ridge: np.ndarray,
    fraction: float = DEFAULT_RIDGE_FRACTION
) -> np.ndarray:
    """uint8 (Z, Y, X) mask, 255 at retained ridge voxels and 0 elsewhere."""
    retained, _ = _retained_ridge(volume, ridge, fraction)
    return retained.astype(np.uint8) * SEED_MASK_VALUE
