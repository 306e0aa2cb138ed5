"""
Deterministic direction sampling on the unit sphere.

Directions are returned as (n, 3) float64 arrays of (x, y, z) unit vectors so they
can be broadcast against point arrays without conversion.
"""
from __future__ import annotations

import math
import numbers

import numpy as np

from ellipsoidfactor.constants.constants import SPIRAL_COUNT_FACTOR, SPIRAL_STEP_CONSTANT
from ellipsoidfactor.core.exceptions import InvalidArgumentError


def generate_directions(n: int) -> np.ndarray:
    """
    Numerically approximate n equidistantly spaced points on the unit sphere.

    Generalized spiral set of Rakhmanov et al. (1994) as described by Saff and
    Kuijlaars (1997), with k shifted by one so that k runs from 0 to n - 1.
    The first and last points are the south and north poles.

    Args:
        n: Number of directions, must be greater than 2

    Returns:
        Array of shape (n, 3) with one unit vector per row

    Raises:
        InvalidArgumentError: If n is not an integer greater than 2
    """
    if isinstance(n, bool) or not isinstance(n, numbers.Integral) or n <= 2:
        raise InvalidArgumentError(f"Direction count must be an integer greater than 2, got {n!r}")

    n = int(n)
    h = -1.0 + 2.0 * np.arange(n) / (n - 1)
    theta = np.arccos(h)

    # phi depends on its predecessor, so the recursion stays a loop
    phi = np.zeros(n)
    step = SPIRAL_STEP_CONSTANT / math.sqrt(n)
    for k in range(1, n - 1):
        phi_k = phi[k - 1] + step / math.sqrt(1.0 - h[k] * h[k])
        phi[k] = phi_k - math.floor(phi_k / (2.0 * math.pi)) * 2.0 * math.pi

    sin_theta = np.sin(theta)
    return np.column_stack((sin_theta * np.cos(phi), sin_theta * np.sin(phi), np.cos(theta)))


def axis_directions() -> np.ndarray:
    """The six signed axis directions of the world frame."""
    return np.array([
        [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0],
        [-1.0, 0.0, 0.0], [0.0, -1.0, 0.0], [0.0, 0.0, -1.0],
    ])


def seeding_directions(n: int) -> np.ndarray:
    """Spiral directions followed by the six axis directions (36 rows for n = 30)."""
    return np.vstack((generate_directions(n), axis_directions()))


def estimate_spiral_count(search_radius: float, pixel_width: float) -> int:
    """Number of spiral points needed so neighbouring rays are about one pixel apart at search_radius."""
    if search_radius <= 0 or pixel_width <= 0:
        raise InvalidArgumentError("search_radius and pixel_width must be positive")
    return int(math.ceil((search_radius * SPIRAL_COUNT_FACTOR / pixel_width) ** 2))
