"""
Ellipsoid value type and stateless geometry primitives.

An ellipsoid is stored as its centroid, its semi-axis lengths (a, b, c) and an
orthonormal orientation matrix whose rows are the principal axes belonging to
a, b and c. A world point p has ellipsoid-local coordinates orientation @ (p - centroid),
in which the surface is x²/a² + y²/b² + z²/c² = 1.

Batch helpers operate on stacked (N, 3) axes and (N, 3, 3) orientations so the
fitter and validator can treat thousands of candidates with a single numpy call.
"""
from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from ellipsoidfactor.constants.constants import (
    AXIS_REDUCTION, DEFAULT_SOLVER_MAX_ITERATIONS, DEFAULT_SOLVER_TOLERANCE
)
from ellipsoidfactor.core.exceptions import (
    InvalidArgumentError, NonConvergenceWarning, NonUniqueSolutionError
)

logger = logging.getLogger(__name__)

_ORTHONORMAL_TOLERANCE = 1.0e-6
_MIN_REDUCED_AXIS = 1.0e-9


def _frozen_array(values, shape) -> np.ndarray:
    array = np.array(values, dtype=np.float64).reshape(shape)
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class Ellipsoid:
    """Immutable ellipsoid with semi-axes a, b, c along the rows of orientation."""
    centroid: np.ndarray
    a: float
    b: float
    c: float
    orientation: np.ndarray

    def __post_init__(self):
        object.__setattr__(self, 'centroid', _frozen_array(self.centroid, (3,)))
        object.__setattr__(self, 'orientation', _frozen_array(self.orientation, (3, 3)))
        for name in ('a', 'b', 'c'):
            value = float(getattr(self, name))
            if not value > 0 or not math.isfinite(value):
                raise InvalidArgumentError(f"Semi-axis {name} must be positive and finite, got {value}")
            object.__setattr__(self, name, value)

        q = self.orientation
        if not np.allclose(q @ q.T, np.eye(3), atol=_ORTHONORMAL_TOLERANCE):
            raise InvalidArgumentError("Ellipsoid orientation must be orthonormal")
        if np.linalg.det(q) < 0:
            raise InvalidArgumentError("Ellipsoid orientation must be a rotation (determinant +1)")

    @property
    def semi_axes(self) -> np.ndarray:
        return np.array([self.a, self.b, self.c])

    @property
    def max_semi_axis(self) -> float:
        return max(self.a, self.b, self.c)

    @property
    def volume(self) -> float:
        return 4.0 / 3.0 * math.pi * self.a * self.b * self.c

    @property
    def ellipsoid_factor(self) -> float:
        """EF = a/b - b/c: -1 for plates, +1 for rods, 0 for spheres when a <= b <= c."""
        return self.a / self.b - self.b / self.c

    @property
    def a_to_b(self) -> float:
        return self.a / self.b

    @property
    def b_to_c(self) -> float:
        return self.b / self.c

    @classmethod
    def from_trusted_arrays(cls, centroid: np.ndarray, axes: np.ndarray, orientation: np.ndarray) -> 'Ellipsoid':
        """Build from arrays already known to be valid (fitter output), skipping the checks."""
        ellipsoid = object.__new__(cls)
        object.__setattr__(ellipsoid, 'centroid', _frozen_array(centroid, (3,)))
        object.__setattr__(ellipsoid, 'orientation', _frozen_array(orientation, (3, 3)))
        a, b, c = (float(v) for v in axes)
        object.__setattr__(ellipsoid, 'a', a)
        object.__setattr__(ellipsoid, 'b', b)
        object.__setattr__(ellipsoid, 'c', c)
        return ellipsoid

    def quadratic_form(self, axis_reduction: float = 0.0) -> np.ndarray:
        """Matrix M with (p - centroid)ᵀ M (p - centroid) = 1 on the (optionally shrunk) surface."""
        return quadratic_forms(self.semi_axes[None, :] - axis_reduction, self.orientation[None])[0]

    def __repr__(self):
        x, y, z = self.centroid
        return (f"Ellipsoid(centroid=({x:.3f}, {y:.3f}, {z:.3f}), "
                f"a={self.a:.3f}, b={self.b:.3f}, c={self.c:.3f})")


# ---------------------------------------------------------------------------
# Containment
# ---------------------------------------------------------------------------

def to_ellipsoid_coordinates(points, ellipsoid: Ellipsoid) -> np.ndarray:
    """Express (..., 3) world points in the ellipsoid's centred, rotated frame."""
    translated = np.asarray(points, dtype=np.float64) - ellipsoid.centroid
    return translated @ ellipsoid.orientation.T


def inside_matrix(points: np.ndarray, centroids: np.ndarray, axes: np.ndarray, orientations: np.ndarray) -> np.ndarray:
    """
    Inside test of M points against K ellipsoids, shape (M, K).

    Points further from a centroid than its largest semi-axis, along any world
    axis or in length, are rejected without consulting the quadratic form.
    """
    displacement = points[:, None, :] - centroids[None, :, :]
    reach = axes.max(axis=1)[None, :]

    nearby = np.all(np.abs(displacement) <= reach[..., None], axis=2)
    nearby &= np.einsum('mki,mki->mk', displacement, displacement) <= reach * reach

    local = np.einsum('mki,kji->mkj', displacement, orientations)
    scaled = local / axes[None, :, :]
    return nearby & (np.einsum('mkj,mkj->mk', scaled, scaled) < 1.0)


def inside_mask(points: np.ndarray, ellipsoid: Ellipsoid) -> np.ndarray:
    """Vectorised inside test for (N, 3) points against one ellipsoid."""
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return inside_matrix(
        points, ellipsoid.centroid[None, :], ellipsoid.semi_axes[None, :], ellipsoid.orientation[None]
    )[:, 0]


def inside_ellipsoid(point, ellipsoid: Ellipsoid) -> bool:
    """True if point lies strictly inside the ellipsoid."""
    return bool(inside_mask(np.asarray(point, dtype=np.float64)[None, :], ellipsoid)[0])


# ---------------------------------------------------------------------------
# Closest surface distance
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SurfacePoint:
    """Result of the closest-surface-point search."""
    point: np.ndarray
    theta: float
    phi: float
    distance: float
    iterations: int
    converged: bool


def surface_point(ellipsoid: Ellipsoid, theta: float, phi: float) -> np.ndarray:
    """World coordinates of the surface point with parameters (theta, phi)."""
    local = np.array([
        ellipsoid.a * math.cos(phi) * math.cos(theta),
        ellipsoid.b * math.cos(phi) * math.sin(theta),
        ellipsoid.c * math.sin(phi),
    ])
    return ellipsoid.centroid + local @ ellipsoid.orientation


def _newton_step(theta, phi, a, b, c, x, y, z) -> Tuple[float, float]:
    """
    Inverse Jacobian times residual for the two orthogonality conditions.

    f1 and f2 vanish when the vector from the surface point to (x, y, z) is
    normal to the surface; see Nürnberg, "Distance from a point to an ellipse".
    """
    a2mb2 = a * a - b * b
    sin_t, cos_t = math.sin(theta), math.cos(theta)
    sin_p, cos_p = math.sin(phi), math.cos(phi)
    radial = a * a * cos_t * cos_t + b * b * sin_t * sin_t - c * c

    f1 = a2mb2 * cos_t * sin_t * cos_p - x * a * sin_t + y * b * cos_t
    f2 = radial * sin_p * cos_p - x * a * sin_p * cos_t - y * b * sin_p * sin_t + z * c * cos_p

    j11 = a2mb2 * (cos_t * cos_t - sin_t * sin_t) * cos_p - x * a * cos_t - y * b * sin_t
    j12 = -a2mb2 * cos_t * sin_t * sin_p
    j21 = -2.0 * a2mb2 * cos_t * sin_t * sin_p * cos_p + x * a * sin_p * sin_t - y * b * sin_p * cos_t
    j22 = radial * (cos_p * cos_p - sin_p * sin_p) - x * a * cos_p * cos_t - y * b * cos_p * sin_t - z * c * sin_p

    determinant = j11 * j22 - j12 * j21
    if determinant == 0.0:
        raise NonUniqueSolutionError("Solution is not unique: surface distance Jacobian is singular.")

    return (j22 * f1 - j12 * f2) / determinant, (-j21 * f1 + j11 * f2) / determinant


def closest_surface_point(
    ellipsoid: Ellipsoid,
    point,
    tolerance: float = DEFAULT_SOLVER_TOLERANCE,
    max_iterations: int = DEFAULT_SOLVER_MAX_ITERATIONS
) -> SurfacePoint:
    """
    Find the surface point closest to point with bivariate Newton-Raphson.

    Args:
        ellipsoid: The ellipsoid in question
        point: World (x, y, z) point
        tolerance: Angle change below which the solution counts as converged
        max_iterations: Maximum number of Newton-Raphson iterations

    Returns:
        SurfacePoint with the converged (or best available) estimate

    Raises:
        NonUniqueSolutionError: If the point is the centroid or the Jacobian is singular
        InvalidArgumentError: If tolerance or max_iterations is not positive

    Warns:
        NonConvergenceWarning: If max_iterations is exhausted before the tolerance is met
    """
    if not tolerance > 0:
        raise InvalidArgumentError(f"tolerance must be positive, got {tolerance}")
    if max_iterations < 1:
        raise InvalidArgumentError(f"max_iterations must be at least 1, got {max_iterations}")

    a, b, c = ellipsoid.a, ellipsoid.b, ellipsoid.c
    point = np.asarray(point, dtype=np.float64)
    x, y, z = (float(v) for v in to_ellipsoid_coordinates(point, ellipsoid))

    # Every pair of opposite surface points is stationary for the centre
    if x == 0.0 and y == 0.0 and z == 0.0:
        raise NonUniqueSolutionError("Solution is not unique: point coincides with the ellipsoid centroid.")

    root_term = math.sqrt(x * x / (a * a) + y * y / (b * b))
    theta = math.atan2(a * y, b * x)
    phi = math.atan2(z, c * root_term)

    converged = False
    iterations = 0
    while iterations < max_iterations:
        d_theta, d_phi = _newton_step(theta, phi, a, b, c, x, y, z)
        next_theta, next_phi = theta - d_theta, phi - d_phi
        change = math.hypot(next_theta - theta, next_phi - phi)
        theta, phi = next_theta, next_phi
        iterations += 1
        if change < tolerance:
            converged = True
            break

    if not converged:
        # A partially converged estimate is still a usable approximation
        warnings.warn(
            f"Surface distance solver did not reach tolerance {tolerance} in {max_iterations} iterations; "
            f"returning the last estimate.",
            NonConvergenceWarning,
            stacklevel=3,
        )

    closest = surface_point(ellipsoid, theta, phi)
    return SurfacePoint(
        point=closest,
        theta=theta,
        phi=phi,
        distance=float(np.linalg.norm(point - closest)),
        iterations=iterations,
        converged=converged,
    )


def closest_surface_distance(
    ellipsoid: Ellipsoid,
    point,
    tolerance: float = DEFAULT_SOLVER_TOLERANCE,
    max_iterations: int = DEFAULT_SOLVER_MAX_ITERATIONS
) -> float:
    """Shortest distance between point and the ellipsoid surface."""
    return closest_surface_point(ellipsoid, point, tolerance, max_iterations).distance


# ---------------------------------------------------------------------------
# Surface intersection
# ---------------------------------------------------------------------------

def quadratic_forms(axes: np.ndarray, orientations: np.ndarray) -> np.ndarray:
    """Stacked Qᵀ diag(1/a², 1/b², 1/c²) Q for (N, 3) axes and (N, 3, 3) orientations."""
    axes = np.maximum(np.abs(axes), _MIN_REDUCED_AXIS)
    return np.einsum('nki,nk,nkj->nij', orientations, 1.0 / (axes * axes), orientations)


def ray_surface_intersections(centroids: np.ndarray, forms: np.ndarray, directions: np.ndarray) -> np.ndarray:
    """
    Points where rays from each centroid leave the surface xᵀ M x = 1.

    Args:
        centroids: (N, 3) ray origins
        forms: (N, 3, 3) quadratic forms
        directions: (N, K, 3) unit directions per ellipsoid

    Returns:
        (N, K, 3) intersection points
    """
    quad = np.einsum('nki,nij,nkj->nk', directions, forms, directions)
    t = np.sqrt(1.0 / quad)
    return centroids[:, None, :] + t[..., None] * directions


def surface_containment_test(grid, ellipsoid: Ellipsoid, direction) -> bool:
    """
    True if the shrunk ellipsoid's surface along direction lands on foreground.

    Each semi-axis is reduced by √3 to absorb voxel rounding. Intersections
    outside the grid count as foreground so that touching the image border
    never disqualifies an ellipsoid.
    """
    direction = np.asarray(direction, dtype=np.float64)
    form = ellipsoid.quadratic_form(AXIS_REDUCTION)
    intersection = ray_surface_intersections(
        ellipsoid.centroid[None, :], form[None], direction.reshape(1, 1, 3)
    )
    return bool(grid.foreground_at(intersection.reshape(1, 3), outside=True)[0])
