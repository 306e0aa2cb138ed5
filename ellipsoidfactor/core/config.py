"""
Global configuration dataclasses for ellipsoidfactor.

This module defines the primary configuration objects used throughout the package,
such as SeedingConfig, SolverConfig and the overarching GlobalEllipsoidFactorConfig.
Configuration is intended to be immutable and provided as Python objects.
"""

import logging
import os
from dataclasses import dataclass, field

from ellipsoidfactor.constants.constants import (
    DEFAULT_ASSIGNMENT_BUDGET, DEFAULT_ASSIGNMENT_CHUNK, DEFAULT_CONDITION_LIMIT, DEFAULT_COPLANARITY_TOLERANCE,
    DEFAULT_MIN_EIGENVALUE, DEFAULT_RESIDUAL_TOLERANCE, DEFAULT_RIDGE_FRACTION,
    DEFAULT_RIDGE_RADIUS, DEFAULT_SOLVER_MAX_ITERATIONS, DEFAULT_SOLVER_TOLERANCE,
    DEFAULT_SPIRAL_DIRECTIONS
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SeedingConfig:
    """Configuration for ridge-based seed point extraction."""
    ridge_fraction: float = DEFAULT_RIDGE_FRACTION
    """Fraction of the maximum ridge value a voxel must exceed to become a seed (0, 1]."""

    ridge_radius: int = DEFAULT_RIDGE_RADIUS
    """Radius of the ball used to open and close the distance transform."""


@dataclass(frozen=True)
class SamplingConfig:
    """Configuration for direction sampling on the unit sphere."""
    n_directions: int = DEFAULT_SPIRAL_DIRECTIONS
    """Number of spiral directions used both for ray casting and for validation."""


@dataclass(frozen=True)
class SolverConfig:
    """
    Configuration for the closest-surface-distance Newton-Raphson solver.

    Runs never measure surface distances, so the orchestrator does not read
    this; it holds the settings for direct callers of closest_surface_point
    and closest_surface_distance.
    """
    tolerance: float = DEFAULT_SOLVER_TOLERANCE
    """Change between consecutive angle estimates below which the solver stops."""

    max_iterations: int = DEFAULT_SOLVER_MAX_ITERATIONS
    """Maximum number of Newton-Raphson iterations."""


@dataclass(frozen=True)
class FittingConfig:
    """Numerical limits for fitting an ellipsoid to four contact points."""
    coplanarity_tolerance: float = DEFAULT_COPLANARITY_TOLERANCE
    """Normalised tetrahedron volume below which four contacts count as coplanar."""

    condition_limit: float = DEFAULT_CONDITION_LIMIT
    """Largest accepted condition number of the 4x4 normal matrix."""

    residual_tolerance: float = DEFAULT_RESIDUAL_TOLERANCE
    """Largest accepted deviation of a contact from the fitted surface equation."""

    min_eigenvalue: float = DEFAULT_MIN_EIGENVALUE
    """Smallest eigenvalue of the quadratic form still considered positive."""


@dataclass(frozen=True)
class GlobalEllipsoidFactorConfig:
    """
    Root configuration object for an ellipsoid factor run.
    This object is intended to be instantiated once and treated as immutable.
    """
    num_workers: int = field(default_factory=lambda: os.cpu_count() or 1)
    """Number of worker processes/threads for the per-seed and per-slice phases."""

    use_threading: bool = field(default_factory=lambda: os.getenv('ELLIPSOIDFACTOR_USE_THREADING', 'true').lower() == 'true')
    """Use ThreadPoolExecutor instead of ProcessPoolExecutor. Reads from ELLIPSOIDFACTOR_USE_THREADING."""

    seeding: SeedingConfig = field(default_factory=SeedingConfig)
    """Configuration for seed point extraction."""

    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    """Configuration for direction sampling."""

    solver: SolverConfig = field(default_factory=SolverConfig)
    """Surface distance solver settings, passed by callers to closest_surface_distance."""

    fitting: FittingConfig = field(default_factory=FittingConfig)
    """Numerical limits for ellipsoid fitting."""

    assignment_chunk: int = DEFAULT_ASSIGNMENT_CHUNK
    """Number of candidate ellipsoids tested against a slice's voxels at once."""

    assignment_budget: int = DEFAULT_ASSIGNMENT_BUDGET
    """Largest number of voxel-ellipsoid pairs tested in one vectorised call; bounds per-worker memory."""


# --- Default Configuration Provider ---

_DEFAULT_SEEDING_CONFIG = SeedingConfig()
_DEFAULT_SAMPLING_CONFIG = SamplingConfig()
_DEFAULT_SOLVER_CONFIG = SolverConfig()
_DEFAULT_FITTING_CONFIG = FittingConfig()

def get_default_global_config() -> GlobalEllipsoidFactorConfig:
    """
    Provides a default instance of GlobalEllipsoidFactorConfig.

    This function is called if no specific configuration is provided to the
    EllipsoidFactorOrchestrator, ensuring runs work with sensible defaults.
    """
    logger.info("Initializing with default GlobalEllipsoidFactorConfig.")
    return GlobalEllipsoidFactorConfig(
        # num_workers is already handled by field(default_factory)
        seeding=_DEFAULT_SEEDING_CONFIG,
        sampling=_DEFAULT_SAMPLING_CONFIG,
        solver=_DEFAULT_SOLVER_CONFIG,
        fitting=_DEFAULT_FITTING_CONFIG,
    )
