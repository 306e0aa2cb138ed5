"""
Ellipsoid factor building blocks.

Directions, ray casting, seeding, fitting, validation and voxel assignment as
plain functions over numpy arrays; the orchestrator wires them into a run.
"""

from ellipsoidfactor.processing.backends.ellipsoid.assignment import (
    EllipsoidArrays, assign_ellipsoid_ids, assign_slice
)
from ellipsoidfactor.processing.backends.ellipsoid.directions import (
    axis_directions, estimate_spiral_count, generate_directions, seeding_directions
)
from ellipsoidfactor.processing.backends.ellipsoid.ellipsoid import (
    Ellipsoid, closest_surface_distance, closest_surface_point, inside_ellipsoid,
    inside_mask, surface_containment_test
)
from ellipsoidfactor.processing.backends.ellipsoid.fitting import (
    FitResult, find_ellipsoids, find_ellipsoids_for_seed, fit_ellipsoid, sort_by_volume
)
from ellipsoidfactor.processing.backends.ellipsoid.painting import (
    count_assigned_voxels, ellipsoid_descriptors, filling_percentage, paint_labeled_regions
)
from ellipsoidfactor.processing.backends.ellipsoid.ray_casting import ContactPoint, cast_ray, find_contact_points
from ellipsoidfactor.processing.backends.ellipsoid.seeds import (
    compute_ridge_field, extract_seed_points, seed_point_mask
)
from ellipsoidfactor.processing.backends.ellipsoid.validation import (
    validate_ellipsoids, wholly_contained_in_foreground
)
from ellipsoidfactor.processing.backends.ellipsoid.voxel_grid import VoxelGrid

__all__ = [
    "ContactPoint", "Ellipsoid", "EllipsoidArrays", "FitResult", "VoxelGrid",
    "assign_ellipsoid_ids", "assign_slice", "axis_directions", "cast_ray",
    "closest_surface_distance", "closest_surface_point", "compute_ridge_field",
    "count_assigned_voxels", "ellipsoid_descriptors", "estimate_spiral_count",
    "extract_seed_points", "filling_percentage", "find_contact_points",
    "find_ellipsoids", "find_ellipsoids_for_seed", "fit_ellipsoid",
    "generate_directions", "inside_ellipsoid", "inside_mask",
    "paint_labeled_regions", "seed_point_mask", "seeding_directions",
    "sort_by_volume", "surface_containment_test", "validate_ellipsoids",
    "wholly_contained_in_foreground",
]
