"""
Ray marching through the voxel grid.

Rays advance in unit steps and index voxels by truncation only; there is no
sub-voxel interpolation, so a contact lies up to one step beyond the true
foreground boundary.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np

from ellipsoidfactor.core.exceptions import InvalidArgumentError
from ellipsoidfactor.processing.backends.ellipsoid.voxel_grid import VoxelGrid, to_voxel_index


@dataclass(frozen=True)
class ContactPoint:
    """Where a ray from a seed leaves the foreground, with the unit normal pointing back to the seed."""
    position: tuple
    normal: tuple

    def as_array(self) -> np.ndarray:
        return np.array(self.position, dtype=np.float64)


def _unit(direction) -> np.ndarray:
    direction = np.asarray(direction, dtype=np.float64).reshape(3)
    norm = np.linalg.norm(direction)
    if not norm > 0 or not np.isfinite(norm):
        raise InvalidArgumentError(f"Ray direction must be a non-zero finite vector, got {direction}")
    return direction / norm


def cast_ray(grid: VoxelGrid, origin, direction) -> np.ndarray:
    """
    March from origin along direction to the first background voxel.

    Args:
        grid: Binary voxel grid
        origin: Real-valued (x, y, z) start position
        direction: Ray direction; normalised before marching

    Returns:
        The first position whose voxel is background or outside the grid. If the
        origin's own voxel is background the origin is returned unchanged.
    """
    step = _unit(direction)
    position = np.asarray(origin, dtype=np.float64).reshape(3).copy()

    index = to_voxel_index(position)
    while grid.get(*index):
        position += step
        index = to_voxel_index(position)
    return position


def find_contact_points(grid: VoxelGrid, seed, directions: np.ndarray) -> List[ContactPoint]:
    """
    Cast one ray per direction from seed and pair each contact with its inward normal.

    Contacts that coincide with the seed carry no normal and are dropped; identical
    pairs are kept once, in the order of the first direction that produced them.
    """
    seed = np.asarray(seed, dtype=np.float64).reshape(3)
    contacts = []
    seen = set()
    for direction in directions:
        position = cast_ray(grid, seed, direction)
        inward = seed - position
        length = np.linalg.norm(inward)
        if length == 0.0:
            continue
        contact = ContactPoint(tuple(position.tolist()), tuple((inward / length).tolist()))
        if contact in seen:
            continue
        seen.add(contact)
        contacts.append(contact)
    return contacts
