"""
Ellipsoid fitting from seed points.

Each seed casts rays in the seeding directions; every combination of four
distinct contact points is fitted with an ellipsoid centred on the seed. A
contact is the first background position along its ray, so the fit goes through
its boundary midpoint instead, half a step back along the inward normal. A
centred ellipsoid has six degrees of freedom in its quadratic form A, four are
fixed by the contacts and the remaining two are chosen so that A deviates least
(Frobenius norm) from the sphere (1/r̄²)I, r̄² being the mean squared contact
distance.

With u = (A11, A22, A33, √2·A12, √2·A13, √2·A23) each boundary offset d gives
one linear equation row(d) · u = 1, and the Frobenius norm of A is the
Euclidean norm of u. The fit is therefore the minimum-norm correction

    u = u0 + Mᵀ (M Mᵀ)⁻¹ (1 - M u0)

solved for all combinations of a seed at once. Apart from the step back the
contact normals add nothing: they all point at the fixed centre.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from itertools import combinations
from typing import Iterable, List, Optional, Sequence

import numpy as np

from ellipsoidfactor.constants.constants import BOUNDARY_STEP_BACK, CONTACTS_PER_FIT, DegenerateFitReason
from ellipsoidfactor.core.config import FittingConfig
from ellipsoidfactor.core.exceptions import InvalidArgumentError
from ellipsoidfactor.processing.backends.ellipsoid.directions import generate_directions, seeding_directions
from ellipsoidfactor.processing.backends.ellipsoid.ellipsoid import Ellipsoid
from ellipsoidfactor.processing.backends.ellipsoid.ray_casting import ContactPoint, find_contact_points
from ellipsoidfactor.processing.backends.ellipsoid.validation import validate_ellipsoids
from ellipsoidfactor.processing.backends.ellipsoid.voxel_grid import VoxelGrid

logger = logging.getLogger(__name__)

_SQRT2 = np.sqrt(2.0)
_FIT_BATCH = 4096

# Reason codes used inside FitBatch; 0 means fitted
_REASONS = {
    1: DegenerateFitReason.NOT_AFFINELY_INDEPENDENT,
    2: DegenerateFitReason.ILL_CONDITIONED,
    3: DegenerateFitReason.NOT_POSITIVE_DEFINITE,
}
_NOT_AFFINE, _ILL, _NOT_PD = 1, 2, 3


@dataclass(frozen=True)
class FitResult:
    """Outcome of fitting one combination of contacts: an ellipsoid or the reason there is none."""
    ellipsoid: Optional[Ellipsoid] = None
    reason: Optional[DegenerateFitReason] = None

    @property
    def is_degenerate(self) -> bool:
        return self.ellipsoid is None


@dataclass(frozen=True)
class FitBatch:
    """Stacked fits; rows with a non-zero reason code carry NaN axes."""
    axes: np.ndarray
    orientations: np.ndarray
    reason_codes: np.ndarray

    @property
    def fitted(self) -> np.ndarray:
        return self.reason_codes == 0

    def reason(self, index: int) -> Optional[DegenerateFitReason]:
        return _REASONS.get(int(self.reason_codes[index]))


def design_rows(offsets: np.ndarray) -> np.ndarray:
    """Map (..., 3) offsets d to (..., 6) rows with row · u = dᵀ A d."""
    x, y, z = offsets[..., 0], offsets[..., 1], offsets[..., 2]
    return np.stack((x * x, y * y, z * z, _SQRT2 * x * y, _SQRT2 * x * z, _SQRT2 * y * z), axis=-1)


def _forms_from_vectors(u: np.ndarray) -> np.ndarray:
    forms = np.empty(u.shape[:-1] + (3, 3))
    forms[..., 0, 0], forms[..., 1, 1], forms[..., 2, 2] = u[..., 0], u[..., 1], u[..., 2]
    forms[..., 0, 1] = forms[..., 1, 0] = u[..., 3] / _SQRT2
    forms[..., 0, 2] = forms[..., 2, 0] = u[..., 4] / _SQRT2
    forms[..., 1, 2] = forms[..., 2, 1] = u[..., 5] / _SQRT2
    return forms


def fit_offsets(offsets: np.ndarray, config: FittingConfig = FittingConfig()) -> FitBatch:
    """
    Fit centred ellipsoids to stacked groups of four contact offsets.

    Args:
        offsets: (N, 4, 3) contact positions relative to the centre
        config: Numerical limits for rejecting degenerate fits

    Returns:
        FitBatch with (N, 3) semi-axes in ascending order, (N, 3, 3) orientations
        (rows are the matching principal axes, determinant +1) and reason codes
    """
    offsets = np.asarray(offsets, dtype=np.float64)
    count = offsets.shape[0]
    codes = np.zeros(count, dtype=np.int8)
    axes = np.full((count, 3), np.nan)
    orientations = np.zeros((count, 3, 3))
    if count == 0:
        return FitBatch(axes, orientations, codes)

    # Normalised tetrahedron volume
    edges = offsets[:, 1:, :] - offsets[:, :1, :]
    spread = np.prod(np.linalg.norm(edges, axis=2), axis=1)
    volume = np.abs(np.linalg.det(edges))
    codes[~(volume > config.coplanarity_tolerance * spread)] = _NOT_AFFINE

    rows = design_rows(offsets)
    normal = np.einsum('nkj,nlj->nkl', rows, rows)
    with np.errstate(divide='ignore', invalid='ignore'):
        condition = np.linalg.cond(normal)
    codes[(codes == 0) & ~(condition < config.condition_limit)] = _ILL

    solvable = np.flatnonzero(codes == 0)
    if solvable.size == 0:
        return FitBatch(axes, orientations, codes)

    rows = rows[solvable]
    local = offsets[solvable]
    mean_square = np.einsum('nki,nki->n', local, local) / CONTACTS_PER_FIT
    u = np.zeros((solvable.size, 6))
    u[:, :3] = (1.0 / mean_square)[:, None]

    residual = 1.0 - np.einsum('nkj,nj->nk', rows, u)
    correction = np.linalg.solve(normal[solvable], residual[..., None])[..., 0]
    u += np.einsum('nkj,nk->nj', rows, correction)
    misfit = np.abs(np.einsum('nkj,nj->nk', rows, u) - 1.0).max(axis=1)

    eigenvalues, eigenvectors = np.linalg.eigh(_forms_from_vectors(u))
    local_codes = np.zeros(solvable.size, dtype=np.int8)
    local_codes[~(misfit <= config.residual_tolerance)] = _ILL
    local_codes[(local_codes == 0) & ~(eigenvalues[:, 0] > config.min_eigenvalue)] = _NOT_PD
    codes[solvable] = local_codes

    good = local_codes == 0
    # Largest eigenvalue belongs to the shortest semi-axis
    rotations = np.ascontiguousarray(np.swapaxes(eigenvectors[good][:, :, ::-1], 1, 2))
    reflected = np.linalg.det(rotations) < 0
    rotations[reflected, 2] *= -1.0

    accepted = solvable[good]
    axes[accepted] = 1.0 / np.sqrt(eigenvalues[good][:, ::-1])
    orientations[accepted] = rotations
    return FitBatch(axes, orientations, codes)


def boundary_offsets(contacts: Sequence[ContactPoint], seed) -> np.ndarray:
    """(N, 3) offsets from seed to each contact moved half a step back along its inward normal."""
    seed = np.asarray(seed, dtype=np.float64).reshape(3)
    positions = np.array([contact.position for contact in contacts], dtype=np.float64).reshape(-1, 3)
    normals = np.array([contact.normal for contact in contacts], dtype=np.float64).reshape(-1, 3)
    return positions + BOUNDARY_STEP_BACK * normals - seed


def fit_ellipsoid(contacts: Sequence[ContactPoint], seed, config: FittingConfig = FittingConfig()) -> FitResult:
    """Fit one ellipsoid centred on seed through the boundary midpoints of exactly four contacts."""
    if len(contacts) != CONTACTS_PER_FIT:
        raise InvalidArgumentError(f"Exactly {CONTACTS_PER_FIT} contact points are needed, got {len(contacts)}")

    seed = np.asarray(seed, dtype=np.float64).reshape(3)
    batch = fit_offsets(boundary_offsets(contacts, seed)[None], config)

    if not batch.fitted[0]:
        return FitResult(reason=batch.reason(0))
    return FitResult(ellipsoid=Ellipsoid(seed, *batch.axes[0], batch.orientations[0]))


def find_ellipsoids_for_seed(
    grid: VoxelGrid,
    seed,
    directions: np.ndarray,
    sample_directions: np.ndarray,
    config: FittingConfig = FittingConfig(),
    batch_size: int = _FIT_BATCH
) -> List[Ellipsoid]:
    """
    All valid ellipsoids grown from one seed, in combination order.

    Args:
        grid: Binary voxel grid
        seed: (x, y, z) seed point
        directions: Ray directions used to find contacts
        sample_directions: Directions used by the containment validator
        config: Fitting limits
        batch_size: Number of combinations fitted per numpy call

    Returns:
        List of ellipsoids that passed validation
    """
    seed = np.asarray(seed, dtype=np.float64).reshape(3)
    contacts = find_contact_points(grid, seed, directions)
    if len(contacts) < CONTACTS_PER_FIT:
        logger.debug(f"Seed {tuple(seed)} has only {len(contacts)} distinct contacts; skipping")
        return []

    offsets = boundary_offsets(contacts, seed)
    groups = np.array(list(combinations(range(len(contacts)), CONTACTS_PER_FIT)), dtype=np.intp)

    ellipsoids = []
    rejected = Counter()
    invalid = 0
    for start in range(0, len(groups), batch_size):
        batch = fit_offsets(offsets[groups[start:start + batch_size]], config)
        codes, counts = np.unique(batch.reason_codes[~batch.fitted], return_counts=True)
        rejected.update({_REASONS[int(code)]: int(n) for code, n in zip(codes, counts)})

        fitted = np.flatnonzero(batch.fitted)
        valid = validate_ellipsoids(
            grid,
            np.broadcast_to(seed, (fitted.size, 3)),
            batch.axes[fitted],
            batch.orientations[fitted],
            sample_directions,
        )
        invalid += int(fitted.size - np.count_nonzero(valid))
        for index in fitted[valid]:
            ellipsoids.append(Ellipsoid.from_trusted_arrays(seed, batch.axes[index], batch.orientations[index]))

    logger.debug(
        f"Seed {tuple(seed)}: {len(contacts)} contacts, {len(groups)} combinations, "
        f"{len(ellipsoids)} valid, {invalid} failed containment, degenerate {dict(rejected)}"
    )
    return ellipsoids


def sort_by_volume(ellipsoids: Iterable[Ellipsoid]) -> List[Ellipsoid]:
    """Stable sort by descending volume; equal volumes keep their incoming order."""
    return sorted(ellipsoids, key=lambda ellipsoid: -ellipsoid.volume)


def find_ellipsoids(
    grid: VoxelGrid,
    seeds: Sequence,
    n_directions: int,
    config: FittingConfig = FittingConfig()
) -> List[Ellipsoid]:
    """Serial search over all seeds, merged in seed order and sorted by volume."""
    directions = seeding_directions(n_directions)
    sample_directions = generate_directions(n_directions)

    merged = []
    for seed in seeds:
        merged.extend(find_ellipsoids_for_seed(grid, seed, directions, sample_directions, config))
    return sort_by_volume(merged)
