"""Tests for four-contact ellipsoid fitting and the per-seed search."""
import math

import numpy as np
import pytest

from ellipsoidfactor.constants.constants import DegenerateFitReason
from ellipsoidfactor.core.exceptions import InvalidArgumentError
from ellipsoidfactor.processing.backends.ellipsoid.directions import generate_directions, seeding_directions
from ellipsoidfactor.processing.backends.ellipsoid.ellipsoid import Ellipsoid
from ellipsoidfactor.processing.backends.ellipsoid.fitting import (
    boundary_offsets, find_ellipsoids, find_ellipsoids_for_seed, fit_ellipsoid, fit_offsets, sort_by_volume
)
from ellipsoidfactor.processing.backends.ellipsoid.ray_casting import ContactPoint
from ellipsoidfactor.processing.backends.ellipsoid.voxel_grid import VoxelGrid


def _contacts(seed, offsets):
    """Contacts whose boundary midpoints sit exactly at seed + offset."""
    seed = np.asarray(seed, dtype=float)
    contacts = []
    for offset in offsets:
        offset = np.asarray(offset, dtype=float)
        inward = -offset / np.linalg.norm(offset)
        position = seed + offset - 0.5 * inward
        contacts.append(ContactPoint(tuple(position), tuple(inward)))
    return contacts


class TestFitEllipsoid:

    def setup_method(self):
        self.seed = (3.0, -1.0, 2.0)

    def test_sphere_is_recovered_exactly(self):
        diagonal = -np.ones(3) / math.sqrt(3.0) * 5.0
        result = fit_ellipsoid(_contacts(self.seed, [(5, 0, 0), (0, 5, 0), (0, 0, 5), diagonal]), self.seed)
        assert not result.is_degenerate
        assert np.allclose(result.ellipsoid.semi_axes, 5.0)
        assert np.allclose(result.ellipsoid.centroid, self.seed)

    def test_fit_passes_through_all_contacts(self):
        offsets = np.array([(4.0, 0.0, 0.0), (0.0, 6.0, 0.0), (0.0, 0.0, 9.0), (-3.0, -3.0, -3.0)])
        result = fit_ellipsoid(_contacts(self.seed, offsets), self.seed)
        ellipsoid = result.ellipsoid

        form = ellipsoid.quadratic_form()
        assert np.allclose(np.einsum('ni,ij,nj->n', offsets, form, offsets), 1.0)

        a, b, c = ellipsoid.semi_axes
        assert a <= b <= c
        assert np.isclose(np.linalg.det(ellipsoid.orientation), 1.0)

    def test_fit_uses_boundary_midpoints(self):
        seed = np.zeros(3)
        positions = [(6.0, 0.0, 0.0), (0.0, 6.0, 0.0), (0.0, 0.0, 6.0), tuple(-np.ones(3) * 6.0 / math.sqrt(3.0))]
        contacts = [ContactPoint(p, tuple(-np.asarray(p) / 6.0)) for p in positions]
        assert np.allclose(boundary_offsets(contacts, seed), np.asarray(positions) * 5.5 / 6.0)

        result = fit_ellipsoid(contacts, seed)
        assert np.allclose(result.ellipsoid.semi_axes, 5.5)

    def test_coplanar_contacts(self):
        offsets = [(1, 0, 0), (0, 1, 0), (-1, 0, 0), (0.5, 0.5, 0)]
        result = fit_ellipsoid(_contacts(self.seed, offsets), self.seed)
        assert result.is_degenerate
        assert result.reason is DegenerateFitReason.NOT_AFFINELY_INDEPENDENT

    def test_repeated_contact(self):
        offsets = [(1, 0, 0), (1, 0, 0), (0, 1, 0), (0, 0, 1)]
        result = fit_ellipsoid(_contacts(self.seed, offsets), self.seed)
        assert result.reason is DegenerateFitReason.NOT_AFFINELY_INDEPENDENT

    def test_collinear_with_seed_is_ill_conditioned(self):
        offsets = [(1, 0, 0), (2, 0, 0), (0, 1, 0), (0, 0, 1)]
        result = fit_ellipsoid(_contacts(self.seed, offsets), self.seed)
        assert result.reason is DegenerateFitReason.ILL_CONDITIONED

    def test_indefinite_form(self):
        offsets = [(1, 0, 0), (0, 1, 0), (0, 0, 1), (0.1, 0.1, 0)]
        result = fit_ellipsoid(_contacts(self.seed, offsets), self.seed)
        assert result.reason is DegenerateFitReason.NOT_POSITIVE_DEFINITE
        assert result.ellipsoid is None

    def test_requires_four_contacts(self):
        with pytest.raises(InvalidArgumentError):
            fit_ellipsoid(_contacts(self.seed, [(1, 0, 0), (0, 1, 0), (0, 0, 1)]), self.seed)

    def test_batch_matches_single_fits(self):
        groups = np.array([
            [(5, 0, 0), (0, 5, 0), (0, 0, 5), (-3, -3, -3)],
            [(1, 0, 0), (0, 1, 0), (-1, 0, 0), (0.5, 0.5, 0)],
            [(4, 0, 0), (0, 6, 0), (0, 0, 9), (-3, -3, -3)],
        ], dtype=float)
        batch = fit_offsets(groups)
        assert list(batch.fitted) == [True, False, True]
        assert np.isnan(batch.axes[1]).all()
        for index in (0, 2):
            single = fit_ellipsoid(_contacts((0, 0, 0), groups[index]), (0, 0, 0))
            assert np.allclose(single.ellipsoid.semi_axes, batch.axes[index])


class TestFindEllipsoids:

    @pytest.mark.parametrize("radius", [10, 15])
    def test_sphere(self, sphere_factory, radius):
        size = 2 * radius + 12
        centre = size // 2 + 0.5
        grid = VoxelGrid(sphere_factory(size, radius))
        ellipsoids = find_ellipsoids_for_seed(
            grid, (centre, centre, centre), seeding_directions(30), generate_directions(30)
        )
        assert ellipsoids
        assert all(np.allclose(e.centroid, centre) for e in ellipsoids)

        largest = sort_by_volume(ellipsoids)[0]
        equivalent_radius = (3.0 * largest.volume / (4.0 * math.pi)) ** (1.0 / 3.0)
        assert equivalent_radius == pytest.approx(radius, rel=0.06)
        assert any(np.all(np.abs(e.semi_axes - radius) <= 0.06 * radius) for e in ellipsoids)
        assert all(e.max_semi_axis <= radius + 2.5 for e in ellipsoids)

    def test_cube_approximates_inscribed_sphere(self, full_volume):
        grid = VoxelGrid(full_volume)
        ellipsoids = find_ellipsoids_for_seed(
            grid, (10.5, 10.5, 10.5), seeding_directions(30), generate_directions(30)
        )
        expected = 4.0 / 3.0 * math.pi * 10.0 ** 3
        errors = [abs(e.volume - expected) / expected for e in ellipsoids]
        assert min(errors) < 0.2

    def test_background_seed_gives_nothing(self, sphere_volume):
        grid = VoxelGrid(sphere_volume)
        assert find_ellipsoids_for_seed(
            grid, (0.5, 0.5, 0.5), seeding_directions(30), generate_directions(30)
        ) == []

    def test_merged_list_is_sorted(self, small_sphere_volume):
        grid = VoxelGrid(small_sphere_volume)
        ellipsoids = find_ellipsoids(grid, [(10.5, 10.5, 10.5), (9.5, 10.5, 10.5)], n_directions=12)
        volumes = [e.volume for e in ellipsoids]
        assert volumes == sorted(volumes, reverse=True)


def test_sort_by_volume_is_stable():
    small = Ellipsoid((0, 0, 0), 1.0, 1.0, 1.0, np.eye(3))
    first = Ellipsoid((1, 0, 0), 1.0, 2.0, 3.0, np.eye(3))
    second = Ellipsoid((2, 0, 0), 3.0, 2.0, 1.0, np.eye(3))
    ordered = sort_by_volume([small, first, second])
    assert ordered == [first, second, small]
