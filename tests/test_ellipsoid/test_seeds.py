"""Tests for ridge-based seed extraction."""
import numpy as np
import pytest

from ellipsoidfactor.core.exceptions import InvalidArgumentError
from ellipsoidfactor.processing.backends.ellipsoid.seeds import (
    compute_ridge_field, extract_seed_points, seed_point_mask
)


class TestExtractSeedPoints:

    def setup_method(self):
        self.volume = np.ones((3, 3, 3), dtype=np.uint8)
        self.ridge = np.zeros((3, 3, 3), dtype=np.float32)
        # (Z, Y, X) indices
        self.ridge[1, 0, 0] = 1.0
        self.ridge[0, 1, 0] = 1.0
        self.ridge[0, 0, 2] = 1.0
        self.ridge[2, 2, 2] = 0.5

    def test_raster_order_x_fastest(self):
        seeds = extract_seed_points(self.volume, self.ridge)
        assert seeds == [(2.5, 0.5, 0.5), (0.5, 1.5, 0.5), (0.5, 0.5, 1.5)]

    def test_fraction_lowers_threshold(self):
        seeds = extract_seed_points(self.volume, self.ridge, fraction=0.4)
        assert len(seeds) == 4
        assert seeds[-1] == (2.5, 2.5, 2.5)

    def test_background_ridge_is_ignored(self):
        volume = self.volume.copy()
        volume[1, 0, 0] = 0
        seeds = extract_seed_points(volume, self.ridge)
        assert (0.5, 0.5, 1.5) not in seeds
        assert len(seeds) == 2

    def test_zero_ridge_gives_no_seeds(self):
        assert extract_seed_points(self.volume, np.zeros_like(self.ridge)) == []

    def test_full_fraction_keeps_nothing(self):
        assert extract_seed_points(self.volume, self.ridge, fraction=1.0) == []

    @pytest.mark.parametrize("fraction", [0.0, -0.2, 1.5])
    def test_invalid_fraction(self, fraction):
        with pytest.raises(InvalidArgumentError):
            extract_seed_points(self.volume, self.ridge, fraction=fraction)

    def test_shape_mismatch(self):
        with pytest.raises(InvalidArgumentError):
            extract_seed_points(self.volume, np.zeros((3, 3, 4)))

    def test_seed_point_mask(self):
        mask = seed_point_mask(self.volume, self.ridge)
        assert mask.dtype == np.uint8
        assert set(np.unique(mask)) <= {0, 255}
        assert np.count_nonzero(mask) == 3
        assert mask[0, 0, 2] == 255


class TestRidgeField:

    def test_sphere_ridge(self, small_sphere_volume):
        ridge = compute_ridge_field(small_sphere_volume)
        assert ridge.shape == small_sphere_volume.shape
        assert ridge.max() > 0

        seeds = extract_seed_points(small_sphere_volume, ridge)
        assert seeds
        for x, y, z in seeds:
            assert small_sphere_volume[int(z), int(y), int(x)]

    def test_empty_volume(self):
        volume = np.zeros((8, 8, 8), dtype=np.uint8)
        ridge = compute_ridge_field(volume)
        assert not ridge.any()
        assert extract_seed_points(volume, ridge) == []

    def test_invalid_radius(self, small_sphere_volume):
        with pytest.raises(InvalidArgumentError):
            compute_ridge_field(small_sphere_volume, radius=0)
