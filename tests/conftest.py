"""Global pytest configuration and synthetic volumes for ellipsoidfactor tests."""
import numpy as np
import pytest


def make_sphere(size: int, radius: float, centre: int = None) -> np.ndarray:
    """uint8 (Z, Y, X) cube of side size holding a digital sphere around voxel centre."""
    centre = size // 2 if centre is None else centre
    z, y, x = np.indices((size, size, size))
    return (((x - centre) ** 2 + (y - centre) ** 2 + (z - centre) ** 2) <= radius ** 2).astype(np.uint8)


def make_box(size: int, low: int, high: int) -> np.ndarray:
    """uint8 cube of side size with foreground on [low, high) along every axis."""
    volume = np.zeros((size, size, size), dtype=np.uint8)
    volume[low:high, low:high, low:high] = 1
    return volume


@pytest.fixture
def sphere_factory():
    return make_sphere


@pytest.fixture
def box_factory():
    return make_box


@pytest.fixture
def full_volume():
    """All-foreground 20³ volume."""
    return np.ones((20, 20, 20), dtype=np.uint8)


@pytest.fixture
def sphere_volume():
    """Sphere of radius 10 centred on voxel 16 of a 32³ volume."""
    return make_sphere(32, 10)


@pytest.fixture
def small_sphere_volume():
    """Sphere of radius 6 centred on voxel 10 of a 20³ volume."""
    return make_sphere(20, 6)
