import numpy as np
import pytest

from elevation_map import ElevationMap

RES = 0.1

def ridge_heights(rows=12, cols=12, ridge_col=6, slope=0.2, res=RES):
    """Two faces of +-slope meeting along `ridge_col` (V-shaped valley)."""
    col = np.arange(cols, dtype=np.float64)
    row_profile = slope * res * np.abs(col - ridge_col)
    return np.tile(row_profile, (rows, 1))

@pytest.fixture
def plateau_map():
    return ElevationMap(np.full((10, 10), 1.0), RES)

@pytest.fixture
def split_blocks_map():
    h = np.full((4, 9), 1.0)
    h[:, 5:] = 2.0
    h[:, 4] = np.nan
    return ElevationMap(h, RES)

@pytest.fixture
def ridge_map():
    return ElevationMap(ridge_heights(), RES)

@pytest.fixture
def stepped_map():
    rng = np.random.default_rng(7)
    steps = 0.1 * (np.arange(20) // 5).astype(np.float64)
    h = np.tile(steps, (20, 1)) + 0.002 * rng.standard_normal((20, 20))
    h[rng.random((20, 20)) < 0.05] = np.nan
    h[3:6, 12] = np.inf
    return ElevationMap(h, RES, origin=(1.0, -2.0))
