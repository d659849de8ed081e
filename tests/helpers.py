# tests/helpers.py

import numpy as np
from bandalgebra.raster import Raster

def assert_grid_match(r1: Raster, r2: Raster):
    """Strictly verify two rasters share the exact same grid."""
    assert r1.crs == r2.crs, \
        f"CRS mismatch: {r1.crs} != {r2.crs}"

    assert (r1.height, r1.width) == (r2.height, r2.width), \
        f"Grid mismatch: {(r1.height, r1.width)} != {(r2.height, r2.width)}"

    assert np.allclose(np.array(r1.transform), np.array(r2.transform), atol=1e-9), \
        "Transform mismatch (Pixel alignment error)"

def assert_same_pixels(a: np.ndarray, b: np.ndarray):
    """Bit-identical comparison that treats NaN as equal to NaN."""
    a = np.asarray(a)
    b = np.asarray(b)
    assert a.shape == b.shape, f"Shape mismatch: {a.shape} != {b.shape}"
    assert np.array_equal(np.isnan(a), np.isnan(b)), "NaN positions differ"
    valid = ~np.isnan(a)
    assert np.array_equal(a[valid], b[valid]), \
        f"Max pixel drift: {np.max(np.abs(a[valid] - b[valid]))}"
