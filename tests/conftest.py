# tests/conftest.py

import pytest
import numpy as np
import rasterio
from rasterio.transform import from_origin
from rasterio.crs import CRS

from bandalgebra.raster import Raster

S2_ORDER = ["B2", "B3", "B4", "B5", "B8", "B11", "B12"]

# Nominal Sentinel-2 centre wavelengths (nm), same order as S2_ORDER
S2_WAVELENGTHS = [492.4, 559.8, 664.6, 704.1, 832.8, 1613.7, 2202.4]

@pytest.fixture
def pixel_values():
    """Raw reflectance (x10000) of a single vegetated pixel."""
    return {
        "B2": 500,    # BLUE
        "B3": 800,    # GREEN
        "B4": 600,    # RED
        "B5": 1000,   # RedEdge1
        "B8": 3000,   # NIR
        "B11": 1200,  # SWIR1
        "B12": 900,   # SWIR2
    }

@pytest.fixture
def pixel_raster(pixel_values):
    """1x1 Raster holding the single reference pixel."""
    return Raster.from_bands({name: np.array([[value]]) for name, value in pixel_values.items()})

@pytest.fixture
def s2_data():
    """Deterministic 7-band uint16 stack (Bands, Height, Width) of 40x50 pixels."""
    rng = np.random.default_rng(42)
    data = rng.integers(1, 5000, size=(len(S2_ORDER), 40, 50), dtype=np.uint16)
    # A strip of fully dark pixels exercises zero denominators
    data[:, 0, :5] = 0
    return data

@pytest.fixture
def s2_raster(s2_data):
    return Raster(
        data=s2_data,
        transform=from_origin(500000, 4600000, 10, 10),
        crs=CRS.from_epsg(32633),
        band_names={name: i + 1 for i, name in enumerate(S2_ORDER)}
    )

@pytest.fixture
def mock_raster_factory(tmp_path):
    """
    Factory fixture: writes a GeoTIFF and returns its path.

    Bands get the given descriptions (None leaves them unnamed) and optional
    WAVELENGTH tags.
    """
    def _create(
        name,
        data,
        descriptions=None,
        wavelengths=None,
        nodata=None,
        crs="EPSG:32633",
        tiled=False
    ):
        path = tmp_path / name
        count, height, width = data.shape
        profile = {
            'driver': 'GTiff',
            'height': height,
            'width': width,
            'count': count,
            'dtype': data.dtype,
            'crs': crs,
            'transform': from_origin(500000, 4600000, 10, 10),
            'nodata': nodata
        }
        if tiled:
            profile.update(tiled=True, blockxsize=16, blockysize=16)

        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(data)
            for i in range(count):
                if descriptions and descriptions[i]:
                    dst.set_band_description(i + 1, descriptions[i])
                if wavelengths:
                    dst.update_tags(i + 1, WAVELENGTH=str(wavelengths[i]))
        return path

    return _create

@pytest.fixture
def s2_geotiff(mock_raster_factory, s2_data):
    """Sentinel-2 stack on disk with band descriptions B2..B12."""
    return mock_raster_factory("s2_stack.tif", s2_data, descriptions=S2_ORDER)
