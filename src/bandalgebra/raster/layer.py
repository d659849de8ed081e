# src/bandalgebra/raster/layer.py

import logging
from typing import Union, Optional, Dict, Any, Tuple, Mapping

import copy
import numpy as np
import rasterio
from rasterio.transform import Affine
from rasterio.crs import CRS

from bandalgebra.exceptions import RasterValidationError, MissingBandError, EvaluationError

log = logging.getLogger(__name__)

__all__ = ["Raster", "IndexRaster"]

class Raster:
    """
    The fundamental unit of the bandalgebra pipeline.

    A Raster is an in-memory "Envelope" that synchronizes:
    1. The 'Heavy' Data: A NumPy array of co-registered band pixels.
    2. The 'Light' Context: Geospatial metadata (CRS, Transform, band names).

    Rasters are treated as immutable inputs: the pixel array is exposed
    read-only and every operation in the index engine allocates a new Raster.

    Attributes:
        data (np.ndarray): The pixel array in (Bands, Height, Width) format.
        transform (Affine): The affine transform matrix.
        crs (CRS | None): The Coordinate Reference System.
        nodata (float | int | None): The value representing missing data.
        band_names (Dict[str, int]): Mapping of band names to 1-based band indices.
    """

    def __init__(
        self,
        data: np.ndarray,
        transform: Optional[Affine] = None,
        crs: Optional[CRS] = None,
        nodata: Optional[Union[float, int]] = None,
        band_names: Optional[Mapping[str, int]] = None
    ):
        """
        Initialize a Raster object.

        Args:
            data: Input array. Must be 2D (Height, Width) or 3D (Bands, Height, Width).
                  2D arrays are automatically promoted to 3D (1, Height, Width).
            transform: Geospatial transform (maps pixels to coordinates). Defaults to identity.
            crs: Coordinate Reference System.
            nodata: Value indicating no data.
            band_names: Optional mapping of names to band indices ('B4': 3).

        Raises:
            RasterValidationError: If dimensions mismatch or types are incorrect.
        """
        transform = Affine.identity() if transform is None else transform
        band_names = dict(band_names or {})
        self.validate_inputs(data, transform, band_names)

        # Enforce 3D structure (Bands, Height, Width)
        if data.ndim == 2:
            data = data[np.newaxis, :, :]

        view = data.view()
        view.flags.writeable = False

        self._data = view
        self.transform = transform
        self.crs = crs
        self.nodata = nodata
        self.band_names = band_names

    @staticmethod
    def validate_inputs(data: np.ndarray, transform: Affine, band_names: Dict[str, int]):
        """Internal validation logic."""
        if not isinstance(data, np.ndarray):
            raise RasterValidationError(f"Data must be numpy.ndarray, got {type(data)}")

        if data.ndim not in (2, 3):
            raise RasterValidationError(f"Data must be 2D or 3D, got shape {data.shape}")

        if not isinstance(transform, Affine):
            raise RasterValidationError(f"Transform must be rasterio.Affine, got {type(transform)}")

        count = 1 if data.ndim == 2 else data.shape[0]
        for name, idx in band_names.items():
            if not isinstance(idx, (int, np.integer)) or not (1 <= idx <= count):
                raise RasterValidationError(
                    f"Band '{name}' points to index {idx}, outside 1-{count}"
                )

        if len(set(band_names.values())) != len(band_names):
            raise RasterValidationError(f"Band names map several names to one band: {band_names}")

    @classmethod
    def from_bands(
        cls,
        bands: Mapping[str, Any],
        transform: Optional[Affine] = None,
        crs: Optional[CRS] = None,
        nodata: Optional[Union[float, int]] = None
    ) -> 'Raster':
        """
        Stack named 2D arrays into a single multi-band Raster.

        Band order follows the mapping order. Scalars and 1x1 inputs are accepted,
        which makes single-pixel rasters easy to build.

        Raises:
            RasterValidationError: If no bands are given.
            EvaluationError: If the arrays do not share one grid shape.
        """
        if not bands:
            raise RasterValidationError("Cannot build a Raster from an empty band mapping.")

        arrays = {}
        for name, values in bands.items():
            arr = np.asarray(values)
            if arr.ndim == 0:
                arr = arr.reshape(1, 1)
            if arr.ndim != 2:
                raise RasterValidationError(f"Band '{name}' must be 2D, got shape {arr.shape}")
            arrays[name] = arr

        shapes = {name: arr.shape for name, arr in arrays.items()}
        if len(set(shapes.values())) > 1:
            raise EvaluationError(f"Bands are not co-registered, grid shapes differ: {shapes}")

        data = np.stack(list(arrays.values()))
        band_names = {name: i + 1 for i, name in enumerate(arrays)}

        return cls(data=data, transform=transform, crs=crs, nodata=nodata, band_names=band_names)

    # Dynamic metadata properties

    @property
    def data(self) -> np.ndarray:
        """Access the raw (read-only) pixel data."""
        return self._data

    @property
    def width(self) -> int:
        return self._data.shape[2]

    @property
    def height(self) -> int:
        return self._data.shape[1]

    @property
    def count(self) -> int:
        return self._data.shape[0]

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Returns (Bands, Height, Width)."""
        return self._data.shape

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """Returns (left, bottom, right, top) in CRS units."""
        return rasterio.transform.array_bounds(self.height, self.width, self.transform)

    @property
    def profile(self) -> Dict[str, Any]:
        """
        Generates a Rasterio-compliant profile based on current state.
        Properties like compression and tiling can be overridden when saving.
        """
        return {
            'driver': 'GTiff',
            'dtype': self._data.dtype,
            'nodata': self.nodata,
            'width': self.width,
            'height': self.height,
            'count': self.count,
            'crs': self.crs,
            'transform': self.transform,
            'compress': 'lzw'
        }

    def has_band(self, name: str) -> bool:
        return name in self.band_names

    def get_band(self, identifier: Union[int, str]) -> np.ndarray:
        """
        Retrieve a copy of a specific band by 1-based index or name.

        Returns:
            np.ndarray: 2D array of the band.

        Raises:
            MissingBandError: If the band name is unknown.
            IndexError: If the band index is out of range.
        """
        if isinstance(identifier, str):
            if identifier not in self.band_names:
                raise MissingBandError(identifier, available=self.band_names.keys())
            idx = self.band_names[identifier]
        else:
            idx = identifier

        if not (1 <= idx <= self.count):
            raise IndexError(f"Band index {idx} out of range (1-{self.count})")

        return self._data[idx - 1].copy()

    def copy(self) -> 'Raster':
        """Returns a deep copy of the Raster."""
        return Raster(
            data=self._data.copy(),
            transform=copy.deepcopy(self.transform),
            crs=copy.deepcopy(self.crs),
            nodata=self.nodata,
            band_names=self.band_names.copy()
        )

    def __repr__(self) -> str:
        return (f"<{type(self).__name__} shape={self.shape} dtype={self._data.dtype} "
                f"bands={list(self.band_names)} crs={self.crs}>")

    def __eq__(self, other: object) -> bool:
        """Checks equality based on metadata and pixel data."""
        if not isinstance(other, Raster):
            return NotImplemented

        meta_eq = (
            self.transform == other.transform and
            self.crs == other.crs and
            self.shape == other.shape and
            self.band_names == other.band_names and
            _same_nodata(self.nodata, other.nodata)
        )
        if not meta_eq:
            return False

        return np.array_equal(self._data, other.data, equal_nan=True)

    def __array__(self, dtype=None, copy=None) -> np.ndarray:
        """Allows np.array(raster_obj) to work directly."""
        return self._data if dtype is None else self._data.astype(dtype)

class IndexRaster(Raster):
    """
    Single-band output of a spectral index evaluation.

    Shares the grid, transform and CRS of the source Raster. The only band is named
    after the index (e.g. 'ndvi'), and the display hint recommended by the catalog
    travels with the data for the visualization layer.
    """

    def __init__(
        self,
        data: np.ndarray,
        index_name: str,
        band_name: str,
        display: Any = None,
        transform: Optional[Affine] = None,
        crs: Optional[CRS] = None,
        nodata: Optional[Union[float, int]] = None
    ):
        if data.ndim == 3 and data.shape[0] != 1:
            raise RasterValidationError(f"IndexRaster holds one band, got {data.shape[0]}")

        super().__init__(data=data, transform=transform, crs=crs, nodata=nodata, band_names={band_name: 1})
        self.index_name = index_name
        self.band_name = band_name
        self.display = display

    @property
    def values(self) -> np.ndarray:
        """The 2D (Height, Width) index values."""
        return self._data[0]

    def vis_params(self) -> Dict[str, Any]:
        """Returns the {'min', 'max', 'palette'} rendering hint, empty when none is set."""
        if self.display is None:
            return {}
        return self.display.as_vis_params()

def _same_nodata(a: Optional[float], b: Optional[float]) -> bool:
    if a is None or b is None:
        return a is b
    if np.isnan(a) and np.isnan(b):
        return True
    return a == b
