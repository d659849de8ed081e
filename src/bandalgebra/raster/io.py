# src/bandalgebra/raster/io.py

"""
This module handles all disk-based operations for raster data.
"""

import logging
from pathlib import Path
from typing import Union, Optional, List, Dict, Any

import rasterio
from rasterio.errors import RasterioError
from rasterio.windows import Window

from bandalgebra.exceptions import RasterIOError
from .utils import resolve_envi_path, extract_band_indices, extract_band_names, extract_wavelength
from .layer import Raster

log = logging.getLogger(__name__)

__all__ = [
    "load",
    "save",
    "write_window",
    "read_info"
]

def load(
    path: Union[str, Path],
    bands: Optional[Union[int, List[int]]] = None,
    window: Optional[Window] = None,
    driver: Optional[str] = None
) -> Raster:
    """
    Load a raster from disk into memory.

    Reads a geospatial raster file and returns a Raster object with data
    loaded into RAM. Band descriptions become band names, so a Sentinel-2
    stack written with descriptions 'B2', 'B3', ... can be bound by name.

    Args:
        path: Path to raster file. All supported GDAL formats are accepted.
        bands: Specific band(s) to load (None=all, int=single, list=subset).
        window: Optional rasterio Window object to load only a spatial subset.
        driver: Optional GDAL driver name.

    Returns:
        Raster: In-memory Raster object
    """
    path = resolve_envi_path(Path(path))

    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")

    log.debug(f"Loading raster: {path.name}")

    try:
        with rasterio.open(path, driver=driver) as src:
            indices = extract_band_indices(src, bands)
            data = src.read(indices, window=window)
            band_names = extract_band_names(src, indices)

            if window is not None:
                transform = src.window_transform(window)
            else:
                transform = src.transform

            return Raster(
                data=data,
                transform=transform,
                crs=src.crs,
                nodata=src.nodata,
                band_names=band_names
            )

    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to read raster from {path}: {e}") from e

def save(
    raster: Raster,
    path: Union[str, Path],
    **profile_kwargs
) -> Path:
    """
    Write a Raster object to disk.
    Band names are stored as band descriptions.

    Args:
        raster: Raster object to save
        path: Output file path. All supported GDAL formats are accepted.
        **profile_kwargs: Override default rasterio profile settings.

    Returns:
        Path: The written file.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    profile = raster.profile.copy()
    profile.update(profile_kwargs)

    log.info(f"Saving raster {raster.shape} → {path}")

    try:
        with rasterio.open(path, 'w', **profile) as dst:
            dst.write(raster.data)

            for name, idx in raster.band_names.items():
                if 1 <= idx <= raster.count:
                    dst.set_band_description(idx, name)

    except (RasterioError, OSError, ValueError) as e:
        raise RasterIOError(f"Failed to save raster to {path}: {e}") from e

    return path

def write_window(
    raster: Raster,
    path: Union[str, Path],
    window: Window,
    indexes: Optional[List[int]] = None
):
    """
    Write raster data to a specific window in an existing file.

    Useful for tile stitching. Target file must exist and handle the same schema.

    Args:
        raster: Raster object containing data to write
        path: Path to EXISTING raster file.
        window: Window defining where to write.
        indexes: Optional list of band indices to write to.
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(
            f"Cannot write to window: target file does not exist: {path}\n"
            f"Tip: Create the file first using save(), then write tiles to it."
        )

    if indexes and len(indexes) != raster.count:
        raise ValueError(
            f"Indexes length ({len(indexes)}) must match "
            f"raster band count ({raster.count})"
        )

    log.debug(f"Writing window {window} → {path.name}")

    try:
        with rasterio.open(path, 'r+') as dst:
            if indexes:
                dst.write(raster.data, window=window, indexes=indexes)
            else:
                dst.write(raster.data, window=window)

    except (RasterioError, OSError) as e:
        raise RasterIOError(f"Failed to write window to {path}: {e}") from e

def read_info(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Inspects a raster file, extracting spatial metadata,
    band descriptions, and spectral wavelengths in a single pass.

    Wavelengths come from the WAVELENGTH / CENTRAL_WAVELENGTH band tags,
    falling back to labels such as '842nm' in the band description.
    """
    path = resolve_envi_path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    try:
        with rasterio.open(path) as src:
            band_names = {}
            wavelengths_nm = {}

            for i in src.indexes:
                desc = src.descriptions[i - 1]
                # Repeated descriptions fall back to the positional name
                name = desc if desc and desc not in band_names else f"Band_{i}"
                band_names[name] = i

                tags = src.tags(i)
                wvl = tags.get('WAVELENGTH') or tags.get('CENTRAL_WAVELENGTH')

                if wvl is None and desc:
                    wvl = extract_wavelength(desc)
                    if wvl < 0:
                        wvl = None

                if wvl is not None:
                    try:
                        wavelengths_nm[float(wvl)] = i
                    except ValueError:
                        log.debug(f"Ignoring unparsable wavelength tag '{wvl}' on band {i}")

            return {
                'crs': src.crs,
                'transform': src.transform,
                'bounds': src.bounds,
                'width': src.width,
                'height': src.height,
                'count': src.count,
                'driver': src.driver,
                'dtypes': src.dtypes,
                'nodata': src.nodata,
                'band_names': band_names,
                'wavelengths_nm': wavelengths_nm
            }
    except RasterioError as e:
        raise RasterIOError(f"Failed to read metadata from {path}: {e}") from e
