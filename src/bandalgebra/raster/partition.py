# src/bandalgebra/raster/partition.py

"""
This module splits rasters into windows for streaming evaluation and
stitches per-window results back into a single file.
"""

import logging
from pathlib import Path
from typing import Union, Optional, List, Dict, Any, Iterator, Tuple

import numpy as np
import rasterio
from rasterio.windows import Window
from rasterio.windows import transform as compute_window_transform

from bandalgebra.exceptions import RasterIOError
from .layer import Raster
from .utils import resolve_envi_path, extract_band_indices, extract_band_names

log = logging.getLogger(__name__)

__all__ = [
    "iter_tiles",
    "iter_blocks",
    "iter_windows",
    "TileStitcher"
]

def _grid_windows(width: int, height: int, tile_size: int) -> Iterator[Window]:
    if tile_size <= 0:
        raise ValueError(f"tile_size must be positive, got {tile_size}")

    for row_off in range(0, height, tile_size):
        for col_off in range(0, width, tile_size):
            yield Window(
                col_off=col_off,
                row_off=row_off,
                width=min(tile_size, width - col_off),
                height=min(tile_size, height - row_off)
            )

def _stream(
    path: Union[str, Path],
    bands: Optional[Union[int, List[int]]],
    tile_size: Optional[int]
) -> Iterator[Tuple[Window, Raster]]:
    path = resolve_envi_path(Path(path))
    if not path.exists():
        raise FileNotFoundError(f"Raster file not found: {path}")

    try:
        with rasterio.open(path) as src:
            indices = extract_band_indices(src, bands)
            band_names = extract_band_names(src, indices)

            if tile_size is None:
                windows = (window for _, window in src.block_windows(1))
            else:
                windows = _grid_windows(src.width, src.height, tile_size)

            log.info(f"Streaming windows from {path.name} ({src.width}x{src.height})")

            for window in windows:
                yield window, Raster(
                    data=src.read(indices, window=window),
                    transform=src.window_transform(window),
                    crs=src.crs,
                    nodata=src.nodata,
                    band_names=band_names
                )
    except rasterio.RasterioIOError as e:
        raise RasterIOError(f"Failed to stream windows from {path}: {e}") from e

def iter_tiles(
    path: Union[str, Path],
    tile_size: int = 512,
    bands: Optional[Union[int, List[int]]] = None
) -> Iterator[Tuple[Window, Raster]]:
    """
    Yields square (edge-clipped) tiles of a raster file without loading it whole.

    Args:
        path: Path to the raster file.
        tile_size: Tile edge length in pixels.
        bands: Optional band subset (1-based).

    Yields:
        (Window, Raster): The window in file coordinates and the tile data.
    """
    return _stream(path, bands, tile_size)

def iter_blocks(
    path: Union[str, Path],
    bands: Optional[Union[int, List[int]]] = None
) -> Iterator[Tuple[Window, Raster]]:
    """
    Yields tiles aligned with the file's internal blocks, which avoids
    decompressing the same block twice on tiled GeoTIFFs.
    """
    return _stream(path, bands, None)

def iter_windows(raster: Raster, tile_size: int = 512) -> Iterator[Tuple[Window, Raster]]:
    """
    Generates Raster tiles from an in-memory Raster by slicing.

    Yields:
        (Window, Raster): The window definition and an independent copy of that slice.
    """
    for window in _grid_windows(raster.width, raster.height, tile_size):
        row_slice, col_slice = window.toslices()
        yield window, Raster(
            data=raster.data[:, row_slice, col_slice].copy(),
            transform=compute_window_transform(window, raster.transform),
            crs=raster.crs,
            nodata=raster.nodata,
            band_names=raster.band_names
        )

class TileStitcher:
    """
    Context manager that writes per-window results into one output file.

    The output profile is derived from the template profile, with the band
    count, dtype and nodata taken from the first tile written. Usage:

        with TileStitcher(out_path, profile) as stitcher:
            for window, tile in results:
                stitcher.add_tile(window, tile)

    A failure inside the block removes the partially written file.
    """

    def __init__(self, output_path: Union[str, Path], profile: Dict[str, Any], tiled: bool = True):
        self.output_path = Path(output_path)
        self.profile = dict(profile)
        self.tiled = tiled
        self._dst = None
        self._band_names: Dict[str, int] = {}
        self.tiles_written = 0

    def __enter__(self) -> 'TileStitcher':
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        return self

    def _open(self, tile: Raster):
        profile = self.profile.copy()
        profile.update(
            driver='GTiff',
            count=tile.count,
            dtype=tile.data.dtype,
            nodata=tile.nodata
        )
        if self.tiled and profile['width'] >= 16 and profile['height'] >= 16:
            # GeoTIFF block sizes must be multiples of 16
            block = min(256, profile['width'], profile['height']) // 16 * 16
            profile.update(tiled=True, blockxsize=block, blockysize=block)
        else:
            profile.pop('tiled', None)
            profile.pop('blockxsize', None)
            profile.pop('blockysize', None)

        log.debug(f"Opening stitch target {self.output_path.name} ({profile['width']}x{profile['height']})")
        self._dst = rasterio.open(self.output_path, 'w', **profile)
        self._band_names = dict(tile.band_names)

    def add_tile(self, window: Window, tile: Raster):
        if self._dst is None:
            self._open(tile)
        self._dst.write(np.asarray(tile.data, dtype=self._dst.dtypes[0]), window=window)
        self.tiles_written += 1

    def __exit__(self, exc_type, exc, tb):
        created = self._dst is not None
        if created:
            for name, idx in self._band_names.items():
                self._dst.set_band_description(idx, name)
            self._dst.close()
            self._dst = None

        if exc_type is not None:
            if created:
                log.error(f"Stitching failed after {self.tiles_written} tiles, removing {self.output_path.name}")
                self.output_path.unlink(missing_ok=True)
            return False

        log.info(f"Stitched {self.tiles_written} tiles into {self.output_path.name}")
        return False
