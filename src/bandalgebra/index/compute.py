# src/bandalgebra/index/compute.py
"""
This module provides functionality to generate spectral indices from raster data.

evaluate() works on in-memory Rasters; generate_index() streams a raster file
through the dispatch engine and writes the index as a single-band GeoTIFF.
Both route every pixel through calculate_index_block, so tiled and in-memory
results are identical.
"""

import logging
from typing import Dict, Iterable, Mapping, Optional, Union, Any
from pathlib import Path

import numpy as np

from bandalgebra.exceptions import MissingBandError, UnboundSymbolError
from bandalgebra.raster.layer import Raster, IndexRaster
from bandalgebra.raster.engine import dispatch, DispatchConfig, AggregationType
from bandalgebra.raster.io import read_info
from .bindings import (
    BandBinding,
    BindingSpec,
    merge_bindings,
    resolve_bindings,
    bindings_from_wavelengths
)
from .catalog import CATALOG, DisplayHint, SpectralIndex
from .expression import Expression, parse, symbols, evaluate as evaluate_expression

log = logging.getLogger(__name__)

__all__ = [
    "calculate_index_block",
    "evaluate",
    "evaluate_many",
    "generate_index"
]

def _nodata_mask(raster: Raster, bands: Iterable[str]) -> Optional[np.ndarray]:
    """Pixels where any of the given bands holds the raster's nodata value."""
    if raster.nodata is None:
        return None

    mask = np.zeros((raster.height, raster.width), dtype=bool)
    for band in set(bands):
        arr = raster.data[raster.band_names[band] - 1]
        if np.isnan(raster.nodata):
            mask |= np.isnan(arr)
        else:
            mask |= (arr == raster.nodata)
    return mask

def calculate_index_block(
    raster: Raster,
    formula: Union[str, Expression],
    band_mapping: Mapping[str, BandBinding],
    fill_value: float = np.nan,
    band_name: str = "index",
    index_name: Optional[str] = None,
    display: Optional[DisplayHint] = None
) -> IndexRaster:
    """
    Evaluate a formula over one raster (or one tile of it).

    Args:
        raster: Input raster; its bands are looked up by name.
        formula: Formula string or parsed expression tree.
        band_mapping: symbol -> BandBinding for every symbol in the formula.
        fill_value: Output value for nodata pixels and zero denominators.
        band_name: Name of the output band.
        index_name: Catalog name recorded on the output (defaults to band_name).
        display: Optional rendering hint carried by the output.

    Returns:
        IndexRaster: A new single-band raster on the input grid.
    """
    tree = parse(formula) if isinstance(formula, str) else formula
    required = symbols(tree)

    values = resolve_bindings(required, band_mapping, raster)
    result = evaluate_expression(tree, values, fill_value=fill_value)
    result = np.broadcast_to(result, (raster.height, raster.width))

    mask = _nodata_mask(raster, (band_mapping[sym].band for sym in required))
    if mask is not None and mask.any():
        log.debug(f"Masking {int(mask.sum())} nodata pixel(s) for {band_name}")
        result = np.where(mask, fill_value, result)

    return IndexRaster(
        data=np.array(result, dtype=np.float64)[np.newaxis, :, :],
        index_name=index_name or band_name,
        band_name=band_name,
        display=display,
        transform=raster.transform,
        crs=raster.crs,
        nodata=fill_value
    )

def evaluate(
    index_name: str,
    raster: Raster,
    bindings: Optional[Mapping[str, BindingSpec]] = None,
    fill_value: float = np.nan
) -> IndexRaster:
    """
    Compute a catalog index over an in-memory raster.

    Args:
        index_name: Catalog name (case-insensitive), e.g. 'NDVI'.
        raster: Co-registered multi-band raster.
        bindings: Optional per-symbol overrides of the index's Sentinel-2 defaults,
                  as BandBinding objects or 'BAND' / 'BAND*SCALE' strings.
        fill_value: Output value for zero denominators and nodata pixels.

    Returns:
        IndexRaster: One band named after the index, e.g. 'ndvi'.

    Raises:
        UnknownIndexError: If the index is not registered.
        UnboundSymbolError: If a formula symbol has no binding.
        MissingBandError: If a bound band is absent from the raster.
        EvaluationError: If band grids are not uniform.
    """
    index = CATALOG.lookup(index_name)
    band_mapping = merge_bindings(index.bindings, bindings)

    return calculate_index_block(
        raster,
        index.tree,
        band_mapping,
        fill_value=fill_value,
        band_name=index.band_name,
        index_name=index.name,
        display=index.display
    )

def evaluate_many(
    index_names: Iterable[str],
    raster: Raster,
    bindings: Optional[Mapping[str, BindingSpec]] = None,
    fill_value: float = np.nan
) -> Dict[str, IndexRaster]:
    """
    Compute several indices over the same raster.

    Every name is validated before any evaluation runs. Bindings apply to
    every index that uses the overridden symbols.

    Returns:
        Dict[str, IndexRaster]: Results keyed by the requested names, in request order.
    """
    index_names = list(index_names)
    for name in index_names:
        CATALOG.lookup(name)

    return {
        name: evaluate(name, raster, bindings=bindings, fill_value=fill_value)
        for name in index_names
    }

def _file_bindings(
    index: SpectralIndex,
    info: Dict[str, Any],
    bindings: Optional[Mapping[str, BindingSpec]],
    max_tolerance: float
) -> Dict[str, BandBinding]:
    """Choose bindings for a file: explicit, Sentinel-2 names, then wavelength matching."""
    band_names = info['band_names']
    defaults = index.bindings

    if bindings:
        return merge_bindings(defaults, bindings)

    if all(defaults[sym].band in band_names for sym in index.symbols):
        return dict(defaults)

    log.warning(
        f"Sentinel-2 band names missing for {index.name}; "
        f"matching bands by wavelength (±{max_tolerance:g}nm)"
    )
    index_to_name = {i: name for name, i in band_names.items()}
    available = {wvl: index_to_name[i] for wvl, i in info['wavelengths_nm'].items()}
    scales = {sym: defaults[sym].scale for sym in index.symbols}

    return bindings_from_wavelengths(index.wavelengths, available, scales=scales, max_tolerance=max_tolerance)

def generate_index(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    index_name: str,
    bindings: Optional[Mapping[str, BindingSpec]] = None,
    fill_value: float = np.nan,
    mode: str = "auto",
    tile_size: int = 512,
    max_tolerance: float = 20.0
) -> Path:
    """
    Compute a catalog index from a raster file and write it as a GeoTIFF.

    Bands are bound by explicit bindings when given, otherwise by their
    Sentinel-2 names ('B4', 'B8', ...) from the band descriptions, otherwise by
    nearest centre wavelength from band metadata.

    Explicit bindings disable the wavelength fallback: symbols the caller
    leaves unbound keep their Sentinel-2 default, so on a file without
    Sentinel-2 band names every symbol must be bound explicitly or the call
    raises MissingBandError.

    Args:
        input_path: Multi-band raster file.
        output_path: Destination GeoTIFF.
        index_name: Catalog name, e.g. 'NDVI'.
        bindings: Optional per-symbol overrides.
        fill_value: Output value for zero denominators and nodata pixels.
        mode: 'auto', 'in_memory', 'blocked' or 'tiled'.
        tile_size: Window size in pixels for tiled processing.
        max_tolerance: Maximum wavelength distance (nm) for wavelength matching.

    Returns:
        Path: The written output file.
    """
    input_path = Path(input_path)
    output_path = Path(output_path)

    index = CATALOG.lookup(index_name)
    info = read_info(input_path)

    band_mapping = _file_bindings(index, info, bindings, max_tolerance)

    unbound = index.symbols - set(band_mapping)
    if unbound:
        raise UnboundSymbolError(unbound, formula=index.expression)

    read_bands = []
    for sym in sorted(index.symbols):
        band = band_mapping[sym].band
        if band not in info['band_names']:
            raise MissingBandError(band, available=info['band_names'].keys(), symbol=sym)
        read_bands.append(info['band_names'][band])

    log.info(f"Computing {index.name} from {input_path.name} → {output_path.name}")

    config = DispatchConfig(
        mode=mode,
        tile_size=tile_size,
        output_path=output_path,
        aggregation=AggregationType.STITCH,
        bands=sorted(set(read_bands))
    )

    dispatch(
        func=calculate_index_block,
        input_map={'raster': input_path},
        static_kwargs={
            'formula': index.tree,
            'band_mapping': band_mapping,
            'fill_value': fill_value,
            'band_name': index.band_name,
            'index_name': index.name,
            'display': index.display
        },
        config=config
    )

    return output_path
