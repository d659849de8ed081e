# src/bandalgebra/raster/utils.py

"""
This module provides shared utility functions for raster operations.

Functions include path resolution for ENVI files,
band selection and band name / wavelength extraction.
"""
import logging
import re
from pathlib import Path
from typing import Union, List, Optional, Dict

import rasterio

log = logging.getLogger(__name__)

__all__ = [
    "resolve_envi_path",
    "extract_band_indices",
    "extract_band_names",
    "extract_wavelength"
]

def resolve_envi_path(path: Union[str, Path]) -> Path:
    """
    Resolve ENVI header/binary file confusion.
    If 'image.hdr' is passed, redirects to 'image' (binary).
    """
    path = Path(path)
    if path.suffix.lower() == '.hdr':
        binary_path = path.with_suffix('')
        if binary_path.exists():
            log.debug(f"Redirecting {path.name} to binary file {binary_path.name}")
            return binary_path
    return path

def extract_band_indices(
    src: rasterio.DatasetReader,
    bands: Optional[Union[int, List[int]]]
) -> List[int]:
    """
    Normalize band selection to a list of 1-based indices.
    """
    if bands is None:
        return list(src.indexes)
    elif isinstance(bands, int):
        return [bands]
    return list(bands)

def extract_band_names(
    src: rasterio.DatasetReader,
    indices: List[int]
) -> Dict[str, int]:
    """
    Extract descriptions/names for specific bands.

    Returns a mapping of name to the 1-based position of the band in the
    selection, so it lines up with the array that was read. Bands without a
    description, or whose description repeats an earlier one, are named
    'Band_<file index>'.
    """
    band_names = {}
    for i, idx in enumerate(indices):
        desc = None
        if 0 <= (idx - 1) < len(src.descriptions):
            desc = src.descriptions[idx - 1]
        name = desc if desc and desc not in band_names else f"Band_{idx}"
        band_names[name] = i + 1
    return band_names

def extract_wavelength(band_name: str) -> float:
    """Parse a wavelength such as '842nm' or '842 nanometers' from a band label, -1.0 if absent."""
    match = re.search(r'(\d+(?:\.\d+)?)\s*(?:nm|nanometers?)', band_name, re.IGNORECASE)
    if match:
        return float(match.group(1))
    return -1.0
