# src/bandalgebra/index/catalog.py
"""
This module defines the SpectralIndex data structure and the fixed catalog of supported indices.

Each entry carries its formula, the default binding of its symbols to the
Sentinel-2 surface reflectance bands, nominal centre wavelengths (used when a
raster has no Sentinel-2 band names) and a display hint for map rendering.
The catalog is closed: entries are declared in _DEFINITIONS below.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
import logging
from typing import Dict, FrozenSet, Iterator, List, Optional, Tuple

from bandalgebra.exceptions import UnknownIndexError
from .bindings import BandBinding
from .expression import Expression, parse, symbols

log = logging.getLogger(__name__)

__all__ = [
    "DisplayHint",
    "SpectralIndex",
    "IndexCatalog",
    "CATALOG",
    "SENTINEL2_BANDS",
    "REFLECTANCE_SCALE",
    "lookup"
]

# Sentinel-2 L2A digital numbers are reflectance * 10000
REFLECTANCE_SCALE = 0.0001

# symbol -> (band, centre wavelength in nm)
SENTINEL2_BANDS: Dict[str, Tuple[str, float]] = {
    "BLUE": ("B2", 492.4),
    "GREEN": ("B3", 559.8),
    "RED": ("B4", 664.6),
    "RedEdge1": ("B5", 704.1),
    "NIR": ("B8", 832.8),
    "SWIR": ("B11", 1613.7),
    "SWIR1": ("B11", 1613.7),
    "SWIR2": ("B12", 2202.4),
}

VEGETATION_PALETTE = ("red", "yellow", "green")
WATER_PALETTE = ("white", "blue")
BUILT_UP_PALETTE = ("blue", "white", "red")
SOIL_PALETTE = ("white", "brown")

@dataclass(frozen=True)
class DisplayHint:
    """Recommended stretch and colour ramp handed to the visualization layer."""
    min: float
    max: float
    palette: Tuple[str, ...]

    def as_vis_params(self) -> Dict[str, object]:
        return {"min": self.min, "max": self.max, "palette": list(self.palette)}

@dataclass(frozen=True)
class SpectralIndex:
    """
    An immutable, named band-algebra formula.

    Attributes:
        name: Catalog name, e.g. 'NDVI'.
        long_name: Human readable name.
        expression: Formula over symbolic band names.
        bindings: Default symbol -> Sentinel-2 band binding (read-only).
        display: Rendering hint for the output.
        tree: Parsed expression tree.
        symbols: Symbols required by the formula.
    """
    name: str
    long_name: str
    expression: str
    bindings: Mapping[str, BandBinding] = field(compare=False)
    display: DisplayHint
    tree: Expression = field(init=False, repr=False, compare=False)
    symbols: FrozenSet[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "bindings", MappingProxyType(dict(self.bindings)))

        tree = parse(self.expression)
        object.__setattr__(self, "tree", tree)
        object.__setattr__(self, "symbols", symbols(tree))

        unbound = self.symbols - set(self.bindings)
        if unbound:
            raise ValueError(f"Index {self.name} has no default binding for {sorted(unbound)}")

    @property
    def band_name(self) -> str:
        """Name of the output band, e.g. 'ndvi'."""
        return self.name.lower()

    @property
    def wavelengths(self) -> Dict[str, float]:
        """Nominal centre wavelength (nm) of every symbol the formula needs."""
        return {sym: SENTINEL2_BANDS[sym][1] for sym in sorted(self.symbols)}

def _s2(*names: str, scaled: bool = False) -> Dict[str, BandBinding]:
    scale = REFLECTANCE_SCALE if scaled else None
    return {sym: BandBinding(SENTINEL2_BANDS[sym][0], scale) for sym in names}

_NDVI = "(NIR - RED) / (NIR + RED)"
_NDBI = "(SWIR1 - NIR) / (SWIR1 + NIR)"

_DEFINITIONS: List[SpectralIndex] = [
    SpectralIndex(
        "NDVI", "Normalized Difference Vegetation Index",
        _NDVI,
        _s2("NIR", "RED"),
        DisplayHint(-1.0, 1.0, VEGETATION_PALETTE)
    ),
    SpectralIndex(
        "NDVIre", "Red-Edge Normalized Difference Vegetation Index",
        "(RedEdge1 - RED) / (RedEdge1 + RED)",
        _s2("RedEdge1", "RED"),
        DisplayHint(-1.0, 1.0, VEGETATION_PALETTE)
    ),
    SpectralIndex(
        "EVI", "Enhanced Vegetation Index",
        "2.5 * (NIR - RED) / (NIR + 6 * RED - 7.5 * BLUE + 10000)",
        _s2("NIR", "RED", "BLUE"),
        DisplayHint(-1.0, 1.0, VEGETATION_PALETTE)
    ),
    SpectralIndex(
        "SAVI", "Soil Adjusted Vegetation Index",
        "1.5 * ((NIR - RED) / (NIR + RED + 0.5))",
        _s2("NIR", "RED", scaled=True),
        DisplayHint(-1.0, 1.0, VEGETATION_PALETTE)
    ),
    SpectralIndex(
        "NDWI", "Normalized Difference Water Index (NIR/SWIR)",
        "(NIR - SWIR) / (NIR + SWIR)",
        _s2("NIR", "SWIR"),
        DisplayHint(-1.0, 1.0, WATER_PALETTE)
    ),
    SpectralIndex(
        "MNDWI", "Modified Normalized Difference Water Index",
        "(GREEN - SWIR1) / (GREEN + SWIR1)",
        _s2("GREEN", "SWIR1"),
        DisplayHint(-1.0, 1.0, WATER_PALETTE)
    ),
    SpectralIndex(
        "AWEI_sh", "Automated Water Extraction Index (shadow)",
        "BLUE + 2.5 * GREEN - 1.5 * (NIR + SWIR1) - 0.25 * SWIR2",
        _s2("BLUE", "GREEN", "NIR", "SWIR1", "SWIR2"),
        DisplayHint(-5000.0, 5000.0, WATER_PALETTE)
    ),
    SpectralIndex(
        "NDBI", "Normalized Difference Built-up Index",
        _NDBI,
        _s2("SWIR1", "NIR"),
        DisplayHint(-1.0, 1.0, BUILT_UP_PALETTE)
    ),
    SpectralIndex(
        "BUI", "Built-up Index (NDBI - NDVI)",
        f"{_NDBI} - {_NDVI}",
        _s2("SWIR1", "NIR", "RED"),
        DisplayHint(-1.0, 1.0, BUILT_UP_PALETTE)
    ),
    SpectralIndex(
        "NDTI", "Normalized Difference Tillage Index",
        "(SWIR1 - SWIR2) / (SWIR1 + SWIR2)",
        _s2("SWIR1", "SWIR2"),
        DisplayHint(-1.0, 1.0, SOIL_PALETTE)
    ),
    # Kept as published in the source notebook: (NIR + BLUE) is added after the
    # division rather than normalizing it, so values track raw NIR + BLUE.
    SpectralIndex(
        "BSI", "Bare Soil Index",
        "(((SWIR1 + RED) - (NIR + BLUE)) / (SWIR1 + RED)) + (NIR + BLUE)",
        _s2("SWIR1", "RED", "NIR", "BLUE"),
        DisplayHint(0.0, 10000.0, SOIL_PALETTE)
    ),
]

class IndexCatalog(Mapping):
    """
    Read-only, case-insensitive table of spectral indices.

    Iteration yields the catalog names in declaration order.
    """

    def __init__(self, indices: Optional[List[SpectralIndex]] = None):
        indices = _DEFINITIONS if indices is None else indices
        self._indices: Dict[str, SpectralIndex] = {}
        for index in indices:
            key = index.name.lower()
            if key in self._indices:
                raise ValueError(f"Duplicate index name: {index.name}")
            self._indices[key] = index

    def lookup(self, name: str) -> SpectralIndex:
        """
        Return the index registered under 'name' (case-insensitive).

        Raises:
            UnknownIndexError: If the name is not registered.
        """
        try:
            return self._indices[name.lower()]
        except (KeyError, AttributeError):
            raise UnknownIndexError(str(name), available=self.names()) from None

    def names(self) -> List[str]:
        return [index.name for index in self._indices.values()]

    def __getitem__(self, name: str) -> SpectralIndex:
        return self.lookup(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._indices

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self._indices)

    def __repr__(self) -> str:
        return f"IndexCatalog({self.names()})"

CATALOG = IndexCatalog()

def lookup(name: str) -> SpectralIndex:
    """Module-level shortcut for CATALOG.lookup."""
    return CATALOG.lookup(name)
