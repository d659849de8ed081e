# src/bandalgebra/index/bindings.py

"""
This module binds formula symbols (RED, NIR, ...) to physical raster bands.

A binding names one band of the input raster and an optional scale factor
applied before evaluation, e.g. RED -> B4 * 0.0001 to convert Sentinel-2
digital numbers to surface reflectance.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Union

import numpy as np

from bandalgebra.exceptions import UnboundSymbolError, MissingBandError
from bandalgebra.raster.layer import Raster

log = logging.getLogger(__name__)

__all__ = [
    "BandBinding",
    "BindingSpec",
    "coerce_bindings",
    "merge_bindings",
    "resolve_bindings",
    "bindings_from_wavelengths"
]

_BINDING_RE = re.compile(r"^\s*([^*\s]+)\s*(?:\*\s*([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?))?\s*$")

@dataclass(frozen=True)
class BandBinding:
    """A raster band name plus an optional multiplicative pre-transform."""
    band: str
    scale: Optional[float] = None

    @classmethod
    def parse(cls, text: str) -> 'BandBinding':
        """Parse 'B4' or 'B4*0.0001'."""
        match = _BINDING_RE.match(text)
        if match is None:
            raise ValueError(f"Invalid band binding '{text}'. Expected BAND or BAND*SCALE.")
        band, scale = match.groups()
        return cls(band, float(scale) if scale is not None else None)

    def apply(self, values: np.ndarray) -> np.ndarray:
        values = np.asarray(values, dtype=np.float64)
        if self.scale is None:
            return values
        return values * self.scale

    def __str__(self) -> str:
        return self.band if self.scale is None else f"{self.band}*{self.scale!r}"

BindingSpec = Union[BandBinding, str]

def coerce_bindings(bindings: Optional[Mapping[str, BindingSpec]]) -> Dict[str, BandBinding]:
    """Accept plain band names or 'BAND*SCALE' strings alongside BandBinding objects."""
    coerced = {}
    for symbol, spec in (bindings or {}).items():
        if isinstance(spec, BandBinding):
            coerced[symbol] = spec
        elif isinstance(spec, str):
            coerced[symbol] = BandBinding.parse(spec)
        else:
            raise TypeError(f"Binding for '{symbol}' must be a BandBinding or str, got {type(spec).__name__}")
    return coerced

def merge_bindings(
    defaults: Mapping[str, BandBinding],
    overrides: Optional[Mapping[str, BindingSpec]] = None
) -> Dict[str, BandBinding]:
    """Overlay caller bindings on the index defaults, symbol by symbol."""
    merged = dict(defaults)
    merged.update(coerce_bindings(overrides))
    return merged

def resolve_bindings(
    required: Iterable[str],
    bindings: Mapping[str, BandBinding],
    raster: Raster
) -> Dict[str, np.ndarray]:
    """
    Look up and pre-transform the band values for every required symbol.

    Every symbol is checked for a binding before any band is read, so a call
    fails fast with the complete list of unbound symbols.

    Returns:
        Dict[str, np.ndarray]: symbol -> float64 (Height, Width) array.

    Raises:
        UnboundSymbolError: If a required symbol has no binding.
        MissingBandError: If a bound band is not present in the raster.
    """
    required = sorted(set(required))

    unbound = [sym for sym in required if sym not in bindings]
    if unbound:
        raise UnboundSymbolError(unbound)

    for sym in required:
        band = bindings[sym].band
        if not raster.has_band(band):
            raise MissingBandError(band, available=raster.band_names.keys(), symbol=sym)

    resolved = {}
    for sym in required:
        binding = bindings[sym]
        resolved[sym] = binding.apply(raster.data[raster.band_names[binding.band] - 1])
        log.debug(f"Bound {sym} -> {binding}")

    return resolved

def bindings_from_wavelengths(
    required: Mapping[str, float],
    available: Mapping[float, str],
    scales: Optional[Mapping[str, Optional[float]]] = None,
    max_tolerance: float = 20.0
) -> Dict[str, BandBinding]:
    """
    Bind symbols to the raster bands closest in centre wavelength.

    Args:
        required: symbol -> nominal wavelength (nm).
        available: wavelength (nm) -> raster band name.
        scales: Optional symbol -> scale factor carried into the bindings.
        max_tolerance: Maximum accepted distance in nm.

    Raises:
        MissingBandError: If no band lies within max_tolerance of a required wavelength.
    """
    if not available:
        raise MissingBandError("<any band with wavelength metadata>", symbol=None)

    available_wvl = np.array(list(available.keys()), dtype=np.float64)
    scales = scales or {}
    mapping = {}

    for sym, target_wvl in required.items():
        idx = int(np.argmin(np.abs(available_wvl - target_wvl)))
        matched_wvl = float(available_wvl[idx])

        if abs(matched_wvl - target_wvl) > max_tolerance:
            raise MissingBandError(
                f"{target_wvl:g}nm ±{max_tolerance:g}nm",
                available=[f"{w:g}nm" for w in available_wvl],
                symbol=sym
            )

        mapping[sym] = BandBinding(available[matched_wvl], scales.get(sym))
        log.debug(f"Wavelength match {sym}: {target_wvl:g}nm -> {matched_wvl:g}nm ({available[matched_wvl]})")

    return mapping
