# src/bandalgebra/exceptions.py

"""
This module defines the exception hierarchy shared by the raster and index subpackages.

Call-level failures (unknown index, unbound symbol, missing band, malformed
expression, mismatched grids) are raised immediately. Per-pixel division by
zero is never raised: it is filled with a sentinel value by the evaluator.
"""

from typing import Iterable, Optional

__all__ = [
    "BandAlgebraError",
    "RasterError",
    "RasterValidationError",
    "RasterIOError",
    "UnknownIndexError",
    "BindingError",
    "UnboundSymbolError",
    "MissingBandError",
    "EvaluationError",
    "ExpressionSyntaxError"
]

class BandAlgebraError(Exception):
    """Base class for every error raised by bandalgebra."""

class RasterError(BandAlgebraError):
    """Base class for raster structure and I/O errors."""

class RasterValidationError(RasterError):
    """Raised when raster data or metadata is structurally invalid."""

class RasterIOError(RasterError, IOError):
    """Raised when a raster cannot be read from or written to disk."""

class UnknownIndexError(BandAlgebraError, KeyError):
    """Raised when a spectral index name is not in the catalog."""

    def __init__(self, name: str, available: Iterable[str] = ()):
        self.name = name
        self.available = list(available)
        message = f"Index '{name}' is not registered."
        if self.available:
            message += f" Choose from: {', '.join(self.available)}"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError quotes its argument otherwise
        return self.args[0]

class BindingError(BandAlgebraError, KeyError):
    """Base class for band binding failures."""

    def __str__(self) -> str:
        return self.args[0]

class UnboundSymbolError(BindingError):
    """Raised when a formula symbol has no band binding."""

    def __init__(self, symbols: Iterable[str], formula: Optional[str] = None):
        self.symbols = sorted(symbols)
        message = f"No band binding for symbol(s): {', '.join(self.symbols)}"
        if formula:
            message += f" (formula: {formula})"
        super().__init__(message)

class MissingBandError(BindingError):
    """Raised when a bound band is absent from the input raster."""

    def __init__(self, band: str, available: Iterable[str] = (), symbol: Optional[str] = None):
        self.band = band
        self.symbol = symbol
        self.available = list(available)
        target = f"Band '{band}'"
        if symbol:
            target += f" (bound to '{symbol}')"
        super().__init__(f"{target} not found in raster. Available bands: {self.available}")

class EvaluationError(BandAlgebraError):
    """Raised when an expression cannot be evaluated over the given band values."""

class ExpressionSyntaxError(EvaluationError):
    """Raised when a formula string cannot be parsed."""

    def __init__(self, message: str, text: str, position: int):
        self.text = text
        self.position = position
        super().__init__(f"{message} at position {position} in '{text}'")
