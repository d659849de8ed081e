# src/bandalgebra/__init__.py
#
# Copyright (c) The bandalgebra project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
bandalgebra computes per-pixel spectral indices (NDVI, NDWI, NDBI, ...)
from co-registered multispectral rasters.

    >>> from bandalgebra import Raster, evaluate
    >>> ndvi = evaluate("NDVI", Raster.from_bands({"B4": red, "B8": nir}))
"""

__version__ = "0.1.0"

from . import raster, index

from .raster import (
    Raster,
    IndexRaster
)

from .index import (
    BandBinding,
    SpectralIndex,
    CATALOG,
    lookup,
    evaluate,
    evaluate_many,
    generate_index
)

from .exceptions import (
    BandAlgebraError,
    UnknownIndexError,
    UnboundSymbolError,
    MissingBandError,
    EvaluationError,
    ExpressionSyntaxError
)

__all__ = [
    "raster",
    "index",

    "Raster",
    "IndexRaster",

    "BandBinding",
    "SpectralIndex",
    "CATALOG",
    "lookup",
    "evaluate",
    "evaluate_many",
    "generate_index",

    "BandAlgebraError",
    "UnknownIndexError",
    "UnboundSymbolError",
    "MissingBandError",
    "EvaluationError",
    "ExpressionSyntaxError"
]
