# src/bandalgebra/index/__init__.py
#
# Copyright (c) The bandalgebra project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The index subpackage provides the spectral index engine: expression trees,
band bindings, the fixed index catalog and the compute entry points.
"""

# Expression trees
from .expression import (
    Expression,
    Literal,
    BandRef,
    Add,
    Sub,
    Mul,
    Div,
    parse,
    symbols,
    denominators,
    to_numexpr
)

# Band bindings
from .bindings import (
    BandBinding,
    coerce_bindings,
    merge_bindings,
    resolve_bindings,
    bindings_from_wavelengths
)

# Spectral index catalog
from .catalog import (
    DisplayHint,
    SpectralIndex,
    IndexCatalog,
    CATALOG,
    SENTINEL2_BANDS,
    REFLECTANCE_SCALE,
    lookup
)

# Compute functions
from .compute import (
    calculate_index_block,
    evaluate,
    evaluate_many,
    generate_index
)

__all__ = [
    # Expression trees
    "Expression",
    "Literal",
    "BandRef",
    "Add",
    "Sub",
    "Mul",
    "Div",
    "parse",
    "symbols",
    "denominators",
    "to_numexpr",

    # Bindings
    "BandBinding",
    "coerce_bindings",
    "merge_bindings",
    "resolve_bindings",
    "bindings_from_wavelengths",

    # Catalog
    "DisplayHint",
    "SpectralIndex",
    "IndexCatalog",
    "CATALOG",
    "SENTINEL2_BANDS",
    "REFLECTANCE_SCALE",
    "lookup",

    # Compute
    "calculate_index_block",
    "evaluate",
    "evaluate_many",
    "generate_index"
]
