# src/bandalgebra/raster/__init__.py
#
# Copyright (c) The bandalgebra project contributors
# This software is distributed under the Apache-2.0 license.
# See the NOTICE file for more information

"""
The raster subpackage provides the in-memory Raster structure and the
machinery to feed it from disk: I/O operations, resource analysis,
partitioning strategies and engine dispatching.
"""
# Core data structures
from .layer import (
    Raster,
    IndexRaster
)

# I/O operations
from .io import (
    load,
    save,
    write_window,
    read_info
)

# Resource management
from .resources import (
    ProcessingMode,
    BlockStructure,
    MemoryEstimate,
    StrategyReport,
    determine_strategy
)

# Partition operations
from .partition import (
    iter_tiles,
    iter_blocks,
    iter_windows,
    TileStitcher
)

# Engine operations
from .engine import (
    AggregationType,
    DispatchConfig,
    dispatch
)

# Shared utilities
from .utils import (
    resolve_envi_path,
    extract_band_names,
    extract_band_indices,
    extract_wavelength
)

__all__ = [
    # Layer
    "Raster",
    "IndexRaster",

    # I/O
    "load",
    "save",
    "write_window",
    "read_info",

    # Resources
    "ProcessingMode",
    "BlockStructure",
    "MemoryEstimate",
    "StrategyReport",
    "determine_strategy",

    # Partition
    "iter_tiles",
    "iter_blocks",
    "iter_windows",
    "TileStitcher",

    # Engine
    "AggregationType",
    "DispatchConfig",
    "dispatch",

    # Utils
    "resolve_envi_path",
    "extract_band_names",
    "extract_band_indices",
    "extract_wavelength"
]
