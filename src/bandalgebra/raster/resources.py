# src/bandalgebra/raster/resources.py

"""
This module performs static analysis on raster files and system hardware.

It checks two aspects before an index is computed from a file:
- Memory safety for loading the referenced bands plus the float64 working
  arrays into RAM (Memory Estimation)
- Internal block/tile structure of the raster (Block Structure Analysis)
"""

import logging
import psutil
from pathlib import Path
from typing import Union, Optional, Sequence, Tuple
from enum import Enum
from dataclasses import dataclass

import numpy as np
import rasterio
from rasterio.errors import RasterioError

from .utils import resolve_envi_path

log = logging.getLogger(__name__)

__all__ = [
    "ProcessingMode",
    "BlockStructure",
    "MemoryEstimate",
    "StrategyReport",
    "determine_strategy"
]

# Evaluation holds every input band as float64, one output array and
# numexpr temporaries, hence the generous multiplier.
DEFAULT_SAFETY_FACTOR = 3.0
MIN_FREE_GB = 1.0
WORKING_ITEMSIZE = np.dtype("float64").itemsize

class ProcessingMode(Enum):
    """
    Strategic recommendation for how to process a raster.

    Modes:
        IN_MEMORY: Load the whole raster into RAM. Fastest but requires sufficient memory.
        BLOCKED: Stream the raster's internal blocks. Best for natively tiled files.
        TILED: Stream square windows. Safe fallback for striped files.
    """
    IN_MEMORY = "in_memory"
    BLOCKED = "blocked"
    TILED = "tiled"

@dataclass(frozen=True)
class BlockStructure:
    """
    Analysis of a raster's internal storage layout.

    Args:
        is_tiled: True if raster has native tiles (not full-width strips)
        block_shape: Tuple of (block_height, block_width) in pixels
    """
    is_tiled: bool
    block_shape: Tuple[int, int]

    @property
    def is_striped(self) -> bool:
        return not self.is_tiled

@dataclass(frozen=True)
class MemoryEstimate:
    """
    Estimation of memory requirements and safety for evaluating a raster in RAM.

    Args:
        total_required_bytes: Bytes required for the referenced bands at float64 (with overhead)
        available_system_bytes: Currently available system memory in bytes
        is_safe: Boolean indicating if loading is considered safe
        reason: Explanation for the safety assessment
    """
    total_required_bytes: int
    available_system_bytes: int
    is_safe: bool
    reason: str

@dataclass(frozen=True)
class StrategyReport:
    """
    Contains the decision (mode) and the full context (reason, stats).
    """
    mode: ProcessingMode
    reason: str
    memory_stats: MemoryEstimate
    structure_stats: BlockStructure

def _analyze_structure(src: rasterio.DatasetReader) -> BlockStructure:
    """Helper that determines if the raster is physically tiled or striped."""
    if not src.block_shapes:
        return BlockStructure(False, (0, 0))

    block_h, block_w = src.block_shapes[0]

    # Full-width or single-row blocks are strips
    is_striped = (block_w == src.width) or (block_h == 1)

    return BlockStructure(is_tiled=not is_striped, block_shape=(block_h, block_w))

def _estimate_memory_safety(
    src: rasterio.DatasetReader,
    bands: Optional[Sequence[int]] = None,
    safety_factor: float = DEFAULT_SAFETY_FACTOR,
    min_free_gb: float = MIN_FREE_GB
) -> MemoryEstimate:
    """
    Helper that checks if the referenced bands fit in RAM as float64 working arrays.

    Args:
        src: Opened rasterio DatasetReader object.
        bands: 1-based indices of the bands that will be read (default all).
        safety_factor: Multiplier to account for temporaries (default 3.0)
        min_free_gb: Minimum free GB to leave available after loading (default 1.0)
    """
    indices = list(bands) if bands is not None else list(src.indexes)

    # Inputs are read at native dtype, then promoted to float64; one float64 output.
    native_bytes = sum(np.dtype(src.dtypes[i - 1]).itemsize for i in indices)
    bytes_per_pixel = native_bytes + (len(indices) + 1) * WORKING_ITEMSIZE

    raw_bytes = src.width * src.height * bytes_per_pixel
    total_required = int(raw_bytes * safety_factor)

    mem = psutil.virtual_memory()
    min_free_bytes = int(min_free_gb * (1024**3))
    is_safe = (total_required + min_free_bytes) <= mem.available

    reason = f"Req: {total_required/1e9:.2f}GB, Avail: {mem.available/1e9:.2f}GB"

    return MemoryEstimate(total_required, mem.available, is_safe, reason)

def determine_strategy(
    raster_path: Union[str, Path],
    user_mode: Union[ProcessingMode, str] = "auto",
    bands: Optional[Sequence[int]] = None
) -> StrategyReport:
    """
    Determines the optimal processing strategy for a raster based on memory and internal structure.

    Args:
        raster_path: Path to the raster file to analyze.
        user_mode: 'auto', 'in_memory', 'blocked' or 'tiled' (or a ProcessingMode).
            A forced 'blocked' mode falls back to 'tiled' when the file is striped.
        bands: 1-based indices of the bands the computation will read.

    Returns:
        StrategyReport: Contains the recommended mode and the context for that decision.

    Raises:
        ValueError: If user_mode is not a known mode.
    """
    if isinstance(user_mode, ProcessingMode):
        user_mode = user_mode.value

    if user_mode != "auto":
        try:
            forced = ProcessingMode(user_mode)
        except ValueError:
            valid_modes = [m.value for m in ProcessingMode] + ["auto"]
            raise ValueError(f"Invalid mode '{user_mode}'. Must be one of: {valid_modes}")

    path = resolve_envi_path(Path(raster_path))

    try:
        with rasterio.open(path) as src:
            estimate = _estimate_memory_safety(src, bands=bands)
            struct = _analyze_structure(src)
    except RasterioError as e:
        log.error(f"Failed to analyze resources for {path}: {e}")
        estimate = MemoryEstimate(0, 0, False, f"Read Error: {e}")
        struct = BlockStructure(False, (0, 0))

    if user_mode != "auto":
        mode = forced
        reason = f"User forced mode: {user_mode}"

        if mode == ProcessingMode.BLOCKED and not struct.is_tiled:
            mode = ProcessingMode.TILED
            reason = "Override: Forced TILED because file is STRIPED (User requested BLOCKED)"

        return StrategyReport(mode, reason, estimate, struct)

    if estimate.is_safe:
        return StrategyReport(ProcessingMode.IN_MEMORY, f"Safe for RAM. {estimate.reason}", estimate, struct)

    if struct.is_tiled:
        return StrategyReport(
            ProcessingMode.BLOCKED,
            "RAM full, but detected NATIVE TILES. Using BLOCKED mode.",
            estimate,
            struct
        )

    return StrategyReport(
        ProcessingMode.TILED,
        "RAM full and detected STRIPS. Using TILED mode.",
        estimate,
        struct
    )
