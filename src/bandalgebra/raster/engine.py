# src/bandalgebra/raster/engine.py

"""
This module runs per-pixel block functions over raster inputs.

It serves as the core dispatch mechanism for file-based index computation:
small inputs are evaluated in one pass, large ones window by window.
"""

import logging
from pathlib import Path
from typing import Callable, Union, Optional, Any, Dict, Generator, Tuple, Sequence
from enum import Enum

import rasterio
from rasterio.windows import Window

from .layer import Raster
from .io import load, save
from .resources import ProcessingMode, determine_strategy
from .partition import iter_tiles, iter_blocks, iter_windows, TileStitcher

log = logging.getLogger(__name__)

__all__ = [
    "AggregationType",
    "DispatchConfig",
    "dispatch"
]

class AggregationType(Enum):
    """Strategies for combining results from chunked processing.

    Options:
        STITCH: Reassemble processed tiles into a single raster file.
        COLLECT: Return the list of (Window, result) pairs (no stitching).
    """
    STITCH = "stitch"
    COLLECT = "collect"

class DispatchConfig:
    """Configuration object for the execution engine.

    Args:
        mode: ProcessingMode to enforce ('in_memory', 'tiled', 'blocked', 'auto').
        tile_size: Size of windows for streaming (in pixels). Default=512.
        output_path: Optional path to save output raster (required for STITCH).
        aggregation: AggregationType for combining results. Default=STITCH.
        bands: 1-based indices of the bands the function reads, used for memory estimation.
    """
    def __init__(
        self,
        mode: Union[ProcessingMode, str] = "auto",
        tile_size: int = 512,
        output_path: Optional[Union[str, Path]] = None,
        aggregation: AggregationType = AggregationType.STITCH,
        bands: Optional[Sequence[int]] = None
    ):
        self.mode = mode.value if isinstance(mode, ProcessingMode) else mode
        self.tile_size = tile_size
        self.output_path = Path(output_path) if output_path else None
        self.aggregation = aggregation
        self.bands = list(bands) if bands is not None else None

    def __repr__(self) -> str:
        return (f"DispatchConfig(mode={self.mode!r}, tile_size={self.tile_size}, "
                f"output_path={self.output_path}, aggregation={self.aggregation.value})")

def _create_iterator(
    source: Union[str, Path, Raster],
    mode: ProcessingMode,
    config: DispatchConfig
) -> Generator[Tuple[Window, Raster], None, None]:
    if isinstance(source, Raster):
        return iter_windows(source, tile_size=config.tile_size)

    if mode == ProcessingMode.BLOCKED:
        return iter_blocks(source)
    return iter_tiles(source, tile_size=config.tile_size)

def _template_profile(source: Union[str, Path, Raster]) -> Dict[str, Any]:
    if isinstance(source, Raster):
        return source.profile
    with rasterio.open(source) as src:
        return src.profile.copy()

def _synchronize_inputs(
    input_map: Dict[str, Union[str, Path, Raster]],
    mode: ProcessingMode,
    config: DispatchConfig
) -> Generator[Tuple[Window, Dict[str, Raster]], None, None]:
    """
    Helper to synchronize iterators for multiple inputs.

    Yields:
        Tuple[Window, Dict[arg_name, TileRaster]]

    Raises:
        RuntimeError: If the inputs do not share one grid.
    """
    iterators = {name: _create_iterator(source, mode, config) for name, source in input_map.items()}
    primary_key = next(iter(input_map))

    for window, primary_tile in iterators[primary_key]:
        current_tiles = {primary_key: primary_tile}

        for name, it in iterators.items():
            if name == primary_key:
                continue

            try:
                other_window, other_tile = next(it)
            except StopIteration:
                raise RuntimeError(f"Input '{name}' ended prematurely during synchronization.")

            if other_window != window:
                raise RuntimeError(
                    f"Grid Mismatch! Input '{name}' is out of sync with '{primary_key}'.\n"
                    f"Expected Window: {window}\n"
                    f"Got Window:      {other_window}\n"
                    "Ensure all input rasters have identical dimensions/transforms."
                )
            current_tiles[name] = other_tile

        yield window, current_tiles

def dispatch(
    func: Callable[..., Raster],
    input_map: Dict[str, Union[str, Path, Raster]],
    static_kwargs: Optional[Dict[str, Any]] = None,
    config: Optional[DispatchConfig] = None
) -> Any:
    """
    Execute a block function over raster inputs using the optimal strategy.

    Args:
        func: Function returning a Raster. Receives the rasters as keyword arguments.
        input_map: Dictionary mapping argument names to raster sources.
                   {'raster': 'stack.tif'}
        static_kwargs: Keyword arguments passed through to func.
        config: Execution configuration (mode, tiling, aggregation).

    Returns:
        IN_MEMORY with Raster inputs: the Raster returned by func.
        STITCH: the output Path. COLLECT: a list of (Window, Raster) pairs.
    """
    if not input_map:
        raise ValueError("Cannot dispatch engine without at least one raster input.")

    static_kwargs = static_kwargs or {}
    config = config or DispatchConfig()

    primary_input = next(iter(input_map.values()))

    if isinstance(primary_input, Raster) and config.mode == "auto":
        mode = ProcessingMode.IN_MEMORY
        log.info(f"Engine dispatching {func.__name__} in IN_MEMORY mode (Object Input)")
    elif isinstance(primary_input, Raster):
        mode = ProcessingMode(config.mode)
        log.info(f"Engine dispatching {func.__name__} in {mode.value} mode (Object Input)")
    else:
        report = determine_strategy(Path(primary_input), user_mode=config.mode, bands=config.bands)
        mode = report.mode

        log.info(f"Engine dispatching {func.__name__} in {mode.value} mode")
        log.debug(f"Strategy Report: {report.reason}")

    if config.aggregation == AggregationType.STITCH and config.output_path is None:
        if not isinstance(primary_input, Raster) or mode != ProcessingMode.IN_MEMORY:
            raise ValueError("AggregationType.STITCH requires 'output_path' in config.")

    if mode == ProcessingMode.IN_MEMORY:
        loaded_inputs = {
            name: source if isinstance(source, Raster) else load(source)
            for name, source in input_map.items()
        }
        result = func(**{**static_kwargs, **loaded_inputs})

        if config.aggregation == AggregationType.COLLECT:
            return [(Window(0, 0, result.width, result.height), result)]
        if config.output_path is None:
            return result

        return save(result, config.output_path)

    def execution_stream():
        for window, tiles in _synchronize_inputs(input_map, mode, config):
            yield window, func(**{**static_kwargs, **tiles})

    if config.aggregation == AggregationType.COLLECT:
        return list(execution_stream())

    with TileStitcher(config.output_path, _template_profile(primary_input)) as stitcher:
        for window, result_tile in execution_stream():
            stitcher.add_tile(window, result_tile)

    return config.output_path
