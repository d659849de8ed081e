import argparse
import sys
import logging
from typing import List, Optional

from bandalgebra.exceptions import BandAlgebraError
from bandalgebra.index import CATALOG, BandBinding, generate_index
from bandalgebra.raster import read_info

log = logging.getLogger("bandalgebra.cli")

def setup_logging(level: int = logging.INFO) -> None:
    """
    Configures the standard logging format and level for the command-line interface.

    Args:
        level (int): The logging threshold level.
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

def _parse_binding(text: str):
    """argparse type for SYMBOL=BAND[*SCALE]."""
    symbol, sep, spec = text.partition("=")
    if not sep or not symbol.strip():
        raise argparse.ArgumentTypeError(f"Expected SYMBOL=BAND[*SCALE], got '{text}'")
    try:
        return symbol.strip(), BandBinding.parse(spec)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))

def list_indices() -> int:
    """Prints every catalog entry with its formula and display range."""
    for index in CATALOG.values():
        print(f"{index.name:<8} {index.long_name}")
        print(f"{'':<8} {index.expression}")
        print(f"{'':<8} bands: {', '.join(f'{s}={b}' for s, b in sorted(index.bindings.items()))}")
        print(f"{'':<8} display: [{index.display.min:g}, {index.display.max:g}] {'/'.join(index.display.palette)}")
    return 0

def show_info(path: str) -> int:
    """Prints the band names and wavelengths found in a raster file."""
    info = read_info(path)
    print(f"{path}: {info['width']}x{info['height']}, {info['count']} band(s), crs={info['crs']}, nodata={info['nodata']}")

    wavelengths = {i: wvl for wvl, i in info['wavelengths_nm'].items()}
    for name, i in info['band_names'].items():
        wvl = f" ({wavelengths[i]:g}nm)" if i in wavelengths else ""
        print(f"  {i}: {name}{wvl}")
    return 0

def compute(args: argparse.Namespace) -> int:
    """Runs generate_index with the parsed command-line options."""
    bindings = dict(args.bind) if args.bind else None

    output = generate_index(
        args.input,
        args.output,
        args.index,
        bindings=bindings,
        fill_value=args.fill_value,
        mode=args.mode,
        tile_size=args.tile_size
    )
    log.info(f"Wrote {output}")
    return 0

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bandalgebra",
        description="Compute spectral indices from multispectral rasters."
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enables debug logging."
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="Lists the registered spectral indices.")

    info_parser = subparsers.add_parser("info", help="Shows the bands and wavelengths of a raster.")
    info_parser.add_argument("path", help="Raster file to inspect.")

    compute_parser = subparsers.add_parser("compute", help="Computes an index into a single-band GeoTIFF.")
    compute_parser.add_argument("index", help="Index name, e.g. NDVI (case-insensitive).")
    compute_parser.add_argument("input", help="Multi-band input raster.")
    compute_parser.add_argument("output", help="Output GeoTIFF path.")
    compute_parser.add_argument(
        "--bind",
        action="append",
        type=_parse_binding,
        metavar="SYMBOL=BAND[*SCALE]",
        help="Overrides the default band of a formula symbol. Repeatable."
    )
    compute_parser.add_argument(
        "--fill-value",
        type=float,
        default=float("nan"),
        help="Value for nodata pixels and zero denominators. Defaults to NaN."
    )
    compute_parser.add_argument(
        "--mode",
        choices=["auto", "in_memory", "blocked", "tiled"],
        default="auto",
        help="Processing strategy. Defaults to auto."
    )
    compute_parser.add_argument(
        "--tile-size",
        type=int,
        default=512,
        help="Window size in pixels for tiled processing."
    )
    return parser

def main(argv: Optional[List[str]] = None) -> int:
    """
    Parses command-line arguments and routes execution to the matching subcommand.
    """
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)

    try:
        if args.command == "list":
            return list_indices()
        if args.command == "info":
            return show_info(args.path)
        return compute(args)
    except (BandAlgebraError, FileNotFoundError) as e:
        log.error(str(e))
        return 1

if __name__ == "__main__":
    sys.exit(main())
