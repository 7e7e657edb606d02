import sys
import logging
import argparse
from colorama import Fore, Style

import vdb_density.io
from vdb_density.grid import VdbGridSource
from vdb_density.dimensions import scan_grid, resolve_dimensions
from vdb_density.raster import rasterize
from vdb_density.errors import ConversionError, GridNotFoundError, InputOpenError, OutputWriteError
from vdb_density.logging_config import setup_logging

_logger = logging.getLogger(__name__)

DEFAULT_GRID = "density_noise"
DEFAULT_OUTPUT = "out"

# Keys a --config JSON file may set, with the argparse destinations they feed
CONFIG_KEYS = ("grid", "output", "use_metadata", "skip_out_of_range", "export", "verbose", "log_file", "no_progress")


def describe_grids(source, logger=None):
    """
    Log every grid in a source along with its metadata.

    Returns:
    dict: Grid name to metadata dictionary.
    """
    logger = logger or _logger
    metadata = source.grid_metadata()
    for name in sorted(metadata):
        logger.info(f"Grid: {name}")
        for key, value in metadata[name].items():
            logger.info(f"  - {key}: {value!r}")
    return metadata


def convert(
    source,
    grid_name=DEFAULT_GRID,
    output_prefix=DEFAULT_OUTPUT,
    metadata_key=None,
    on_out_of_range="error",
    exports=(),
    progress=True,
    logger=None,
):
    """
    Convert one grid of a sparse source into a dense .density file.

    The grid is walked twice: once to find the voxel bounding box and count,
    once to fill the dense volume. Nothing is written unless both walks succeed.

    Parameters:
    source: A grid source with `list_available_grid_names`, `grid_metadata` and `load_grid`.
    grid_name (str, optional): The grid to convert. Default is "density_noise".
    output_prefix (str, optional): The volume is written to `<output_prefix>.density`. Default is "out".
    metadata_key (str, optional): Take the volume size from this Vec3i metadata entry
        instead of the voxel bounding box.
    on_out_of_range (str, optional): "error" or "skip", see `vdb_density.raster.rasterize`.
    exports (sequence of str, optional): Extra files to save the volume to, in any format
        `vdb_density.io.save_data` supports.
    progress (bool, optional): Show a progress bar while rasterizing.
    logger (logging.Logger, optional): Where to report progress and diagnostics.

    Returns:
    dict: A summary of the run.

    Raises:
    ConversionError: If the grid is missing, the size cannot be resolved, a voxel lies
        outside the volume, or the output cannot be written.
    """
    logger = logger or _logger

    supported = ", ".join(vdb_density.io.SAVE_EXTENSIONS)
    for export_filename in exports:
        if vdb_density.io.file_extension(export_filename) not in vdb_density.io.SAVE_EXTENSIONS:
            raise OutputWriteError(f"Cannot export to {export_filename}: unsupported extension, use one of {supported}")

    grid_names = source.list_available_grid_names()
    logger.info(f"Available grids: {sorted(grid_names)}")
    describe_grids(source, logger=logger)

    if grid_name not in grid_names:
        raise GridNotFoundError(grid_name, grid_names)
    grid = source.load_grid(grid_name)

    scan = scan_grid(grid, logger=logger)
    dims = resolve_dimensions(grid, scan.bbox, metadata_key=metadata_key, logger=logger)
    logger.info(f"AABB: {scan.bbox}")
    logger.info(f"Size: {dims.x}x{dims.y}x{dims.z}")
    logger.info(f"Filled density: {scan.voxel_count} / {dims.cell_count}")

    result = rasterize(grid, dims, on_out_of_range=on_out_of_range, progress=progress, logger=logger)
    logger.info(f"Max density: {result.max_density}")

    output_filename = f"{output_prefix}.density"
    logger.info(f"Saving density to {output_filename}")
    vdb_density.io.write_density(output_filename, result.density, dims)

    volume = result.density.reshape((dims.z, dims.y, dims.x))
    for export_filename in exports:
        logger.info(f"Exporting density to {export_filename}")
        try:
            vdb_density.io.save_data(volume, export_filename)
        except Exception as e:
            raise OutputWriteError(f"Cannot write {export_filename}: {e}") from e

    logger.info("Done")
    return {
        "grid": grid_name,
        "output": output_filename,
        "dimensions": tuple(dims),
        "voxels": scan.voxel_count,
        "ignored_samples": scan.skipped_count,
        "cells": dims.cell_count,
        "written": result.written,
        "out_of_range": result.skipped,
        "max_density": result.max_density,
    }


def convert_file(input_filename, **kwargs):
    """
    Open a .vdb file and convert one of its grids. Keyword arguments are passed to `convert`.
    """
    source = VdbGridSource(input_filename)
    return convert(source, **kwargs)


def print_report(summary):
    cells = summary["cells"]
    fill = 100.0 * summary["written"] / cells if cells else 0.0

    print("\n" + "=" * 40)
    print(f"{Style.BRIGHT}Density Conversion Report{Style.RESET_ALL}")
    print("=" * 40)
    print(f"  {'Grid':<20}: {summary['grid']}")
    print(f"  {'Output':<20}: {summary['output']}")
    print(f"  {'Dimensions':<20}: {'x'.join(str(d) for d in summary['dimensions'])}")
    print(f"  {'Voxels written':<20}: {summary['written']} / {cells} ({fill:.2f}%)")
    print(f"  {'Max density':<20}: {summary['max_density']:.6g}")

    warnings = []
    if summary["ignored_samples"]:
        warnings.append(f"- {summary['ignored_samples']} tile samples above voxel level were ignored")
    if summary["out_of_range"]:
        warnings.append(f"- {summary['out_of_range']} voxels outside the volume were skipped")
    if cells == 0:
        warnings.append("- The dense volume is empty")

    print("-" * 40)
    if warnings:
        print(f"{Fore.YELLOW}{Style.BRIGHT}Warnings:{Style.RESET_ALL}")
        for warning in warnings:
            print(f"  {Fore.YELLOW}{warning}{Style.RESET_ALL}")
    else:
        print(f"{Fore.GREEN}All voxels written.{Style.RESET_ALL}")
    print("=" * 40)


def build_parser():
    parser = argparse.ArgumentParser(description="Convert a grid of a VDB file into a dense .density volume.")
    parser.add_argument("--input", "-i", type=str, required=True, help="The path to the VDB file.")
    parser.add_argument("--grid", "-g", type=str, default=DEFAULT_GRID, help="The name of the grid to convert.")
    parser.add_argument(
        "--output", "-o", type=str, default=DEFAULT_OUTPUT, help="Output prefix, the volume is written to PREFIX.density."
    )
    parser.add_argument(
        "--use-metadata", "-u", type=str, default=None, help="Take the volume size from this Vec3i metadata key."
    )
    parser.add_argument(
        "--skip-out-of-range",
        action="store_true",
        help="Skip voxels outside the volume instead of stopping with an error.",
    )
    parser.add_argument(
        "--export",
        type=str,
        action="append",
        default=None,
        help="Also save the volume to this file (.npy, .npz, .raw, .tif, .nrrd or .h5). Can be repeated.",
    )
    parser.add_argument("--list", action="store_true", help="List the grids in the file with their metadata and exit.")
    parser.add_argument("--config", type=str, default=None, help="A JSON file providing defaults for these options.")
    parser.add_argument("--log-file", type=str, default=None, help="Also write the log to this file.")
    parser.add_argument("--no-progress", action="store_true", help="Hide the progress bar.")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log debug messages.")
    return parser


def parse_args(argv=None):
    """
    Parse the command line, using the values of an optional --config JSON file as defaults.
    """
    parser = build_parser()
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config", type=str, default=None)
    known, _ = pre_parser.parse_known_args(argv)

    if known.config is not None:
        config = vdb_density.io.load_json(known.config)
        unknown = sorted(set(config) - set(CONFIG_KEYS))
        if unknown:
            parser.error(f"Unknown keys in {known.config}: {', '.join(unknown)}")
        config_exports = config.pop("export", [])
        parser.set_defaults(**config)
    else:
        config_exports = []

    args = parser.parse_args(argv)
    # --export appends, so a list from the config is only used when the flag is absent
    if args.export is None:
        args.export = list(config_exports)
    return args


def convert_script(argv=None):
    """
    Command line entry point.

    Exits with status 0 on success and with the exit code of the error kind
    (see `vdb_density.errors`) when the conversion cannot be completed.
    """
    args = parse_args(argv)
    logger = setup_logging(log_file=args.log_file, debug=args.verbose)
    logger.info(f"Reading {args.input}")

    try:
        source = VdbGridSource(args.input)
        if args.list:
            describe_grids(source, logger=logger)
            return
        summary = convert(
            source,
            grid_name=args.grid,
            output_prefix=args.output,
            metadata_key=args.use_metadata,
            on_out_of_range="skip" if args.skip_out_of_range else "error",
            exports=args.export,
            progress=not args.no_progress,
            logger=logger,
        )
    except ConversionError as e:
        logger.error(str(e))
        sys.exit(e.exit_code)
    except ImportError as e:
        logger.error(str(e))
        sys.exit(InputOpenError.exit_code)

    print_report(summary)
