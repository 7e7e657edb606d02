import logging
from collections import namedtuple

import numpy
from tqdm import tqdm

from vdb_density.grid import Level
from vdb_density.errors import IndexOutOfRangeError, VolumeTooLargeError

_logger = logging.getLogger(__name__)

OUT_OF_RANGE_POLICIES = ("error", "skip")

RasterResult = namedtuple("RasterResult", ["density", "dims", "max_density", "written", "skipped"])


def dense_index(x, y, z, dims):
    """
    Flat index of cell (x, y, z) in a row-major volume with x varying fastest.

    Parameters:
    x, y, z (int): The cell coordinates.
    dims (Dimensions): The volume size.

    Returns:
    int: x + y * size_x + z * size_x * size_y
    """
    return x + y * dims.x + z * dims.x * dims.y


def in_bounds(coord, dims):
    return all(0 <= c < size for c, size in zip(coord, dims))


def rasterize(grid, dims, on_out_of_range="error", progress=True, logger=None):
    """
    Scatter the voxels of a grid into a dense, zero-filled volume.

    Only voxel level samples are written. If two samples share a coordinate the
    last one wins. Every coordinate is checked against `dims` before writing.

    Parameters:
    grid (Grid): The grid to rasterize. It is iterated from the start.
    dims (Dimensions): The volume size.
    on_out_of_range (str, optional): "error" to raise on the first voxel outside
        the volume, "skip" to drop such voxels with a warning. Default is "error".
    progress (bool, optional): Show a tqdm progress bar. Default is True.
    logger (logging.Logger, optional): Where to report diagnostics.

    Returns:
    RasterResult: The flat float64 volume, its dimensions, the largest value
        written (0.0 if none), and the numbers of written and skipped voxels.

    Raises:
    IndexOutOfRangeError: If a voxel lies outside the volume and `on_out_of_range` is "error".
    VolumeTooLargeError: If the volume cannot be allocated.
    """
    if on_out_of_range not in OUT_OF_RANGE_POLICIES:
        raise ValueError(f"on_out_of_range must be one of {OUT_OF_RANGE_POLICIES}, got {on_out_of_range!r}")
    logger = logger or _logger

    try:
        density = numpy.zeros(dims.cell_count, dtype=numpy.float64)
    except (MemoryError, ValueError, OverflowError) as e:
        raise VolumeTooLargeError(f"Cannot allocate a {dims.x}x{dims.y}x{dims.z} volume: {e}") from e
    max_density = None
    written = 0
    skipped = 0

    with tqdm(grid.iterate(), desc="Rasterizing", unit="voxel", disable=not progress) as samples:
        for coord, value, level in samples:
            if level != Level.VOXEL:
                continue
            if not in_bounds(coord, dims):
                if on_out_of_range == "error":
                    raise IndexOutOfRangeError(coord, dims)
                logger.warning(f"Skipping voxel at {coord}: outside the {dims.x}x{dims.y}x{dims.z} volume")
                skipped += 1
                continue
            value = float(value)
            density[dense_index(*coord, dims)] = value
            max_density = value if max_density is None else max(max_density, value)
            written += 1

    if max_density is None:
        max_density = 0.0
    return RasterResult(density, dims, max_density, written, skipped)
