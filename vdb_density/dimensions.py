import math
import logging
from collections import namedtuple

from vdb_density.bbox import AABB
from vdb_density.grid import Level
from vdb_density.errors import MetadataKeyNotFoundError, MetadataWrongTypeError, VolumeTooLargeError

_logger = logging.getLogger(__name__)

# Sizes are stored as int32 in the .density header
INT32_MAX = 2**31 - 1


class Dimensions(namedtuple("Dimensions", ["x", "y", "z"])):
    """Shape of the dense output volume, in voxels along x, y and z."""

    __slots__ = ()

    @property
    def cell_count(self):
        return self.x * self.y * self.z


def check_size(dims):
    """Raise VolumeTooLargeError if a size does not fit the int32 header."""
    if any(size > INT32_MAX for size in dims):
        raise VolumeTooLargeError(f"Dimensions {tuple(dims)} do not fit in int32")
    return dims


ScanResult = namedtuple("ScanResult", ["bbox", "voxel_count", "skipped_count"])


def scan_grid(grid, logger=None):
    """
    First pass over a grid: accumulate the bounding box of its voxels.

    Samples from coarser tree levels do not map to a single dense cell. They
    are left out of the box and the count, and a warning is logged for each.

    Parameters:
    grid (Grid): The grid to scan.
    logger (logging.Logger, optional): Where to report skipped samples.

    Returns:
    ScanResult: The bounding box, the number of voxels and the number of skipped samples.
    """
    logger = logger or _logger
    bbox = AABB()
    voxel_count = 0
    skipped_count = 0
    for coord, _, level in grid.iterate():
        if level == Level.VOXEL:
            bbox.extend(coord)
            voxel_count += 1
        else:
            logger.warning(f"Ignoring {level.value} sample at {coord}: only voxel level values are rasterized")
            skipped_count += 1
    return ScanResult(bbox, voxel_count, skipped_count)


def dimensions_from_bbox(bbox, logger=None):
    """
    Size a volume so that it reaches from the origin to the far corner of `bbox`.

    An empty box gives a (0, 0, 0) volume. Axes whose maximum is negative get size 0.
    """
    logger = logger or _logger
    if bbox.is_empty:
        logger.warning("No voxels found in grid, dense volume will be empty")
        return Dimensions(0, 0, 0)
    return check_size(Dimensions(*(max(0, math.floor(m) + 1) for m in bbox.max)))


def dimensions_from_metadata(grid, key):
    """
    Read the volume size from a Vec3i entry in the grid's metadata.

    Raises:
    MetadataKeyNotFoundError: If `key` is not in the grid's metadata.
    MetadataWrongTypeError: If the entry is not a 3-integer vector or has a negative component.
    VolumeTooLargeError: If a component does not fit in int32.
    """
    entry = grid.metadata_lookup(key)
    if entry is None:
        raise MetadataKeyNotFoundError(key)
    if entry.kind != "vec3i":
        raise MetadataWrongTypeError(key, entry.kind)
    if any(v < 0 for v in entry.value):
        raise MetadataWrongTypeError(key, f"vec3i with negative component {entry.value}")
    return check_size(Dimensions(*entry.value))


def resolve_dimensions(grid, bbox, metadata_key=None, logger=None):
    """
    Choose the dense volume size for a grid.

    When `metadata_key` is given the size recorded in the grid's metadata is
    used, which may be larger than the voxels when the tree was cropped.
    Otherwise the size is derived from the bounding box.
    """
    if metadata_key is not None:
        return dimensions_from_metadata(grid, metadata_key)
    return dimensions_from_bbox(bbox, logger=logger)
