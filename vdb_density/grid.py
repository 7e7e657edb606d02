import enum
import os
import logging
from collections import namedtuple

from vdb_density.errors import InputOpenError, GridDecodeError, GridNotFoundError

_logger = logging.getLogger(__name__)


class Level(enum.Enum):
    """Tier of the VDB tree a stored value comes from."""

    VOXEL = "voxel"
    INTERNAL_NODE = "internal_node"
    ROOT_NODE = "root_node"


VoxelSample = namedtuple("VoxelSample", ["coord", "value", "level"])


class MetadataValue(namedtuple("MetadataValue", ["kind", "value"])):
    """
    A grid metadata entry tagged with the variant it holds.

    The openvdb bindings hand metadata back as plain Python values, so the
    variant is recovered from the Python type: `vec3i`, `vec3d`, `int`,
    `float`, `bool`, `string` or `unsupported`.
    """

    __slots__ = ()

    @classmethod
    def from_python(cls, value):
        if isinstance(value, bool):
            return cls("bool", value)
        if isinstance(value, int):
            return cls("int", value)
        if isinstance(value, float):
            return cls("float", value)
        if isinstance(value, str):
            return cls("string", value)
        if isinstance(value, (tuple, list)) and len(value) == 3:
            if all(isinstance(v, int) and not isinstance(v, bool) for v in value):
                return cls("vec3i", tuple(value))
            if all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in value):
                return cls("vec3d", tuple(float(v) for v in value))
        return cls("unsupported", value)


def level_for_depth(depth, tree_depth):
    """
    Map an openvdb iterator depth to a tree level.

    Depth 0 is the root node and `tree_depth - 1` is the leaf level where
    individual voxels live. Everything in between is an internal node tile.
    """
    if depth == tree_depth - 1:
        return Level.VOXEL
    if depth == 0:
        return Level.ROOT_NODE
    return Level.INTERNAL_NODE


class Grid:
    """
    A loaded grid: a restartable source of voxel samples plus its metadata.

    A single-pass iterable of samples is read once into a list so that the
    grid can be walked twice, once to size the volume and once to fill it.

    Parameters:
    name (str): The grid name.
    samples (callable or iterable): A callable returning a fresh iterable of
        VoxelSample on each call, or an iterable of VoxelSample.
    metadata (dict, optional): Metadata key/value pairs stored with the grid.
    """

    def __init__(self, name, samples, metadata=None):
        self.name = name
        if not callable(samples):
            buffer = [VoxelSample(*s) for s in samples]
            samples = lambda: buffer
        self._samples = samples
        self.metadata = dict(metadata or {})

    def iterate(self):
        return iter(self._samples())

    def metadata_lookup(self, key):
        if key not in self.metadata:
            return None
        return MetadataValue.from_python(self.metadata[key])


def import_openvdb():
    """
    Import the OpenVDB Python bindings.

    Older builds install the module as `pyopenvdb`, newer ones as `openvdb`.
    """
    try:
        import pyopenvdb

        return pyopenvdb
    except ImportError:
        pass
    try:
        import openvdb

        return openvdb
    except ImportError:
        raise ImportError("To read .vdb files, please install the OpenVDB Python bindings ('pyopenvdb' or 'openvdb')")


class VdbGrid(Grid):
    """Grid backed by an openvdb FloatGrid; every call to `iterate` walks the tree again."""

    def __init__(self, vdb_grid):
        self.vdb_grid = vdb_grid
        super().__init__(vdb_grid.name, self._walk, vdb_grid.metadata)

    def _walk(self):
        tree_depth = self.vdb_grid.treeDepth
        for item in self.vdb_grid.iterOnValues():
            level = level_for_depth(item.depth, tree_depth)
            yield VoxelSample(tuple(int(c) for c in item.min), float(item.value), level)


class VdbGridSource:
    """
    Grids stored in a .vdb file.

    Only the grid descriptors and metadata are read on construction; trees are
    decoded on demand by `load_grid`.

    Parameters:
    filename (str): The path to the .vdb file.

    Raises:
    InputOpenError: If the file does not exist or the bindings cannot read it.
    """

    def __init__(self, filename):
        self.filename = filename
        if not os.path.isfile(filename):
            raise InputOpenError(f"Cannot open {filename}: no such file")
        self._vdb = import_openvdb()
        try:
            self._descriptors = self._vdb.readAllGridMetadata(filename)
        except Exception as e:
            raise InputOpenError(f"Cannot open {filename}: {e}") from e

    def list_available_grid_names(self):
        return {g.name for g in self._descriptors}

    def grid_metadata(self):
        return {g.name: dict(g.metadata) for g in self._descriptors}

    def load_grid(self, name):
        available = self.list_available_grid_names()
        if name not in available:
            raise GridNotFoundError(name, available)
        try:
            vdb_grid = self._vdb.read(self.filename, name)
        except Exception as e:
            raise GridDecodeError(f"Cannot decode grid {name} from {self.filename}: {e}") from e
        _logger.debug(f"Loaded grid {name} with {vdb_grid.activeVoxelCount()} active voxels")
        return VdbGrid(vdb_grid)
