"""
Exceptions raised while converting a sparse VDB grid to a dense volume.

Each error kind carries the process exit status used by the command line
entry point, so calling automation can tell the failures apart.
"""


class ConversionError(Exception):
    """Base class for every error that stops a conversion run."""

    exit_code = 1


class InputOpenError(ConversionError):
    """The input VDB file does not exist or could not be opened."""

    exit_code = 2


class GridDecodeError(ConversionError):
    """The requested grid exists but its tree could not be decoded."""

    exit_code = 3


class GridNotFoundError(ConversionError, KeyError):
    """The requested grid name is not among the grids stored in the file."""

    exit_code = 4

    def __init__(self, grid_name, available=()):
        self.grid_name = grid_name
        self.available = sorted(available)
        super().__init__(f"Grid {grid_name} not found. Available grids: {', '.join(self.available) or 'none'}")

    def __str__(self):
        # KeyError would otherwise quote the message
        return self.args[0]


class MetadataKeyNotFoundError(ConversionError, KeyError):
    """The metadata key used for sizing is absent from the grid."""

    exit_code = 5

    def __init__(self, key):
        self.key = key
        super().__init__(f"Key {key} not found in metadata. Please check the name")

    def __str__(self):
        return self.args[0]


class MetadataWrongTypeError(ConversionError, TypeError):
    """The metadata value used for sizing is not a non-negative 3-integer vector."""

    exit_code = 6

    def __init__(self, key, kind):
        self.key = key
        self.kind = kind
        super().__init__(f"Key {key} is not a non-negative Vec3i (found {kind}). Please check the name")


class OutputWriteError(ConversionError):
    """The dense volume could not be written to disk."""

    exit_code = 7


class IndexOutOfRangeError(ConversionError, IndexError):
    """A voxel falls outside the dense volume chosen for the run."""

    exit_code = 8

    def __init__(self, coord, dims):
        self.coord = tuple(coord)
        self.dims = tuple(dims)
        super().__init__(
            f"Voxel {self.coord} lies outside the dense volume {self.dims[0]}x{self.dims[1]}x{self.dims[2]}"
        )


class VolumeTooLargeError(ConversionError):
    """The dense volume cannot be stored in the .density layout or allocated in memory."""

    exit_code = 9
