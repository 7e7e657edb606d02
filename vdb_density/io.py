import os
import json
import numpy
import tifffile
import nrrd
import h5py

from vdb_density.dimensions import Dimensions, INT32_MAX
from vdb_density.errors import OutputWriteError

HEADER_DTYPE = numpy.dtype("<i4")
VALUE_DTYPE = numpy.dtype("<f8")
HEADER_BYTES = 3 * HEADER_DTYPE.itemsize
SAVE_EXTENSIONS = ("density", "tif", "tiff", "raw", "npy", "npz", "nrrd", "h5")


def file_extension(filename):
    return filename.split(".")[-1].lower()


def write_density(filename, density, dims):
    """
    Write a dense volume in the .density layout.

    The layout is little-endian with no magic, version or padding:

    offset 0:  int32   size_x
    offset 4:  int32   size_y
    offset 8:  int32   size_z
    offset 12: float64[size_x*size_y*size_z]   values, x fastest, then y, then z

    The bytes go to a temporary file next to `filename` which is renamed into
    place once complete, so a failed run never leaves a truncated file.

    Parameters:
    filename (str): The path of the file to write.
    density (array-like): The flat volume, of length size_x*size_y*size_z.
    dims (Dimensions): The volume size.

    Raises:
    OutputWriteError: If the sizes do not fit the layout or the file cannot be written.
    """
    values = numpy.asarray(density, dtype=VALUE_DTYPE).ravel()
    if values.size != dims.cell_count:
        raise OutputWriteError(f"Volume has {values.size} cells but {dims.x}x{dims.y}x{dims.z} needs {dims.cell_count}")
    if any(size < 0 or size > INT32_MAX for size in dims):
        raise OutputWriteError(f"Dimensions {tuple(dims)} do not fit in int32")

    tmp_filename = filename + ".tmp"
    try:
        with open(tmp_filename, "wb") as f:
            f.write(numpy.asarray(dims, dtype=HEADER_DTYPE).tobytes())
            values.tofile(f)
        os.replace(tmp_filename, filename)
    except OSError as e:
        if os.path.exists(tmp_filename):
            os.remove(tmp_filename)
        raise OutputWriteError(f"Cannot write {filename}: {e}") from e


def read_density(filename):
    """
    Read a file written by `write_density`.

    Returns:
    tuple: The Dimensions and a flat float64 array of the values.

    Raises:
    ValueError: If the file is shorter or longer than its header says.
    """
    with open(filename, "rb") as f:
        raw = f.read()
    if len(raw) < HEADER_BYTES:
        raise ValueError(f"{filename} is too short to hold a .density header")
    dims = Dimensions(*(int(v) for v in numpy.frombuffer(raw[:HEADER_BYTES], dtype=HEADER_DTYPE)))
    if any(size < 0 for size in dims):
        raise ValueError(f"{filename} has negative dimensions {tuple(dims)}")
    expected = HEADER_BYTES + dims.cell_count * VALUE_DTYPE.itemsize
    if len(raw) != expected:
        raise ValueError(f"{filename} holds {len(raw)} bytes, expected {expected} for {dims.x}x{dims.y}x{dims.z}")
    if dims.cell_count == 0:
        return dims, numpy.zeros(0, dtype=numpy.float64)
    values = numpy.frombuffer(raw[HEADER_BYTES:], dtype=VALUE_DTYPE).astype(numpy.float64)
    return dims, values


def load_data(filename):
    """
    Load a dense volume from a file based on its extension.

    Parameters:
    filename (str): The path to the file to be loaded.

    Returns:
    numpy.ndarray: The volume. Files written by `save_data` come back in (z, y, x) order:
    - For '.density' files, the values reshaped from the header dimensions.
    - For '.tif' or '.tiff' files, an array from tifffile.
    - For '.npy' and '.npz' files, an array from numpy.
    - For '.nrrd' files, the data from nrrd.
    - For '.h5' files, the first dataset.
    - For '.raw' files, a flat float64 memmap, since raw files carry no shape.
    """
    extension = file_extension(filename)
    if extension == "density":
        dims, values = read_density(filename)
        data = values.reshape((dims.z, dims.y, dims.x))
    elif extension in ("tif", "tiff"):
        data = tifffile.imread(filename)
    elif extension == "raw":
        data = numpy.memmap(filename, dtype=VALUE_DTYPE, mode="r")
    elif extension == "npy":
        data = numpy.load(filename)
    elif extension == "npz":
        data = numpy.load(filename)["arr_0"]
    elif extension == "nrrd":
        data, header = nrrd.read(filename)
    elif extension == "h5":
        with h5py.File(filename, "r") as f:
            keys = list(f.keys())
            data = f[keys[0]][()]
    else:
        raise ValueError("Unsupported file extension")

    return data


def save_data(data, filename):
    """
    Save a dense volume to a file with the specified filename and extension.

    Parameters:
    data (numpy.ndarray): The volume, shaped (z, y, x) so that x varies fastest in memory.
    filename (str): The name of the file to save the data to. The extension of the filename determines the format.

    Supported file extensions:
    - 'density': the flat little-endian layout of `write_density`.
    - 'tif' or 'tiff': a TIFF stack using tifffile.imwrite.
    - 'raw': raw little-endian float64 values using data.tofile.
    - 'npy' / 'npz': NumPy array / compressed archive.
    - 'nrrd': an NRRD file using nrrd.write.
    - 'h5': an HDF5 file with a single 'arr_0' dataset.

    Raises:
    ValueError: If the file extension is not supported.
    """
    extension = file_extension(filename)
    data = numpy.asarray(data)

    if extension == "density":
        if data.ndim != 3:
            raise ValueError("A .density file needs a 3D volume shaped (z, y, x)")
        size_z, size_y, size_x = data.shape
        write_density(filename, data, Dimensions(size_x, size_y, size_z))
    elif extension in ("tif", "tiff"):
        tifffile.imwrite(filename, data)
    elif extension == "raw":
        data.astype(VALUE_DTYPE).tofile(filename)
    elif extension == "npy":
        numpy.save(filename, data)
    elif extension == "npz":
        numpy.savez_compressed(filename, data)
    elif extension == "nrrd":
        nrrd.write(filename, data)
    elif extension == "h5":
        with h5py.File(filename, "w") as f:
            f.create_dataset("arr_0", data=data)
    else:
        raise ValueError("Unsupported file extension")


def load_json(filename):
    with open(filename) as f:
        return json.load(f)
