import os
import struct
import numpy
import pytest

import vdb_density.io
from vdb_density.dimensions import Dimensions
from vdb_density.errors import OutputWriteError


def test_write_density_layout(tmp_path):
    filename = str(tmp_path / "out.density")
    dims = Dimensions(2, 1, 1)
    vdb_density.io.write_density(filename, [0.25, -3.5], dims)

    with open(filename, "rb") as f:
        raw = f.read()
    assert len(raw) == 12 + 2 * 8
    assert struct.unpack("<3i", raw[:12]) == (2, 1, 1)
    assert struct.unpack("<2d", raw[12:]) == (0.25, -3.5)
    assert not os.path.exists(filename + ".tmp")


def test_round_trip_is_bit_exact(tmp_path):
    filename = str(tmp_path / "out.density")
    dims = Dimensions(3, 4, 5)
    values = numpy.random.default_rng(0).standard_normal(dims.cell_count)
    values[7] = numpy.nextafter(1.0, 2.0)
    vdb_density.io.write_density(filename, values, dims)

    read_dims, read_values = vdb_density.io.read_density(filename)
    assert read_dims == dims
    assert read_values.tobytes() == values.astype("<f8").tobytes()


def test_empty_volume(tmp_path):
    filename = str(tmp_path / "out.density")
    vdb_density.io.write_density(filename, numpy.zeros(0), Dimensions(0, 0, 0))
    assert os.path.getsize(filename) == 12
    dims, values = vdb_density.io.read_density(filename)
    assert dims == (0, 0, 0)
    assert values.size == 0


def test_write_rejects_wrong_length(tmp_path):
    filename = str(tmp_path / "out.density")
    with pytest.raises(OutputWriteError):
        vdb_density.io.write_density(filename, numpy.zeros(5), Dimensions(2, 2, 2))
    assert not os.path.exists(filename)


def test_write_to_missing_directory(tmp_path):
    filename = str(tmp_path / "missing" / "out.density")
    with pytest.raises(OutputWriteError):
        vdb_density.io.write_density(filename, numpy.zeros(1), Dimensions(1, 1, 1))


def test_read_rejects_truncated_file(tmp_path):
    filename = str(tmp_path / "out.density")
    vdb_density.io.write_density(filename, numpy.ones(8), Dimensions(2, 2, 2))
    with open(filename, "rb") as f:
        raw = f.read()
    with open(filename, "wb") as f:
        f.write(raw[:-8])
    with pytest.raises(ValueError):
        vdb_density.io.read_density(filename)


@pytest.mark.parametrize("extension", ["density", "npy", "npz", "tif", "nrrd", "h5"])
def test_save_and_load_data(tmp_path, extension):
    volume = numpy.arange(24, dtype=numpy.float64).reshape((4, 3, 2))
    filename = str(tmp_path / f"volume.{extension}")
    vdb_density.io.save_data(volume, filename)
    numpy.testing.assert_array_equal(vdb_density.io.load_data(filename), volume)


def test_density_file_matches_volume_order(tmp_path):
    volume = numpy.zeros((4, 3, 2))
    volume[3, 2, 1] = 5.0
    filename = str(tmp_path / "volume.density")
    vdb_density.io.save_data(volume, filename)
    dims, values = vdb_density.io.read_density(filename)
    assert dims == Dimensions(2, 3, 4)
    assert values[23] == 5.0


def test_raw_is_flat(tmp_path):
    volume = numpy.arange(8, dtype=numpy.float64).reshape((2, 2, 2))
    filename = str(tmp_path / "volume.raw")
    vdb_density.io.save_data(volume, filename)
    numpy.testing.assert_array_equal(vdb_density.io.load_data(filename), volume.ravel())


def test_unsupported_extension(tmp_path):
    with pytest.raises(ValueError):
        vdb_density.io.save_data(numpy.zeros((1, 1, 1)), str(tmp_path / "volume.xyz"))
    with pytest.raises(ValueError):
        vdb_density.io.load_data(str(tmp_path / "volume.xyz"))


def test_failed_rename_removes_temporary_file(tmp_path):
    filename = str(tmp_path / "out.density")
    os.mkdir(filename)
    with pytest.raises(OutputWriteError):
        vdb_density.io.write_density(filename, numpy.zeros(1), Dimensions(1, 1, 1))
    assert not os.path.exists(filename + ".tmp")
    assert os.path.isdir(filename)
