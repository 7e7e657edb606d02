import pytest

from vdb_density.grid import Grid, Level, MetadataValue, VdbGridSource, level_for_depth
from vdb_density.errors import InputOpenError


def test_level_for_depth_in_a_four_level_tree():
    assert level_for_depth(0, 4) == Level.ROOT_NODE
    assert level_for_depth(1, 4) == Level.INTERNAL_NODE
    assert level_for_depth(2, 4) == Level.INTERNAL_NODE
    assert level_for_depth(3, 4) == Level.VOXEL


@pytest.mark.parametrize(
    "value, kind",
    [
        ((4, 4, 4), "vec3i"),
        ([1, 2, 3], "vec3i"),
        ((1.0, 2.5, 3.0), "vec3d"),
        (7, "int"),
        (0.5, "float"),
        (True, "bool"),
        ("fog", "string"),
        ((True, False, True), "unsupported"),
        ((1, 2), "unsupported"),
        ({"a": 1}, "unsupported"),
    ],
)
def test_metadata_value_kind(value, kind):
    assert MetadataValue.from_python(value).kind == kind


def test_metadata_lookup():
    grid = Grid("density", lambda: [], {"file_bbox_max": (9, 9, 9)})
    assert grid.metadata_lookup("file_bbox_max") == MetadataValue("vec3i", (9, 9, 9))
    assert grid.metadata_lookup("missing") is None


def test_callable_samples_are_restarted():
    calls = []

    def samples():
        calls.append(1)
        return [((0, 0, 0), 1.0, Level.VOXEL)]

    grid = Grid("density", samples)
    assert len(list(grid.iterate())) == 1
    assert len(list(grid.iterate())) == 1
    assert len(calls) == 2


def test_single_pass_samples_are_buffered():
    generator = (((i, 0, 0), float(i), Level.VOXEL) for i in range(3))
    grid = Grid("density", generator)
    first = list(grid.iterate())
    second = list(grid.iterate())
    assert first == second
    assert [s.coord for s in first] == [(0, 0, 0), (1, 0, 0), (2, 0, 0)]
    assert first[2].value == 2.0


def test_missing_vdb_file(tmp_path):
    with pytest.raises(InputOpenError):
        VdbGridSource(str(tmp_path / "missing.vdb"))


def test_vdb_source_reads_voxels_and_metadata(tmp_path):
    vdb = pytest.importorskip("pyopenvdb")
    grid = vdb.FloatGrid()
    grid.name = "density"
    accessor = grid.getAccessor()
    accessor.setValueOn((1, 2, 3), 5.0)
    grid["canvas"] = (4, 4, 4)
    filename = str(tmp_path / "volume.vdb")
    vdb.write(filename, grids=[grid])

    source = VdbGridSource(filename)
    assert source.list_available_grid_names() == {"density"}
    loaded = source.load_grid("density")
    voxels = [s for s in loaded.iterate() if s.level == Level.VOXEL]
    assert [(s.coord, s.value) for s in voxels] == [((1, 2, 3), 5.0)]
    assert loaded.metadata_lookup("canvas") == MetadataValue("vec3i", (4, 4, 4))
