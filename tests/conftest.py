import pytest

from vdb_density.grid import Grid, Level, VoxelSample
from vdb_density.errors import GridNotFoundError


class MemorySource:
    """A grid source holding grids in memory, standing in for a .vdb file."""

    def __init__(self, grids):
        self.grids = {grid.name: grid for grid in grids}
        self.loaded = []

    def list_available_grid_names(self):
        return set(self.grids)

    def grid_metadata(self):
        return {name: dict(grid.metadata) for name, grid in self.grids.items()}

    def load_grid(self, name):
        if name not in self.grids:
            raise GridNotFoundError(name, self.grids)
        self.loaded.append(name)
        return self.grids[name]


def voxel(x, y, z, value):
    return VoxelSample((x, y, z), value, Level.VOXEL)


@pytest.fixture
def make_source():
    def _make(samples, name="density_noise", metadata=None):
        return MemorySource([Grid(name, lambda: list(samples), metadata)])

    return _make


@pytest.fixture
def output_prefix(tmp_path):
    return str(tmp_path / "out")
