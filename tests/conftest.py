import numpy as np
import pytest

from softfluid.mesh_utils import TriangleMesh, cube_mesh
from softfluid.physics_world.bodies import StaticBody
from softfluid.physics_world.solvers.pbd.backend import create_backend
from softfluid.physics_world.solvers.pbd.solver import FluidSolver


@pytest.fixture
def unit_cube():
    return cube_mesh(1.0)


@pytest.fixture
def block():
    """Static 2x2x2 cube centred at the origin; its top face is y = 1."""
    return StaticBody("block", cube_mesh(2.0))


@pytest.fixture
def pair_mesh():
    """Two points one unit apart joined by a single edge."""
    return TriangleMesh(vertices=[[0.0, 0.0, 0.0], [1.0, 0.0, 0.0]], triangles=[[0, 1, 1]])


@pytest.fixture
def single_point():
    def make(position):
        return TriangleMesh(vertices=np.asarray([position], dtype=np.float64), triangles=np.zeros((0, 3)))

    return make


@pytest.fixture
def numpy_fluid():
    def make(**kwargs):
        kwargs.setdefault("particle_count", 200)
        kwargs.setdefault("seed", 0)
        return FluidSolver(create_backend("numpy", (8, 8, 8)), **kwargs)

    return make
