import numpy as np
import pytest

from softfluid.physics_world.solvers.pbd.constraints import DistanceConstraint, FluidConstraint
from softfluid.physics_world.solvers.pbd.numpy_backend import NumpyBackend
from softfluid.physics_world.solvers.pbd.solver import PIPELINE, FluidSolver, Stage, validate_pipeline


class RecordingBackend(NumpyBackend):
    def __init__(self, grid_resolution):
        super().__init__(grid_resolution)
        self.calls = []

    def parallel_map(self, kernel, buffers, element_count, params=None):
        self.calls.append(kernel)
        super().parallel_map(kernel, buffers, element_count, params)

    def barrier(self):
        self.calls.append("barrier")


def test_particles_stay_inside_domain(numpy_fluid):
    solver = numpy_fluid(particle_count=300)
    upper = np.asarray(solver.domain_max)
    for _ in range(10):
        positions = solver.update(0.016).reshape(-1, 3)
        assert np.all(positions >= 0.0)
        assert np.all(positions <= upper)
    assert np.all(np.isfinite(solver.snapshot().velocities))


def test_domain_is_cell_width_times_resolution(numpy_fluid):
    solver = numpy_fluid()
    assert solver.domain_max == pytest.approx((4.8, 4.8, 4.8))


def test_initial_particles_from_seed(numpy_fluid):
    first = numpy_fluid(seed=5)
    second = numpy_fluid(seed=5)
    other = numpy_fluid(seed=6)
    np.testing.assert_array_equal(first.positions_out, second.positions_out)
    assert not np.array_equal(first.positions_out, other.positions_out)
    assert first.positions_out.shape == (600,)
    assert first.positions_out.min() >= 0.0 and first.positions_out.max() <= 2.5
    np.testing.assert_array_equal(first.backend.buffer_read("inverse_mass"), 1.0)


def test_update_is_deterministic(numpy_fluid):
    a = numpy_fluid()
    b = numpy_fluid()
    for _ in range(3):
        a.update(0.016)
        b.update(0.016)
    np.testing.assert_array_equal(a.positions_out, b.positions_out)


def test_lone_particle_falls_freely(numpy_fluid):
    solver = numpy_fluid(particle_count=1)
    solver.backend.buffer_write("position", [[1.0, 2.0, 1.0]])

    positions = solver.update(0.1)

    np.testing.assert_allclose(positions, [1.0, 2.0 - 0.098, 1.0], rtol=1e-5)
    np.testing.assert_allclose(solver.backend.buffer_read("velocity")[0], [0.0, -0.98, 0.0], rtol=1e-4, atol=1e-6)


def test_wall_clamp_zeroes_normal_velocity(numpy_fluid):
    solver = numpy_fluid(particle_count=1)
    solver.backend.buffer_write("position", [[1.0, 0.01, 1.0]])
    solver.backend.buffer_write("velocity", [[0.5, 0.0, 0.0]])

    positions = solver.update(0.1)

    assert positions[1] == 0.0
    velocity = solver.backend.buffer_read("velocity")[0]
    assert velocity[1] == 0.0
    assert velocity[0] == pytest.approx(0.5, rel=1e-5)


def test_isolated_particles_have_no_neighbour_terms(numpy_fluid):
    solver = numpy_fluid(particle_count=2)
    solver.backend.buffer_write("position", [[0.5, 2.0, 0.5], [4.0, 2.0, 4.0]])

    positions = solver.update(0.016).reshape(-1, 3)

    np.testing.assert_allclose(positions[:, [0, 2]], [[0.5, 0.5], [4.0, 4.0]], rtol=1e-6)
    np.testing.assert_array_equal(solver.backend.buffer_read("velocity_correction"), 0.0)
    assert np.all(positions[:, 1] < 2.0)


def test_upper_wall_clamp_stays_inside_domain(numpy_fluid):
    solver = numpy_fluid(particle_count=1)
    solver.backend.buffer_write("position", [[4.79, 2.0, 1.0]])
    solver.backend.buffer_write("velocity", [[10.0, 0.0, 0.0]])

    positions = solver.update(0.1)

    assert positions[0] <= solver.domain_max[0]
    assert positions[0] == pytest.approx(4.8, abs=1e-6)
    assert solver.backend.buffer_read("velocity")[0][0] == 0.0


def test_frame_runs_stages_in_order_with_barriers():
    backend = RecordingBackend((8, 8, 8))
    solver = FluidSolver(backend, particle_count=50, solver_iterations=3)
    backend.calls.clear()

    solver.update(0.016)

    kernels = [call for call in backend.calls if call != "barrier"]
    constraint_block = ["calculate_lambdas", "calculate_corrections", "apply_corrections"]
    assert kernels == (
        ["predict_positions"]
        + constraint_block * 3
        + ["update_velocity", "calculate_vorticity", "apply_vorticity_viscosity", "correct_velocity"]
    )
    # every stage is followed by a barrier
    assert backend.calls[1::2] == ["barrier"] * len(kernels)


def test_pipeline_validation():
    validate_pipeline(PIPELINE)
    with pytest.raises(ValueError):
        validate_pipeline(PIPELINE[1:])
    with pytest.raises(ValueError):
        validate_pipeline([Stage("bad", "apply_corrections", reads=("lambdas",))])
    with pytest.raises(ValueError):
        validate_pipeline([Stage("bad", "no_such_kernel", reads=())])


def test_rest_density_constraint_replaces_configured_value(numpy_fluid):
    solver = numpy_fluid(rest_density=80.0)
    solver.add_constraint(FluidConstraint(rest_density=40.0))
    assert solver.rest_density == 40.0
    assert solver.params(0.016)["rest_density"] == 40.0


def test_distance_constraints_are_not_supported(numpy_fluid):
    solver = numpy_fluid()
    with pytest.raises(NotImplementedError):
        solver.add_constraint(DistanceConstraint(0, 1, 0.5))
    with pytest.raises(TypeError):
        solver.add_constraint("density")
    with pytest.raises(ValueError):
        FluidConstraint(rest_density=0.0)


def test_invalid_arguments(numpy_fluid):
    with pytest.raises(ValueError):
        numpy_fluid(particle_count=0)
    with pytest.raises(ValueError):
        numpy_fluid(solver_iterations=0)
    with pytest.raises(ValueError):
        numpy_fluid().update(0.0)
