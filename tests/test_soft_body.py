import numpy as np
import pytest

from softfluid.mesh_utils import TriangleMesh, cube_mesh, icosphere_mesh
from softfluid.physics_world.bodies import StaticBody
from softfluid.physics_world.integrator import ExplicitEulerIntegrator
from softfluid.physics_world.solvers.softbody.solver import SoftBody
from softfluid.physics_world.state import STATE_STRIDE, VX, VY, X


def test_spring_at_rest_length_has_no_force(pair_mesh):
    body = SoftBody("pair", pair_mesh, gravity=0.0)
    derivative = body.get_derivative(body.get_state()).reshape(-1, STATE_STRIDE)
    np.testing.assert_array_equal(derivative[:, 3:], 0.0)


def test_stretched_spring_pulls_endpoints_together(pair_mesh):
    body = SoftBody("pair", pair_mesh, gravity=0.0)
    state = body.get_state().copy()
    state[STATE_STRIDE + X] = 1.5

    derivative = body.get_derivative(state)

    expected = 30.0 * 0.5 / body.mass_per_point
    assert derivative[VX] == pytest.approx(expected)
    assert derivative[STATE_STRIDE + VX] == pytest.approx(-expected)


def test_damping_acts_along_the_spring(pair_mesh):
    body = SoftBody("pair", pair_mesh, gravity=0.0)
    state = body.get_state().copy()
    state[STATE_STRIDE + VX] = 2.0  # separating at 2 units/s

    derivative = body.get_derivative(state)

    assert derivative[VX] == pytest.approx(0.5 * 2.0 / body.mass_per_point)
    assert derivative[STATE_STRIDE + VX] == pytest.approx(-0.5 * 2.0 / body.mass_per_point)


def test_pressure_constant_of_unit_cube(unit_cube):
    body = SoftBody("cube", unit_cube)
    assert body.rest_volume == pytest.approx(1.0)
    assert body.pressure_constant == pytest.approx(50.0)


def test_pressure_pushes_vertices_outward(unit_cube):
    body = SoftBody("cube", unit_cube, gravity=0.0)
    derivative = body.get_derivative(body.get_state()).reshape(-1, STATE_STRIDE)
    outward = np.einsum("ij,ij->i", derivative[:, 3:], body.positions)
    assert np.all(outward > 0.0)


def test_gravity_and_position_slots(unit_cube):
    body = SoftBody("cube", unit_cube, gravity=0.0)
    falling = SoftBody("cube", unit_cube, gravity=1.0)
    rng = np.random.default_rng(3)
    state = body.get_state().copy()
    state.reshape(-1, STATE_STRIDE)[:, 3:] = rng.normal(size=(8, 3))

    still = body.get_derivative(state).reshape(-1, STATE_STRIDE)
    dropped = falling.get_derivative(state).reshape(-1, STATE_STRIDE)

    np.testing.assert_array_equal(still[:, :3], state.reshape(-1, STATE_STRIDE)[:, 3:])
    np.testing.assert_allclose(dropped[:, VY] - still[:, VY], -1.0)


def test_derivative_is_pure(unit_cube):
    body = SoftBody("cube", unit_cube)
    rng = np.random.default_rng(0)
    state = body.get_state() + rng.normal(scale=0.05, size=body.get_state().shape)
    before = state.copy()
    internal = body.get_state().copy()

    first = body.get_derivative(state)
    second = body.get_derivative(state)

    np.testing.assert_array_equal(first, second)
    np.testing.assert_array_equal(state, before)
    np.testing.assert_array_equal(body.get_state(), internal)


def test_collapsed_mesh_uses_volume_floor(unit_cube):
    body = SoftBody("cube", unit_cube, gravity=0.0)
    flat = body.get_state().copy().reshape(-1, STATE_STRIDE)
    flat[:, 1] = 0.0
    derivative = body.get_derivative(flat.reshape(-1))
    assert np.all(np.isfinite(derivative))


def test_wrong_state_length_raises(unit_cube):
    body = SoftBody("cube", unit_cube)
    with pytest.raises(ValueError):
        body.get_derivative(np.zeros(5))
    with pytest.raises(ValueError):
        body.update_state(np.zeros(7), [])


def test_update_state_moves_points_and_bounds(unit_cube):
    body = SoftBody("cube", unit_cube)
    change = np.zeros_like(body.get_state()).reshape(-1, STATE_STRIDE)
    change[:, 0] = 0.25
    change[:, VY] = -0.5

    body.update_state(change.reshape(-1), [body])

    np.testing.assert_allclose(body.positions[:, 0], unit_cube.vertices[:, 0] + 0.25)
    np.testing.assert_allclose(body.velocities[:, 1], -0.5)
    np.testing.assert_allclose(body.vertices, body.positions)
    assert body.bounds_min[0] == pytest.approx(-0.25)
    assert body.bounds_max[0] == pytest.approx(0.75)


def test_update_state_clips_against_sibling(single_point, block):
    body = SoftBody("drop", single_point((0.2, 1.5, 0.3)), gravity=0.0)
    change = np.array([0.0, -1.0, 0.0, 0.0, 0.0, 0.0])

    body.update_state(change, [body, block])

    np.testing.assert_allclose(body.positions[0], (0.2, 1.01, 0.3))
    np.testing.assert_array_equal(body.velocities[0], 0.0)


def test_later_bodies_are_tested_against_clipped_movement(single_point, block):
    # the cap only encloses the point once the block has clipped its movement
    cap = StaticBody("cap", cube_mesh(0.4, center=(0.0, 1.2, 0.0)))
    body = SoftBody("drop", single_point((0.05, 2.0, 0.1)), gravity=0.0)
    change = np.array([0.0, -2.5, 0.0, 0.0, 0.0, 0.0])

    body.update_state(change, [body, block, cap])

    np.testing.assert_allclose(body.positions[0], (0.05, 1.41, 0.1))
    np.testing.assert_array_equal(body.velocities[0], 0.0)


def test_body_without_vertices_never_contains_points(single_point):
    empty = StaticBody("empty", TriangleMesh(np.zeros((0, 3)), np.zeros((0, 3))))
    body = SoftBody("drop", single_point((0.0, 0.0, 0.0)), gravity=0.0)
    change = np.array([0.3, 0.2, 0.1, 0.0, 0.0, 0.0])

    body.update_state(change, [empty])

    np.testing.assert_allclose(body.positions[0], (0.3, 0.2, 0.1))
    assert empty.bounds.is_empty
    assert not empty.bounds.contains_strict(tuple(body.positions[0]))


def test_body_without_triangles_never_clips(single_point):
    cloud = StaticBody("cloud", TriangleMesh([[-1.0, -1.0, -1.0], [1.0, 1.0, 1.0]], np.zeros((0, 3))))
    body = SoftBody("drop", single_point((0.0, 2.0, 0.0)), gravity=0.0)
    change = np.array([0.0, -2.0, 0.0, 0.0, -1.0, 0.0])

    body.update_state(change, [body, cloud])

    np.testing.assert_allclose(body.positions[0], (0.0, 0.0, 0.0))
    assert body.velocities[0][1] == pytest.approx(-1.0)


def test_mass_is_invariant_over_steps(block):
    body = SoftBody("ball", icosphere_mesh(0.3, 1, center=(0.1, 1.6, -0.2)))
    integrator = ExplicitEulerIntegrator()
    for _ in range(20):
        integrator.step(body, [body, block], 0.005)
        assert body.mass_per_point * body.point_count == pytest.approx(4.0)
    assert body.snapshot().total_mass == pytest.approx(4.0)


def test_soft_body_needs_vertices():
    with pytest.raises(ValueError):
        SoftBody("nothing", TriangleMesh(np.zeros((0, 3)), np.zeros((0, 3))))


def test_unknown_contact_response_is_rejected(unit_cube):
    with pytest.raises(ValueError):
        SoftBody("cube", unit_cube, contact_response="bounce")
