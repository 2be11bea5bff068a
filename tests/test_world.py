import numpy as np
import pytest

from softfluid.configuration import load_scene_config
from softfluid.physics_world.integrator import ExplicitEulerIntegrator, RK4Integrator, make_integrator
from softfluid.physics_world.solvers.softbody.solver import SoftBody
from softfluid.physics_world.world import PhysicsWorld
from softfluid.world_container import WorldContainer

SCENE = """
scene_name: jelly_on_block
simulation:
  time_step: 0.01
  total_steps: 4
  integrator: rk4
soft_bodies:
  - name: jelly
    mesh:
      primitive: icosphere
      size: 0.5
      subdivisions: 1
      offset: [0.37, 1.0, -0.11]
static_bodies:
  - name: block
    mesh:
      primitive: cube
      size: 4.0
      offset: [0.0, -2.0, 0.0]
fluid:
  particle_count: 100
  seed: 1
"""


@pytest.fixture
def scene_path(tmp_path):
    path = tmp_path / "scene.yaml"
    path.write_text(SCENE, encoding="utf-8")
    return path


def test_make_integrator():
    assert isinstance(make_integrator("euler"), ExplicitEulerIntegrator)
    assert isinstance(make_integrator("RK4"), RK4Integrator)
    with pytest.raises(ValueError):
        make_integrator("verlet")


@pytest.mark.parametrize(
    "integrator, expected_y",
    [(ExplicitEulerIntegrator(), 0.0), (RK4Integrator(), -0.005)],
)
def test_free_fall_of_single_point(single_point, integrator, expected_y):
    body = SoftBody("point", single_point((0.0, 0.0, 0.0)), gravity=1.0)
    integrator.step(body, [body], 0.1)
    assert body.positions[0, 1] == pytest.approx(expected_y)
    assert body.velocities[0, 1] == pytest.approx(-0.1)


def test_integrator_rejects_non_positive_step(single_point):
    body = SoftBody("point", single_point((0.0, 0.0, 0.0)))
    with pytest.raises(ValueError):
        ExplicitEulerIntegrator().step(body, [body], 0.0)


def test_world_from_config(scene_path):
    world = PhysicsWorld.from_config(load_scene_config(scene_path))
    assert isinstance(world.integrator, RK4Integrator)
    assert [b.name for b in world.bodies] == ["jelly", "block"]
    assert world.fluid_solver.particle_count == 100

    snapshot = world.step(0.01)

    assert snapshot.step_index == 1
    assert snapshot.time == pytest.approx(0.01)
    assert snapshot.soft_bodies[0].name == "jelly"
    assert snapshot.fluid.positions.shape == (100, 3)


def test_soft_body_lands_on_block_without_penetrating(scene_path):
    config = load_scene_config(scene_path)
    config.fluid = None
    world = PhysicsWorld.from_config(config)
    jelly = world.soft_bodies[0]
    lowest = jelly.bounds_min[1]

    for _ in range(200):
        world.step(0.01)
        lowest = min(lowest, jelly.bounds_min[1])
        # block top face is y = 0
        assert jelly.positions[:, 1].min() > -1e-6
        assert jelly.total_mass == pytest.approx(4.0)

    assert np.all(np.isfinite(jelly.get_state()))
    # touched the block; pressure may bounce it back up afterwards
    assert lowest < 0.02


def test_world_step_rejects_bad_dt():
    with pytest.raises(ValueError):
        PhysicsWorld().step(-1.0)


def test_container_run(scene_path):
    container = WorldContainer.from_config_file(scene_path)
    seen = []
    container.observers.append(seen.append)

    snapshot = container.run()

    assert len(seen) == 4
    assert snapshot is seen[-1]
    assert container.current_step == 4
    assert snapshot.time == pytest.approx(0.04)


def test_container_backend_override(scene_path):
    with pytest.raises(ValueError):
        WorldContainer.from_config_file(scene_path, backend="opencl")
