from pathlib import Path

import pytest

from softfluid.configuration import MeshSourceConfig, load_scene_config

SCENE = """
scene_name: drop
simulation:
  time_step: 0.01
  total_steps: 5
  integrator: rk4
soft_bodies:
  - name: jelly
    mesh:
      path: meshes/jelly.obj
    spring_constant: 40.0
    contact_response: normal
static_bodies:
  - name: floor
    mesh:
      primitive: cube
      size: 4.0
      offset: [0.0, -2.0, 0.0]
fluid:
  particle_count: 64
  grid_resolution: [4, 4, 4]
"""


def write_scene(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "scene.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def test_load_scene(tmp_path):
    config = load_scene_config(write_scene(tmp_path, SCENE))

    assert config.scene_name == "drop"
    assert config.simulation.integrator == "rk4"
    assert config.simulation.total_steps == 5

    jelly = config.soft_bodies[0]
    assert jelly.mesh.path == tmp_path.resolve() / "meshes" / "jelly.obj"
    assert jelly.spring_constant == 40.0
    assert jelly.damping_constant == 0.5
    assert jelly.total_mass == 4.0
    assert jelly.contact_response == "normal"

    assert config.static_bodies[0].mesh.primitive == "cube"
    assert config.fluid.grid_resolution == (4, 4, 4)
    assert config.fluid.rest_density == 80.0
    assert config.fluid.grid_cell_width == 0.6
    assert config.fluid.solver_iterations == 2


def test_fluid_section_is_optional(tmp_path):
    config = load_scene_config(write_scene(tmp_path, "simulation: {time_step: 0.02}\n"))
    assert config.fluid is None
    assert config.soft_bodies == []
    assert config.scene_name == "scene"
    assert config.simulation.time_step == 0.02


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_scene_config(tmp_path / "nope.yaml")


def test_mesh_source_needs_exactly_one_origin():
    with pytest.raises(ValueError):
        MeshSourceConfig()
    with pytest.raises(ValueError):
        MeshSourceConfig(path=Path("a.obj"), primitive="cube")
    with pytest.raises(ValueError):
        MeshSourceConfig(primitive="torus")
