from softfluid.__main__ import main, parse_args

SCENE = """
simulation:
  time_step: 0.01
  total_steps: 2
soft_bodies:
  - name: cube
    mesh:
      primitive: cube
      offset: [0.0, 3.0, 0.0]
fluid:
  particle_count: 20
"""


def test_parse_args_defaults():
    args = parse_args([])
    assert args.steps is None
    assert args.backend is None
    assert args.log_level == "INFO"


def test_main_runs_scene(tmp_path):
    path = tmp_path / "scene.yaml"
    path.write_text(SCENE, encoding="utf-8")
    log_file = tmp_path / "run.log"

    assert main(["--config", str(path), "--steps", "3", "--log-file", str(log_file)]) == 0

    text = log_file.read_text(encoding="utf-8")
    assert "[FluidSolver] Initialized 20 particles" in text
    assert "fluid: 20 particles" in text
