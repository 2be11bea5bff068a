"""Scene configuration dataclasses and loader utilities."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

import yaml

logger = logging.getLogger(__name__)

MESH_PRIMITIVES = ("cube", "icosphere")


@dataclass
class MeshSourceConfig:
    """Either an OBJ file (``path``) or a generated ``primitive``."""

    path: Optional[Path] = None
    primitive: Optional[str] = None
    size: float = 1.0  # cube edge length or icosphere radius
    subdivisions: int = 1
    scale: float = 1.0
    offset: Sequence[float] = (0.0, 0.0, 0.0)

    def __post_init__(self) -> None:
        if (self.path is None) == (self.primitive is None):
            raise ValueError("A mesh needs exactly one of 'path' or 'primitive'")
        if self.primitive is not None and self.primitive not in MESH_PRIMITIVES:
            raise ValueError(f"Unknown mesh primitive '{self.primitive}', expected one of {MESH_PRIMITIVES}")


@dataclass
class SoftBodyConfig:
    name: str
    mesh: MeshSourceConfig
    total_mass: float = 4.0
    spring_constant: float = 30.0
    damping_constant: float = 0.5
    gravity: float = 1.0  # downward acceleration on vy
    pressure_factor: float = 50.0
    contact_response: str = "reset"


@dataclass
class StaticBodyConfig:
    name: str
    mesh: MeshSourceConfig


@dataclass
class FluidConfig:
    particle_count: int = 1000
    grid_cell_width: float = 0.6  # also the kernel support radius h
    grid_resolution: Sequence[int] = (8, 8, 8)
    rest_density: float = 80.0
    solver_iterations: int = 2
    gravity: Sequence[float] = (0.0, -9.8, 0.0)
    relaxation: float = 1.0
    tensile_k: float = 0.1
    tensile_dq: float = 0.2  # fraction of h
    tensile_n: float = 4.0
    vorticity_epsilon: float = 0.01
    xsph_viscosity: float = 0.01
    spawn_extent: float = 2.5
    seed: int = 0
    backend: str = "numpy"
    arch: str = "cpu"


@dataclass
class SimulationConfig:
    time_step: float = 1.0 / 60.0  # seconds (s)
    total_steps: int = 100
    integrator: str = "euler"


@dataclass
class SceneConfig:
    scene_name: str
    simulation: SimulationConfig
    soft_bodies: List[SoftBodyConfig] = field(default_factory=list)
    static_bodies: List[StaticBodyConfig] = field(default_factory=list)
    fluid: FluidConfig | None = None


def _coerce_path(base_dir: Path, path_value: str | Path) -> Path:
    path = Path(path_value)
    return path if path.is_absolute() else (base_dir / path)


def _mesh_source(base_dir: Path, entry: dict) -> MeshSourceConfig:
    entry = dict(entry)
    if entry.get("path") is not None:
        entry["path"] = _coerce_path(base_dir, entry["path"])
    return MeshSourceConfig(**entry)


def load_scene_config(config_path: str | Path) -> SceneConfig:
    """Load a scene configuration from YAML."""
    path = Path(config_path).expanduser().resolve()
    if not path.exists():
        raise FileNotFoundError(f"Scene configuration not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}

    base_dir = path.parent

    simulation = SimulationConfig(**(raw.get("simulation") or {}))

    soft_bodies = [
        SoftBodyConfig(
            name=entry["name"],
            mesh=_mesh_source(base_dir, entry["mesh"]),
            **{k: v for k, v in entry.items() if k not in ("name", "mesh")},
        )
        for entry in (raw.get("soft_bodies") or [])
    ]

    static_bodies = [
        StaticBodyConfig(name=entry["name"], mesh=_mesh_source(base_dir, entry["mesh"]))
        for entry in (raw.get("static_bodies") or [])
    ]

    fluid = None
    if raw.get("fluid"):
        fluid = FluidConfig(**raw["fluid"])
        fluid.grid_resolution = tuple(int(r) for r in fluid.grid_resolution)
        fluid.gravity = tuple(float(g) for g in fluid.gravity)
    else:
        logger.info("[Config] No fluid section in %s, fluid simulation disabled", path.name)

    return SceneConfig(
        scene_name=raw.get("scene_name", path.stem),
        simulation=simulation,
        soft_bodies=soft_bodies,
        static_bodies=static_bodies,
        fluid=fluid,
    )
