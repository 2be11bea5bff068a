"""Physics world core that orchestrates the soft-body and fluid solvers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ..configuration import MeshSourceConfig, SceneConfig
from ..mesh_utils import TriangleMesh, cube_mesh, icosphere_mesh, load_obj_mesh
from .bodies import PhysicsBody, StaticBody
from .integrator import ExplicitEulerIntegrator, make_integrator
from .solvers.pbd.backend import create_backend
from .solvers.pbd.solver import FluidSolver
from .solvers.softbody.solver import SoftBody
from .state import WorldSnapshot

logger = logging.getLogger(__name__)


def mesh_from_config(source: MeshSourceConfig) -> TriangleMesh:
    if source.path is not None:
        mesh = load_obj_mesh(source.path)
    elif source.primitive == "cube":
        mesh = cube_mesh(source.size)
    else:
        mesh = icosphere_mesh(source.size, source.subdivisions)
    return mesh.transformed(source.scale, source.offset)


@dataclass
class PhysicsWorld:
    soft_bodies: List[SoftBody] = field(default_factory=list)
    static_bodies: List[StaticBody] = field(default_factory=list)
    fluid_solver: Optional[FluidSolver] = None
    integrator: ExplicitEulerIntegrator = field(default_factory=ExplicitEulerIntegrator)
    current_time: float = 0.0
    current_step: int = 0

    @classmethod
    def from_config(
        cls,
        config: SceneConfig,
        backend: Optional[str] = None,
        arch: Optional[str] = None,
    ) -> "PhysicsWorld":
        """Build every body and the fluid solver described by ``config``.

        ``backend`` and ``arch`` override the fluid section when given.
        """
        static_bodies = []
        for body in config.static_bodies:
            static = StaticBody(body.name, mesh_from_config(body.mesh))
            logger.info("[StaticInit] %s: bounds %s to %s", body.name, static.bounds_min, static.bounds_max)
            static_bodies.append(static)

        soft_bodies = [
            SoftBody(
                body.name,
                mesh_from_config(body.mesh),
                total_mass=body.total_mass,
                spring_constant=body.spring_constant,
                damping_constant=body.damping_constant,
                gravity=body.gravity,
                pressure_factor=body.pressure_factor,
                contact_response=body.contact_response,
            )
            for body in config.soft_bodies
        ]

        fluid_solver = None
        if config.fluid is not None:
            fluid = config.fluid
            compute = create_backend(backend or fluid.backend, fluid.grid_resolution, arch=arch or fluid.arch)
            fluid_solver = FluidSolver(
                compute,
                particle_count=fluid.particle_count,
                cell_width=fluid.grid_cell_width,
                rest_density=fluid.rest_density,
                solver_iterations=fluid.solver_iterations,
                gravity=tuple(fluid.gravity),
                relaxation=fluid.relaxation,
                tensile_k=fluid.tensile_k,
                tensile_dq=fluid.tensile_dq,
                tensile_n=fluid.tensile_n,
                vorticity_epsilon=fluid.vorticity_epsilon,
                xsph_viscosity=fluid.xsph_viscosity,
                spawn_extent=fluid.spawn_extent,
                seed=fluid.seed,
            )

        logger.info(
            "[PhysicsWorld] Scene '%s': %d soft, %d static, fluid=%s, integrator=%s",
            config.scene_name, len(soft_bodies), len(static_bodies),
            fluid_solver is not None, config.simulation.integrator,
        )
        return cls(
            soft_bodies=soft_bodies,
            static_bodies=static_bodies,
            fluid_solver=fluid_solver,
            integrator=make_integrator(config.simulation.integrator),
        )

    @property
    def bodies(self) -> List[PhysicsBody]:
        return [*self.soft_bodies, *self.static_bodies]

    def step(self, dt: float) -> WorldSnapshot:
        """Integrate every soft body, then advance the fluid by ``dt``."""
        if dt <= 0.0:
            raise ValueError(f"Time step must be positive, got {dt}")
        bodies = self.bodies
        for body in self.soft_bodies:
            # sibling list includes the body itself; its own triangles are skipped
            self.integrator.step(body, bodies, dt)
        if self.fluid_solver is not None:
            self.fluid_solver.update(dt)

        self.current_time += dt
        self.current_step += 1
        return self.snapshot()

    def snapshot(self) -> WorldSnapshot:
        return WorldSnapshot(
            step_index=self.current_step,
            time=self.current_time,
            soft_bodies=[body.snapshot() for body in self.soft_bodies],
            fluid=self.fluid_solver.snapshot() if self.fluid_solver is not None else None,
        )
