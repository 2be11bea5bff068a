"""Position-Based-Dynamics fluid solver.

The solver owns the particle buffers on a compute backend and runs one frame
as an ordered list of parallel stages, separated by barriers:

    predict -> (lambdas -> corrections -> apply) x iterations
            -> velocity/clamp -> vorticity -> confinement + XSPH
            -> velocity correction -> readback

Usage:
    backend = create_backend("numpy", (8, 8, 8))
    solver = FluidSolver(backend, particle_count=1000, seed=0)
    solver.update(1.0 / 60.0)
    xyz = solver.positions_out.reshape(-1, 3)
"""
import logging
from dataclasses import dataclass
from itertools import groupby
from operator import attrgetter
from typing import Dict, Iterator, List, Sequence, Tuple

import numpy as np

from ...math_utils import Vec3
from ...state import FluidState
from .backend import KERNELS, ComputeBackend
from .constraints import DistanceConstraint, FluidConstraint
from .passes import float32_bounds

logger = logging.getLogger(__name__)

VECTOR_BUFFERS = ("position", "velocity", "estimate", "correction", "vorticity", "velocity_correction")
SCALAR_BUFFERS = ("inverse_mass", "lambdas")
# Buffers holding meaningful data before the first stage runs.
HOST_INITIALIZED = ("position", "velocity", "inverse_mass")


@dataclass(frozen=True)
class Stage:
    """One parallel pass of the frame.

    ``reads`` lists the buffers whose previous contents the pass consumes;
    ``iterated`` stages form the block repeated ``solver_iterations`` times.
    """

    name: str
    kernel: str
    reads: Tuple[str, ...]
    iterated: bool = False

    @property
    def buffers(self) -> Tuple[str, ...]:
        return KERNELS[self.kernel].buffers

    @property
    def writes(self) -> Tuple[str, ...]:
        return KERNELS[self.kernel].writes


PIPELINE: Tuple[Stage, ...] = (
    Stage("predict", "predict_positions", reads=("position", "velocity")),
    Stage("lambdas", "calculate_lambdas", reads=("estimate", "inverse_mass"), iterated=True),
    Stage("corrections", "calculate_corrections", reads=("estimate", "inverse_mass", "lambdas"), iterated=True),
    Stage("apply_corrections", "apply_corrections", reads=("estimate", "correction"), iterated=True),
    Stage("update_velocity", "update_velocity", reads=("position", "estimate")),
    Stage("vorticity", "calculate_vorticity", reads=("position", "velocity")),
    Stage(
        "vorticity_viscosity",
        "apply_vorticity_viscosity",
        reads=("position", "velocity", "vorticity", "inverse_mass"),
    ),
    Stage("correct_velocity", "correct_velocity", reads=("velocity", "velocity_correction")),
)


def validate_pipeline(stages: Sequence[Stage], initialized: Sequence[str] = HOST_INITIALIZED) -> None:
    """Raise ``ValueError`` if a stage reads a buffer nothing has produced yet."""
    available = set(initialized)
    for stage in stages:
        if stage.kernel not in KERNELS:
            raise ValueError(f"Stage '{stage.name}' uses unknown kernel '{stage.kernel}'")
        unbound = [b for b in stage.reads if b not in stage.buffers]
        if unbound:
            raise ValueError(f"Stage '{stage.name}' reads {unbound} which kernel '{stage.kernel}' does not bind")
        missing = [b for b in stage.reads if b not in available]
        if missing:
            raise ValueError(f"Stage '{stage.name}' reads {missing} before any stage writes them")
        available.update(stage.writes)


class FluidSolver:
    """PBD fluid of ``particle_count`` particles inside ``[0, MAX]^3``.

    ``MAX`` per axis is ``cell_width * grid_resolution`` of the backend.
    Particles spawn uniformly in ``[0, spawn_extent)^3`` from ``seed``.
    """

    def __init__(
        self,
        backend: ComputeBackend,
        particle_count: int = 1000,
        cell_width: float = 0.6,
        rest_density: float = 80.0,
        solver_iterations: int = 2,
        gravity: Vec3 = (0.0, -9.8, 0.0),
        relaxation: float = 1.0,
        tensile_k: float = 0.1,
        tensile_dq: float = 0.2,
        tensile_n: float = 4.0,
        vorticity_epsilon: float = 0.01,
        xsph_viscosity: float = 0.01,
        spawn_extent: float = 2.5,
        seed: int = 0,
        stages: Sequence[Stage] = PIPELINE,
    ):
        if particle_count <= 0:
            raise ValueError(f"particle_count must be positive, got {particle_count}")
        if cell_width <= 0.0:
            raise ValueError(f"cell_width must be positive, got {cell_width}")
        if solver_iterations < 1:
            raise ValueError(f"solver_iterations must be >= 1, got {solver_iterations}")
        validate_pipeline(stages)

        self.backend = backend
        self.particle_count = int(particle_count)
        self.cell_width = float(cell_width)
        self.solver_iterations = int(solver_iterations)
        self.gravity = tuple(float(g) for g in gravity)
        self.relaxation = relaxation
        self.tensile_k = tensile_k
        self.tensile_dq = tensile_dq
        self.tensile_n = tensile_n
        self.vorticity_epsilon = vorticity_epsilon
        self.xsph_viscosity = xsph_viscosity
        self.stages: List[Stage] = list(stages)
        self.fluid_constraint = FluidConstraint(rest_density)
        self.domain_max: Vec3 = tuple(self.cell_width * r for r in backend.grid_resolution)
        self.step_count = 0

        if spawn_extent > min(self.domain_max):
            logger.warning("[FluidSolver] spawn_extent %.3f exceeds domain %s; particles start clamped",
                           spawn_extent, self.domain_max)

        n = self.particle_count
        for name in VECTOR_BUFFERS:
            backend.create_buffer(name, 3, n)
        for name in SCALAR_BUFFERS:
            backend.create_buffer(name, 1, n)

        rng = np.random.default_rng(seed)
        backend.buffer_write("position", rng.uniform(0.0, spawn_extent, size=(n, 3)).astype(np.float32))
        for name in VECTOR_BUFFERS[1:]:
            backend.buffer_fill(name, 0.0)
        backend.buffer_fill("inverse_mass", 1.0)
        backend.buffer_fill("lambdas", 0.0)
        backend.barrier()

        self.positions_out = backend.buffer_read("position").reshape(-1)

        logger.info(
            "[FluidSolver] Initialized %d particles on %s backend (domain %s, h=%.3f, rho0=%.1f, iterations=%d)",
            n, backend.name, self.domain_max, self.cell_width, rest_density, self.solver_iterations,
        )

    @property
    def rest_density(self) -> float:
        return self.fluid_constraint.rest_density

    def add_constraint(self, constraint) -> None:
        if isinstance(constraint, FluidConstraint):
            self.fluid_constraint = constraint
            logger.info("[FluidSolver] Rest density set to %.3f", constraint.rest_density)
        elif isinstance(constraint, DistanceConstraint):
            raise NotImplementedError("Distance constraints are not projected by the fluid pipeline")
        else:
            raise TypeError(f"Unsupported constraint type {type(constraint).__name__}")

    def params(self, delta: float) -> Dict[str, object]:
        return {
            "delta": float(delta),
            "gravity": self.gravity,
            "cell_width": self.cell_width,
            "rest_density": self.rest_density,
            "relaxation": self.relaxation,
            "tensile_k": self.tensile_k,
            "tensile_dq": self.tensile_dq,
            "tensile_n": self.tensile_n,
            # float32 buffers must never round past the walls
            "domain_max": tuple(float(m) for m in float32_bounds(self.domain_max)),
            "vorticity_epsilon": self.vorticity_epsilon,
            "xsph_viscosity": self.xsph_viscosity,
        }

    def schedule(self) -> Iterator[Stage]:
        """Stages of one frame, with the iterated block repeated."""
        for iterated, group in groupby(self.stages, key=attrgetter("iterated")):
            group = list(group)
            for _ in range(self.solver_iterations if iterated else 1):
                yield from group

    def update(self, delta: float) -> np.ndarray:
        """Advance one frame and return the flat ``positions_out`` array."""
        if delta <= 0.0:
            raise ValueError(f"Time step must be positive, got {delta}")
        params = self.params(delta)
        for stage in self.schedule():
            self.backend.parallel_map(stage.kernel, stage.buffers, self.particle_count, params)
            self.backend.barrier()

        self.positions_out[:] = self.backend.buffer_read("position").reshape(-1)
        self.step_count += 1
        logger.debug("[FluidSolver] Frame %d done (dt=%.4f)", self.step_count, delta)
        return self.positions_out

    def snapshot(self) -> FluidState:
        return FluidState(
            positions=self.positions_out.reshape(-1, 3).copy(),
            velocities=self.backend.buffer_read("velocity"),
            domain_max=self.domain_max,
        )
