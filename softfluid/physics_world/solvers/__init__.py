"""Collection of specialized solvers used by the physics world."""

from .softbody.solver import SoftBody
from .collision.swept import SweptCollisionResolver
from .pbd.solver import FluidSolver

__all__ = [
    "SoftBody",
    "SweptCollisionResolver",
    "FluidSolver",
]
