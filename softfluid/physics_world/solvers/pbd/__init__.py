"""Position-Based-Dynamics fluid on a pluggable compute backend.

The Taichi backend is imported only when requested through ``create_backend``.
"""

from .backend import BackendInitializationError, ComputeBackend, KERNELS, create_backend
from .constraints import DistanceConstraint, FluidConstraint
from .solver import PIPELINE, FluidSolver, Stage

__all__ = [
    "BackendInitializationError",
    "ComputeBackend",
    "KERNELS",
    "create_backend",
    "DistanceConstraint",
    "FluidConstraint",
    "PIPELINE",
    "FluidSolver",
    "Stage",
]
