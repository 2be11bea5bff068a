"""Constraint types accepted by the fluid solver."""
from dataclasses import dataclass


@dataclass(frozen=True)
class FluidConstraint:
    """Density constraint ``C_i = rho_i / rest_density - 1`` over all particles."""

    rest_density: float = 80.0

    def __post_init__(self):
        if self.rest_density <= 0.0:
            raise ValueError(f"rest_density must be positive, got {self.rest_density}")


@dataclass(frozen=True)
class DistanceConstraint:
    """Keeps particles ``a`` and ``b`` at ``rest_length``.

    Declared so scenes can describe it; the fluid pipeline has no pass that
    projects it yet.
    """

    a: int
    b: int
    rest_length: float
    stiffness: float = 1.0
