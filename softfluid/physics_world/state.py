"""Dataclasses describing the evolving physics state."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, NamedTuple

import numpy as np

from .math_utils import EMPTY_MAX, EMPTY_MIN, Vec3, point_in_aabb_strict

# Offsets inside the per-point block of a soft body state vector.
STATE_STRIDE = 6
X, Y, Z, VX, VY, VZ = range(STATE_STRIDE)


class Spring(NamedTuple):
    a: int  # always the smaller vertex index
    b: int
    rest_length: float


def spring_key(i: int, j: int) -> int:
    """Combined 64-bit key for an undirected vertex pair."""
    lo, hi = (i, j) if i < j else (j, i)
    return (lo << 32) | hi


@dataclass
class BoundingBox:
    bounds_min: Vec3 = EMPTY_MIN
    bounds_max: Vec3 = EMPTY_MAX

    @classmethod
    def from_points(cls, points: np.ndarray) -> "BoundingBox":
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if not len(points):
            return cls()
        lo = points.min(axis=0)
        hi = points.max(axis=0)
        return cls(
            bounds_min=(float(lo[0]), float(lo[1]), float(lo[2])),
            bounds_max=(float(hi[0]), float(hi[1]), float(hi[2])),
        )

    @property
    def is_empty(self) -> bool:
        return any(lo > hi for lo, hi in zip(self.bounds_min, self.bounds_max))

    def contains_strict(self, point: Vec3) -> bool:
        return point_in_aabb_strict(point, self.bounds_min, self.bounds_max)


@dataclass
class SoftBodyState:
    name: str
    positions: np.ndarray  # (V, 3)
    velocities: np.ndarray  # (V, 3)
    bounds: BoundingBox
    total_mass: float


@dataclass
class FluidState:
    positions: np.ndarray  # (N, 3) meters (m)
    velocities: np.ndarray  # (N, 3) meters per second (m/s)
    domain_max: Vec3

    def particle_count(self) -> int:
        return len(self.positions)


@dataclass
class WorldSnapshot:
    step_index: int
    time: float
    soft_bodies: List[SoftBodyState] = field(default_factory=list)
    fluid: FluidState | None = None
