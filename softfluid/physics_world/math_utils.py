"""Lightweight vector math helpers used by the per-vertex collision code."""

from __future__ import annotations

from math import inf, sqrt
from typing import Tuple

Vec3 = Tuple[float, float, float]

EMPTY_MIN: Vec3 = (inf, inf, inf)
EMPTY_MAX: Vec3 = (-inf, -inf, -inf)


def add(a: Vec3, b: Vec3) -> Vec3:
    return a[0] + b[0], a[1] + b[1], a[2] + b[2]


def sub(a: Vec3, b: Vec3) -> Vec3:
    return a[0] - b[0], a[1] - b[1], a[2] - b[2]


def mul(a: Vec3, scalar: float) -> Vec3:
    return a[0] * scalar, a[1] * scalar, a[2] * scalar


def dot(a: Vec3, b: Vec3) -> float:
    return a[0] * b[0] + a[1] * b[1] + a[2] * b[2]


def length(a: Vec3) -> float:
    return sqrt(max(dot(a, a), 0.0))


def normalize(a: Vec3) -> Vec3:
    l = length(a)
    if l <= 1e-8:
        return 0.0, 0.0, 0.0
    inv = 1.0 / l
    return mul(a, inv)


def cross(a: Vec3, b: Vec3) -> Vec3:
    """Cross product of two 3D vectors."""
    return (
        a[1] * b[2] - a[2] * b[1],
        a[2] * b[0] - a[0] * b[2],
        a[0] * b[1] - a[1] * b[0],
    )


def triangle_area(a: Vec3, b: Vec3, c: Vec3) -> float:
    return length(cross(sub(b, a), sub(c, a))) / 2.0


def point_in_aabb_strict(point: Vec3, bounds_min: Vec3, bounds_max: Vec3) -> bool:
    """Check if a point lies strictly inside an AABB (touching a face does not count)."""
    return (
        bounds_min[0] < point[0] < bounds_max[0] and
        bounds_min[1] < point[1] < bounds_max[1] and
        bounds_min[2] < point[2] < bounds_max[2]
    )
