"""Physics body base class shared by soft and static bodies."""

from __future__ import annotations

from typing import List

import numpy as np

from ..mesh_utils import TriangleMesh
from .math_utils import Vec3
from .state import BoundingBox


class PhysicsBody:
    """A triangle mesh that other bodies can collide against.

    ``vertices`` is the render-facing vertex storage; dynamic bodies write their
    updated positions back into it so that collision queries from sibling bodies
    always see the latest surface.
    """

    def __init__(self, name: str, mesh: TriangleMesh) -> None:
        self.name = name
        self.vertices = np.array(mesh.vertices, dtype=np.float64).reshape(-1, 3)
        self.triangles = np.array(mesh.triangles, dtype=np.int64).reshape(-1, 3)
        self.bounds = BoundingBox.from_points(self.vertices)

    @property
    def bounds_min(self) -> Vec3:
        return self.bounds.bounds_min

    @property
    def bounds_max(self) -> Vec3:
        return self.bounds.bounds_max

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)

    def triangle_corners(self) -> List[tuple[Vec3, Vec3, Vec3]]:
        """World-space corners of every triangle, in triangle order."""
        corners = self.vertices[self.triangles]
        return [
            (tuple(tri[0].tolist()), tuple(tri[1].tolist()), tuple(tri[2].tolist()))
            for tri in corners
        ]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, vertices={len(self.vertices)}, triangles={self.triangle_count})"


class StaticBody(PhysicsBody):
    """Immovable collision mesh; its bounding box is computed once."""
