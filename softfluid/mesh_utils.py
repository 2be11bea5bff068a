"""Helpers for loading OBJ meshes and generating simple primitives."""

from __future__ import annotations

from dataclasses import dataclass
from math import sqrt
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

import numpy as np

Vec3 = Tuple[float, float, float]


@dataclass
class TriangleMesh:
    vertices: np.ndarray  # (V, 3) float64
    triangles: np.ndarray  # (T, 3) int64

    def __post_init__(self) -> None:
        self.vertices = np.asarray(self.vertices, dtype=np.float64).reshape(-1, 3)
        self.triangles = np.asarray(self.triangles, dtype=np.int64).reshape(-1, 3)
        if self.triangles.size and (
            self.triangles.min() < 0 or self.triangles.max() >= len(self.vertices)
        ):
            raise ValueError(
                f"Triangle indices must lie in [0, {len(self.vertices)}), "
                f"got range [{self.triangles.min()}, {self.triangles.max()}]"
            )

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    def bounds(self) -> Tuple[Vec3, Vec3]:
        if not len(self.vertices):
            return (0.0, 0.0, 0.0), (0.0, 0.0, 0.0)
        lo = self.vertices.min(axis=0)
        hi = self.vertices.max(axis=0)
        return tuple(float(v) for v in lo), tuple(float(v) for v in hi)

    def transformed(self, scale: float = 1.0, offset: Sequence[float] = (0.0, 0.0, 0.0)) -> "TriangleMesh":
        """Return a copy scaled about the origin and then translated."""
        vertices = self.vertices * float(scale) + np.asarray(offset, dtype=np.float64)
        return TriangleMesh(vertices=vertices, triangles=self.triangles.copy())


_mesh_cache: Dict[Path, TriangleMesh] = {}


def load_obj_mesh(path: Path) -> TriangleMesh:
    """Read vertex positions and faces from a Wavefront OBJ file.

    Texture coordinates and normals are ignored; polygons are fan-triangulated.
    """
    path = Path(path).expanduser().resolve()
    if path in _mesh_cache:
        return _mesh_cache[path]
    if not path.exists():
        raise FileNotFoundError(f"OBJ mesh file not found: {path}")

    vertices: List[Vec3] = []
    faces: List[Tuple[int, ...]] = []
    with path.open("r", encoding="utf-8", errors="ignore") as handle:
        for line in handle:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("v "):
                parts = line.split()
                vertices.append((float(parts[1]), float(parts[2]), float(parts[3])))
            elif line.startswith("f "):
                indices: List[int] = []
                for token in line.split()[1:]:
                    head = token.split("/")[0]
                    if not head:
                        continue
                    idx = int(head)
                    # negative indices are relative to the current vertex count
                    indices.append(idx - 1 if idx > 0 else len(vertices) + idx)
                if len(indices) >= 3:
                    faces.append(tuple(indices))

    mesh = TriangleMesh(vertices=np.asarray(vertices).reshape(-1, 3), triangles=triangulate_faces(faces))
    _mesh_cache[path] = mesh
    return mesh


def triangulate_faces(faces: List[Tuple[int, ...]]) -> List[Tuple[int, int, int]]:
    """Convert polygon faces into triangle indices using fan triangulation."""

    triangles: List[Tuple[int, int, int]] = []
    for face in faces:
        for i in range(1, len(face) - 1):
            triangles.append((face[0], face[i], face[i + 1]))
    return triangles


def cube_mesh(size: float = 1.0, center: Sequence[float] = (0.0, 0.0, 0.0)) -> TriangleMesh:
    """Axis-aligned cube with outward (counter-clockwise) winding."""
    h = 0.5 * size
    corners = np.array(
        [
            (-h, -h, -h), (h, -h, -h), (h, h, -h), (-h, h, -h),
            (-h, -h, h), (h, -h, h), (h, h, h), (-h, h, h),
        ],
        dtype=np.float64,
    )
    triangles = [
        (0, 2, 1), (0, 3, 2),  # -z
        (4, 5, 6), (4, 6, 7),  # +z
        (0, 1, 5), (0, 5, 4),  # -y
        (3, 7, 6), (3, 6, 2),  # +y
        (0, 4, 7), (0, 7, 3),  # -x
        (1, 2, 6), (1, 6, 5),  # +x
    ]
    return TriangleMesh(vertices=corners + np.asarray(center, dtype=np.float64), triangles=triangles)


_ICOSAHEDRON_FACES = [
    (0, 11, 5), (0, 5, 1), (0, 1, 7), (0, 7, 10), (0, 10, 11),
    (1, 5, 9), (5, 11, 4), (11, 10, 2), (10, 7, 6), (7, 1, 8),
    (3, 9, 4), (3, 4, 2), (3, 2, 6), (3, 6, 8), (3, 8, 9),
    (4, 9, 5), (2, 4, 11), (6, 2, 10), (8, 6, 7), (9, 8, 1),
]


def icosphere_mesh(
    radius: float = 1.0,
    subdivisions: int = 1,
    center: Sequence[float] = (0.0, 0.0, 0.0),
) -> TriangleMesh:
    """Subdivided icosahedron projected onto a sphere, outward winding."""
    t = (1.0 + sqrt(5.0)) / 2.0
    vertices: List[Vec3] = [
        (-1, t, 0), (1, t, 0), (-1, -t, 0), (1, -t, 0),
        (0, -1, t), (0, 1, t), (0, -1, -t), (0, 1, -t),
        (t, 0, -1), (t, 0, 1), (-t, 0, -1), (-t, 0, 1),
    ]
    faces = list(_ICOSAHEDRON_FACES)

    for _ in range(max(0, int(subdivisions))):
        midpoints: Dict[int, int] = {}

        def midpoint(a: int, b: int) -> int:
            key = (min(a, b) << 32) | max(a, b)
            if key not in midpoints:
                va, vb = vertices[a], vertices[b]
                vertices.append(((va[0] + vb[0]) / 2, (va[1] + vb[1]) / 2, (va[2] + vb[2]) / 2))
                midpoints[key] = len(vertices) - 1
            return midpoints[key]

        refined = []
        for a, b, c in faces:
            ab, bc, ca = midpoint(a, b), midpoint(b, c), midpoint(c, a)
            refined.extend([(a, ab, ca), (b, bc, ab), (c, ca, bc), (ab, bc, ca)])
        faces = refined

    points = np.asarray(vertices, dtype=np.float64)
    points /= np.linalg.norm(points, axis=1, keepdims=True)
    points = points * radius + np.asarray(center, dtype=np.float64)
    return TriangleMesh(vertices=points, triangles=faces)
