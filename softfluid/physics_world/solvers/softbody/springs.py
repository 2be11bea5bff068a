"""Spring network and enclosed-volume helpers for soft bodies."""

from __future__ import annotations

from typing import Dict, List

import numpy as np

from ...state import Spring, spring_key


class SpringNetwork:
    """Springs along every unique mesh edge.

    Shared edges between neighbouring triangles produce a single spring; the
    ``(min << 32) | max`` vertex-pair key maps to the spring's index.
    """

    def __init__(self, positions: np.ndarray, triangles: np.ndarray) -> None:
        self._positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        self.springs: List[Spring] = []
        self.index_by_key: Dict[int, int] = {}
        for id1, id2, id3 in np.asarray(triangles, dtype=np.int64).reshape(-1, 3).tolist():
            self.add_spring(id1, id2)
            self.add_spring(id2, id3)
            self.add_spring(id3, id1)

        self.a = np.array([s.a for s in self.springs], dtype=np.int64)
        self.b = np.array([s.b for s in self.springs], dtype=np.int64)
        self.rest_lengths = np.array([s.rest_length for s in self.springs], dtype=np.float64)

    def add_spring(self, i: int, j: int) -> int:
        """Register the spring between ``i`` and ``j`` once; returns its index."""
        key = spring_key(i, j)
        existing = self.index_by_key.get(key)
        if existing is not None:
            return existing
        lo, hi = min(i, j), max(i, j)
        rest_length = float(np.linalg.norm(self._positions[hi] - self._positions[lo]))
        self.index_by_key[key] = len(self.springs)
        self.springs.append(Spring(lo, hi, rest_length))
        return len(self.springs) - 1

    def __len__(self) -> int:
        return len(self.springs)


def signed_volume(positions: np.ndarray, triangles: np.ndarray) -> float:
    """Sum of signed tetrahedron volumes spanned by each triangle and the origin."""
    if not len(triangles):
        return 0.0
    p1 = positions[triangles[:, 0]]
    p2 = positions[triangles[:, 1]]
    p3 = positions[triangles[:, 2]]
    return float(np.einsum("ij,ij->", p1, np.cross(p2, p3)) / 6.0)


def enclosed_volume(positions: np.ndarray, triangles: np.ndarray) -> float:
    return abs(signed_volume(positions, triangles))
