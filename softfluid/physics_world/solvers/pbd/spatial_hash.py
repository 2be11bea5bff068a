"""Uniform grid for neighbour lookup on the CPU backend."""

from __future__ import annotations

from dataclasses import dataclass
from itertools import product
from typing import Sequence, Tuple

import numpy as np

NEIGHBOR_OFFSETS = np.array(list(product((-1, 0, 1), repeat=3)), dtype=np.int64)


@dataclass
class NeighborPairs:
    """Flat list of interacting pairs ``(i, j)`` with ``i != j``.

    ``r_vec`` is ``p_i - p_j`` and ``r`` its length.
    """

    i: np.ndarray
    j: np.ndarray
    r_vec: np.ndarray
    r: np.ndarray

    def __len__(self) -> int:
        return len(self.i)


class SpatialHashGrid:
    """Particles binned by ``floor(position / cell_width)``, clamped to the grid.

    Particles are counting-sorted by linear cell id, so the members of a cell
    are the contiguous slice ``order[start[c]:start[c] + count[c]]``.
    """

    def __init__(self, grid_size: Sequence[int], cell_width: float) -> None:
        self.grid_size = tuple(int(g) for g in grid_size)
        self.cell_width = float(cell_width)
        self.inv_cell = 1.0 / self.cell_width
        n_cells = int(np.prod(self.grid_size))
        self.cell_start = np.zeros(n_cells, dtype=np.int64)
        self.cell_count = np.zeros(n_cells, dtype=np.int64)
        self.order = np.zeros(0, dtype=np.int64)
        self.cells = np.zeros((0, 3), dtype=np.int64)
        self.positions = np.zeros((0, 3), dtype=np.float32)

    def cell_coords(self, positions: np.ndarray) -> np.ndarray:
        cells = np.floor(positions * self.inv_cell).astype(np.int64)
        return np.clip(cells, 0, np.asarray(self.grid_size) - 1)

    def linear_index(self, cells: np.ndarray) -> np.ndarray:
        _, ny, nz = self.grid_size
        return (cells[:, 0] * ny + cells[:, 1]) * nz + cells[:, 2]

    def build(self, positions: np.ndarray) -> None:
        self.positions = np.asarray(positions)
        self.cells = self.cell_coords(self.positions)
        linear = self.linear_index(self.cells)
        self.order = np.argsort(linear, kind="stable")
        self.cell_count = np.bincount(linear, minlength=len(self.cell_start))
        self.cell_start = np.concatenate(([0], np.cumsum(self.cell_count)[:-1]))

    def pairs(self, radius: float) -> NeighborPairs:
        """All pairs closer than ``radius`` found in the 3x3x3 surrounding cells."""
        grid = np.asarray(self.grid_size)
        pair_i = []
        pair_j = []
        for offset in NEIGHBOR_OFFSETS:
            neighbor_cells = self.cells + offset
            valid = np.all((neighbor_cells >= 0) & (neighbor_cells < grid), axis=1)
            owners = np.nonzero(valid)[0]
            linear = self.linear_index(neighbor_cells[owners])
            counts = self.cell_count[linear]
            total = int(counts.sum())
            if total == 0:
                continue
            starts = np.repeat(self.cell_start[linear], counts)
            local = np.arange(total) - np.repeat(np.cumsum(counts) - counts, counts)
            pair_i.append(np.repeat(owners, counts))
            pair_j.append(self.order[starts + local])

        if not pair_i:
            empty = np.zeros(0, dtype=np.int64)
            return NeighborPairs(empty, empty, np.zeros((0, 3), dtype=np.float32), np.zeros(0, dtype=np.float32))

        i = np.concatenate(pair_i)
        j = np.concatenate(pair_j)
        r_vec = self.positions[i] - self.positions[j]
        r = np.sqrt(np.einsum("ij,ij->i", r_vec, r_vec))
        keep = (i != j) & (r < radius)
        return NeighborPairs(i[keep], j[keep], r_vec[keep], r[keep])

    def get_stats(self) -> dict:
        occupied = int(np.count_nonzero(self.cell_count))
        return {
            "total_cells": len(self.cell_count),
            "occupied_cells": occupied,
            "max_particles_in_cell": int(self.cell_count.max()) if len(self.cell_count) else 0,
        }


def pairs_within(positions: np.ndarray, grid_size: Tuple[int, int, int], cell_width: float) -> NeighborPairs:
    grid = SpatialHashGrid(grid_size, cell_width)
    grid.build(positions)
    return grid.pairs(cell_width)
