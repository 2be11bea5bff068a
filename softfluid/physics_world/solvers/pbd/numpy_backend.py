"""Vectorized CPU implementation of the compute backend."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from .backend import BufferSpec, ComputeBackend, KernelSignature
from .passes import PASSES
from .spatial_hash import NeighborPairs, SpatialHashGrid

logger = logging.getLogger(__name__)


class NumpyBackend(ComputeBackend):
    """Runs every kernel as a whole-array NumPy operation.

    Kernels execute synchronously, so :meth:`barrier` has nothing to wait on.
    """

    name = "numpy"

    def __init__(self, grid_resolution: Sequence[int]) -> None:
        super().__init__(grid_resolution)
        self._arrays: Dict[str, np.ndarray] = {}
        self.grid: Optional[SpatialHashGrid] = None
        self.pairs: Optional[NeighborPairs] = None

    def _allocate(self, spec: BufferSpec) -> None:
        self._arrays[spec.name] = np.zeros(spec.shape, dtype=np.float32)

    def _fill(self, spec: BufferSpec, value: float) -> None:
        self._arrays[spec.name].fill(value)

    def _write(self, spec: BufferSpec, data: np.ndarray) -> None:
        self._arrays[spec.name][...] = data

    def _read(self, spec: BufferSpec) -> np.ndarray:
        return self._arrays[spec.name].copy()

    def _build_neighbors(self, spec: BufferSpec, element_count: int, cell_width: float) -> None:
        if self.grid is None or self.grid.cell_width != cell_width:
            self.grid = SpatialHashGrid(self.grid_resolution, cell_width)
        self.grid.build(self._arrays[spec.name][:element_count])
        self.pairs = self.grid.pairs(cell_width)
        logger.debug(
            "[NumpyBackend] Neighbour index from '%s': %d pairs, %s",
            spec.name,
            len(self.pairs),
            self.grid.get_stats(),
        )

    def _dispatch(
        self,
        sig: KernelSignature,
        specs: Sequence[BufferSpec],
        element_count: int,
        params: Mapping[str, object],
    ) -> None:
        arrays = [self._arrays[spec.name] for spec in specs]
        pairs = self.pairs if sig.neighbors is not None else None
        PASSES[sig.name](element_count, params, pairs, *arrays)
