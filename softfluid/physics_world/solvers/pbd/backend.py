"""Compute backend contract for the PBD fluid pipeline.

A backend owns named particle buffers and runs named kernels as parallel maps
over them. Every kernel is described by a :class:`KernelSignature` listing
the buffer roles it binds (in argument order), the roles it writes, and the
role whose positions feed the neighbour search. Neighbour passes gather from a
uniform-grid index that the backend rebuilds whenever the source buffer has
been written since the last build; every worker writes only its own slot.
"""

from __future__ import annotations

import abc
import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class BackendInitializationError(RuntimeError):
    """The compute device or kernel program could not be set up."""


@dataclass(frozen=True)
class KernelSignature:
    name: str
    buffers: Tuple[str, ...]
    writes: Tuple[str, ...]
    neighbors: Optional[str] = None
    params: Tuple[str, ...] = ()


KERNELS: Dict[str, KernelSignature] = {
    sig.name: sig
    for sig in (
        KernelSignature(
            "predict_positions",
            buffers=("position", "velocity", "estimate"),
            writes=("velocity", "estimate"),
            params=("delta", "gravity"),
        ),
        KernelSignature(
            "calculate_lambdas",
            buffers=("estimate", "inverse_mass", "lambdas"),
            writes=("lambdas",),
            neighbors="estimate",
            params=("cell_width", "rest_density", "relaxation"),
        ),
        KernelSignature(
            "calculate_corrections",
            buffers=("estimate", "inverse_mass", "lambdas", "correction"),
            writes=("correction",),
            neighbors="estimate",
            params=("cell_width", "rest_density", "tensile_k", "tensile_dq", "tensile_n"),
        ),
        KernelSignature(
            "apply_corrections",
            buffers=("estimate", "correction"),
            writes=("estimate",),
        ),
        KernelSignature(
            "update_velocity",
            buffers=("position", "velocity", "estimate"),
            writes=("position", "velocity"),
            params=("delta", "domain_max"),
        ),
        KernelSignature(
            "calculate_vorticity",
            buffers=("position", "velocity", "vorticity"),
            writes=("vorticity",),
            neighbors="position",
            params=("cell_width",),
        ),
        KernelSignature(
            "apply_vorticity_viscosity",
            buffers=("position", "velocity", "vorticity", "velocity_correction", "inverse_mass"),
            writes=("velocity_correction",),
            neighbors="position",
            params=("cell_width", "rest_density", "delta", "vorticity_epsilon", "xsph_viscosity"),
        ),
        KernelSignature(
            "correct_velocity",
            buffers=("velocity", "velocity_correction"),
            writes=("velocity",),
        ),
    )
}


@dataclass(frozen=True)
class BufferSpec:
    name: str
    components: int
    count: int

    @property
    def shape(self) -> Tuple[int, ...]:
        return (self.count,) if self.components == 1 else (self.count, self.components)


class ComputeBackend(abc.ABC):
    """Base class shared by the NumPy and Taichi backends.

    Args:
        grid_resolution: Cells per axis of the neighbour grid.
    """

    name = "abstract"

    def __init__(self, grid_resolution: Sequence[int]) -> None:
        if len(grid_resolution) != 3 or min(grid_resolution) <= 0:
            raise ValueError(f"grid_resolution must be three positive ints, got {grid_resolution}")
        self.grid_resolution = tuple(int(r) for r in grid_resolution)
        self._specs: Dict[str, BufferSpec] = {}
        self._versions: Dict[str, int] = {}
        self._neighbor_key: Optional[Tuple[str, int, float, int]] = None

    # ------------------------------------------------------------------
    # Buffers
    # ------------------------------------------------------------------
    def create_buffer(self, name: str, components: int, count: int) -> BufferSpec:
        if name in self._specs:
            raise ValueError(f"Buffer '{name}' already exists")
        if components not in (1, 3):
            raise ValueError(f"Buffer '{name}' must have 1 or 3 components, got {components}")
        spec = BufferSpec(name, components, int(count))
        self._specs[name] = spec
        self._versions[name] = 0
        self._allocate(spec)
        return spec

    def spec(self, name: str) -> BufferSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise KeyError(f"Unknown buffer '{name}'") from None

    def buffer_fill(self, name: str, value: float) -> None:
        self._fill(self.spec(name), float(value))
        self._touch(name)

    def buffer_write(self, name: str, host_array: np.ndarray) -> None:
        spec = self.spec(name)
        data = np.asarray(host_array, dtype=np.float32)
        if data.size != spec.count * spec.components:
            raise ValueError(
                f"Buffer '{name}' holds {spec.count * spec.components} values, got {data.size}"
            )
        self._write(spec, np.ascontiguousarray(data.reshape(spec.shape)))
        self._touch(name)

    def buffer_read(self, name: str) -> np.ndarray:
        """Copy of the buffer contents, ``(N,)`` or ``(N, 3)`` float32."""
        return self._read(self.spec(name))

    def _touch(self, name: str) -> None:
        self._versions[name] += 1

    # ------------------------------------------------------------------
    # Kernels
    # ------------------------------------------------------------------
    def parallel_map(
        self,
        kernel: str,
        buffers: Sequence[str],
        element_count: int,
        params: Optional[Mapping[str, object]] = None,
    ) -> None:
        """Run ``kernel`` once per element and block until it has finished."""
        try:
            sig = KERNELS[kernel]
        except KeyError:
            raise KeyError(f"Unknown kernel '{kernel}', available: {sorted(KERNELS)}") from None
        if len(buffers) != len(sig.buffers):
            raise ValueError(
                f"Kernel '{kernel}' binds {len(sig.buffers)} buffers {sig.buffers}, got {len(buffers)}"
            )
        specs = [self.spec(name) for name in buffers]
        for spec in specs:
            if spec.count < element_count:
                raise ValueError(
                    f"Buffer '{spec.name}' has {spec.count} elements, kernel '{kernel}' needs {element_count}"
                )
        params = dict(params or {})
        missing = [p for p in sig.params if p not in params]
        if missing:
            raise KeyError(f"Kernel '{kernel}' is missing parameters {missing}")

        if sig.neighbors is not None:
            source = buffers[sig.buffers.index(sig.neighbors)]
            self._ensure_neighbors(source, element_count, float(params["cell_width"]))

        self._dispatch(sig, specs, element_count, params)
        for role in sig.writes:
            self._touch(buffers[sig.buffers.index(role)])

    def _ensure_neighbors(self, source: str, element_count: int, cell_width: float) -> None:
        key = (source, self._versions[source], cell_width, element_count)
        if key == self._neighbor_key:
            return
        self._build_neighbors(self.spec(source), element_count, cell_width)
        self._neighbor_key = key

    def barrier(self) -> None:
        """Wait until every submitted kernel has finished."""

    # ------------------------------------------------------------------
    # Backend specific
    # ------------------------------------------------------------------
    @abc.abstractmethod
    def _allocate(self, spec: BufferSpec) -> None: ...

    @abc.abstractmethod
    def _fill(self, spec: BufferSpec, value: float) -> None: ...

    @abc.abstractmethod
    def _write(self, spec: BufferSpec, data: np.ndarray) -> None: ...

    @abc.abstractmethod
    def _read(self, spec: BufferSpec) -> np.ndarray: ...

    @abc.abstractmethod
    def _build_neighbors(self, spec: BufferSpec, element_count: int, cell_width: float) -> None: ...

    @abc.abstractmethod
    def _dispatch(
        self,
        sig: KernelSignature,
        specs: Sequence[BufferSpec],
        element_count: int,
        params: Mapping[str, object],
    ) -> None: ...


def create_backend(name: str, grid_resolution: Sequence[int], arch: str = "cpu") -> ComputeBackend:
    """Instantiate a backend by name (``numpy`` or ``taichi``)."""
    name = name.lower()
    logger.info("[ComputeBackend] Creating %s backend (grid %s, arch=%s)", name, tuple(grid_resolution), arch)
    if name == "numpy":
        from .numpy_backend import NumpyBackend

        return NumpyBackend(grid_resolution)
    if name == "taichi":
        try:
            from .taichi_backend import TaichiBackend
        except ImportError as exc:
            raise BackendInitializationError(f"Taichi is not available: {exc}") from exc

        return TaichiBackend(grid_resolution, arch=arch)
    raise ValueError(f"Unknown compute backend '{name}', expected 'numpy' or 'taichi'")
