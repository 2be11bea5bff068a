"""Per-particle pass bodies for the NumPy backend.

Each pass receives the element count, the kernel parameters, the neighbour
pairs (``None`` for passes without neighbour access) and its bound buffers in
the order declared by ``backend.KERNELS``. Neighbour sums are gathered per
receiving particle with ``np.bincount``, so a particle only ever writes its own
output slot.
"""
from __future__ import annotations

from typing import Mapping, Optional

import numpy as np

from .kernels import SmoothingKernels
from .spatial_hash import NeighborPairs

NORMAL_EPS = 1e-6


def _sum_by(index: np.ndarray, values: np.ndarray, n: int) -> np.ndarray:
    """Segmented sum of ``values`` grouped by ``index``, always float64."""
    # bincount yields int64 when there are no pairs at all
    if values.ndim == 1:
        return np.bincount(index, weights=values, minlength=n)[:n].astype(np.float64, copy=False)
    return np.stack(
        [np.bincount(index, weights=values[:, k], minlength=n)[:n] for k in range(values.shape[1])],
        axis=1,
    ).astype(np.float64, copy=False)


def float32_bounds(bounds) -> np.ndarray:
    """Largest float32 values not exceeding ``bounds``."""
    exact = np.asarray(bounds, dtype=np.float64)
    rounded = exact.astype(np.float32)
    over = rounded.astype(np.float64) > exact
    rounded[over] = np.nextafter(rounded[over], np.float32(0.0))
    return rounded


def predict_positions(n: int, params: Mapping, pairs: Optional[NeighborPairs], position, velocity, estimate) -> None:
    delta = float(params["delta"])
    gravity = np.asarray(params["gravity"], dtype=np.float32)
    velocity[:n] += gravity * delta
    estimate[:n] = position[:n] + velocity[:n] * delta


def calculate_lambdas(n: int, params: Mapping, pairs: NeighborPairs, estimate, inverse_mass, lambdas) -> None:
    kernels = SmoothingKernels(float(params["cell_width"]))
    rest_density = float(params["rest_density"])

    density = kernels.poly6(0.0) + _sum_by(pairs.i, kernels.poly6(pairs.r), n)
    constraint = density / rest_density - 1.0

    grad_j = kernels.spiky_gradient(pairs.r_vec, pairs.r) / rest_density
    grad_i = _sum_by(pairs.i, grad_j, n)
    w = inverse_mass[:n].astype(np.float64)
    grad_sq = w * np.einsum("ij,ij->i", grad_i, grad_i)
    grad_sq += _sum_by(pairs.i, inverse_mass[pairs.j] * np.einsum("ij,ij->i", grad_j, grad_j), n)

    lambdas[:n] = -constraint / (grad_sq + float(params["relaxation"]))


def calculate_corrections(
    n: int, params: Mapping, pairs: NeighborPairs, estimate, inverse_mass, lambdas, correction
) -> None:
    h = float(params["cell_width"])
    kernels = SmoothingKernels(h)
    rest_density = float(params["rest_density"])

    scale = lambdas[pairs.i].astype(np.float64) + lambdas[pairs.j]
    tensile_k = float(params["tensile_k"])
    if tensile_k > 0.0:
        reference = float(kernels.poly6(float(params["tensile_dq"]) * h))
        if reference > 0.0:
            scale -= tensile_k * (kernels.poly6(pairs.r) / reference) ** float(params["tensile_n"])

    contrib = scale[:, None] * kernels.spiky_gradient(pairs.r_vec, pairs.r)
    correction[:n] = inverse_mass[:n, None] * _sum_by(pairs.i, contrib, n) / rest_density


def apply_corrections(n: int, params: Mapping, pairs: Optional[NeighborPairs], estimate, correction) -> None:
    estimate[:n] += correction[:n]


def update_velocity(n: int, params: Mapping, pairs: Optional[NeighborPairs], position, velocity, estimate) -> None:
    delta = float(params["delta"])
    upper = float32_bounds(params["domain_max"])
    velocity[:n] = (estimate[:n] - position[:n]) / delta
    clamped = np.clip(estimate[:n], 0.0, upper)
    hit_wall = clamped != estimate[:n]
    velocity[:n][hit_wall] = 0.0
    position[:n] = clamped


def calculate_vorticity(n: int, params: Mapping, pairs: NeighborPairs, position, velocity, vorticity) -> None:
    kernels = SmoothingKernels(float(params["cell_width"]))
    relative = velocity[pairs.j] - velocity[pairs.i]
    # gradient w.r.t. p_j is the negated gradient w.r.t. p_i
    grad_pj = -kernels.spiky_gradient(pairs.r_vec, pairs.r)
    vorticity[:n] = _sum_by(pairs.i, np.cross(relative, grad_pj), n)


def apply_vorticity_viscosity(
    n: int, params: Mapping, pairs: NeighborPairs, position, velocity, vorticity, velocity_correction, inverse_mass
) -> None:
    kernels = SmoothingKernels(float(params["cell_width"]))
    omega = vorticity[:n].astype(np.float64)
    magnitude = np.linalg.norm(vorticity, axis=1)

    eta = _sum_by(
        pairs.i,
        (magnitude[pairs.j] - magnitude[pairs.i])[:, None] * kernels.spiky_gradient(pairs.r_vec, pairs.r),
        n,
    )
    eta_length = np.linalg.norm(eta, axis=1)
    location = np.zeros_like(eta)
    valid = eta_length > NORMAL_EPS
    location[valid] = eta[valid] / eta_length[valid, None]
    confinement = float(params["vorticity_epsilon"]) * np.cross(location, omega)

    relative = velocity[pairs.j] - velocity[pairs.i]
    xsph = _sum_by(pairs.i, relative * kernels.poly6(pairs.r)[:, None], n)
    xsph *= float(params["xsph_viscosity"]) / float(params["rest_density"])

    velocity_correction[:n] = inverse_mass[:n, None] * (confinement * float(params["delta"]) + xsph)


def correct_velocity(n: int, params: Mapping, pairs: Optional[NeighborPairs], velocity, velocity_correction) -> None:
    velocity[:n] += velocity_correction[:n]


PASSES = {
    fn.__name__: fn
    for fn in (
        predict_positions,
        calculate_lambdas,
        calculate_corrections,
        apply_corrections,
        update_velocity,
        calculate_vorticity,
        apply_vorticity_viscosity,
        correct_velocity,
    )
}
