"""Smoothing kernels used by the PBD fluid passes (vectorized)."""
from __future__ import annotations

import numpy as np


class SmoothingKernels:
    """Poly6 and spiky kernels for support radius ``h``, evaluated on arrays."""

    def __init__(self, h: float) -> None:
        self.h = h
        self.h2 = h * h
        self.poly6_const = 315.0 / (64.0 * np.pi * h ** 9)
        self.spiky_const = -45.0 / (np.pi * h ** 6)

    def poly6(self, r: np.ndarray) -> np.ndarray:
        r = np.asarray(r, dtype=np.float64)
        diff = np.clip(self.h2 - r * r, 0.0, None)
        return np.where(r < self.h, self.poly6_const * diff * diff * diff, 0.0)

    def spiky_gradient(self, r_vec: np.ndarray, r: np.ndarray) -> np.ndarray:
        """Gradient of the spiky kernel w.r.t. ``p_i`` for ``r_vec = p_i - p_j``."""
        r = np.asarray(r, dtype=np.float64)
        inside = (r > 1e-6) & (r < self.h)
        safe_r = np.where(inside, r, 1.0)
        scale = np.where(inside, self.spiky_const * (self.h - r) ** 2 / safe_r, 0.0)
        return scale[:, None] * r_vec
