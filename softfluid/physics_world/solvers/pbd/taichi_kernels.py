"""Taichi versions of the PBD smoothing kernels.

All functions are ``@ti.func`` so they inline into the backend's kernels.
"""
import math

import taichi as ti


@ti.func
def poly6_kernel(r: ti.f32, h: ti.f32) -> ti.f32:
    """W_poly6(r, h) = 315 / (64 pi h^9) * (h^2 - r^2)^3 for 0 <= r < h."""
    result = 0.0
    if r >= 0.0 and r < h:
        coef = 315.0 / (64.0 * math.pi * h ** 9)
        diff = h * h - r * r
        result = coef * diff * diff * diff
    return result


@ti.func
def spiky_grad_kernel(r_vec: ti.math.vec3, h: ti.f32) -> ti.math.vec3:
    """Gradient of the spiky kernel w.r.t. p_i for r_vec = p_i - p_j."""
    result = ti.math.vec3(0.0, 0.0, 0.0)
    r = r_vec.norm()
    if r > 1e-6 and r < h:
        coef = -45.0 / (math.pi * h ** 6)
        result = r_vec * (coef * (h - r) * (h - r) / r)
    return result
