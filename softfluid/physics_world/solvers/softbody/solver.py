"""Mass-spring soft body with an ideal-gas pressure term.

The body exposes a first-order ODE to an external fixed-step integrator:

    derivative = body.get_derivative(body.get_state())
    body.update_state(derivative * dt, bodies)

``get_derivative`` is pure; ``update_state`` applies the step, clipping each
point's movement against sibling bodies and recomputing the bounding box.
"""

from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from ....mesh_utils import TriangleMesh
from ...bodies import PhysicsBody
from ...state import STATE_STRIDE, VY, BoundingBox, SoftBodyState
from ..collision.swept import SweptCollisionResolver, prepare_triangles
from .springs import SpringNetwork, enclosed_volume

logger = logging.getLogger(__name__)

VOLUME_FLOOR = 0.01


class SoftBody(PhysicsBody):
    def __init__(
        self,
        name: str,
        mesh: TriangleMesh,
        total_mass: float = 4.0,
        spring_constant: float = 30.0,
        damping_constant: float = 0.5,
        gravity: float = 1.0,
        pressure_factor: float = 50.0,
        contact_response: str = "reset",
    ) -> None:
        """Build the spring network and pressure constant from the rest mesh.

        Args:
            name: Identifier used in logs and snapshots.
            mesh: Closed triangle mesh with outward winding.
            total_mass: Mass shared uniformly by all points.
            spring_constant: Stiffness of every edge spring.
            damping_constant: Damping along each spring's direction.
            gravity: Downward (-y) acceleration applied to every point.
            pressure_factor: ``pressure_constant = rest_volume * pressure_factor``.
            contact_response: See :class:`SweptCollisionResolver`.
        """
        super().__init__(name, mesh)
        count = len(self.vertices)
        if count == 0:
            raise ValueError(f"Soft body '{name}' needs at least one vertex")

        self.state = np.zeros(count * STATE_STRIDE, dtype=np.float64)
        self.state.reshape(count, STATE_STRIDE)[:, :3] = self.vertices

        self.mass_per_point = total_mass / count
        self.spring_constant = float(spring_constant)
        self.damping_constant = float(damping_constant)
        self.gravity = float(gravity)

        self.springs = SpringNetwork(self.vertices, self.triangles)
        self.rest_volume = enclosed_volume(self.vertices, self.triangles)
        self.pressure_constant = self.rest_volume * pressure_factor
        self.collision = SweptCollisionResolver(contact_response)

        logger.info(
            "[SoftBody] %s: %d points, %d springs, rest volume %.4f, pressure constant %.4f",
            name, count, len(self.springs), self.rest_volume, self.pressure_constant,
        )

    @property
    def point_count(self) -> int:
        return len(self.vertices)

    @property
    def total_mass(self) -> float:
        return self.mass_per_point * self.point_count

    @property
    def positions(self) -> np.ndarray:
        return self.state.reshape(-1, STATE_STRIDE)[:, :3]

    @property
    def velocities(self) -> np.ndarray:
        return self.state.reshape(-1, STATE_STRIDE)[:, 3:]

    def get_state(self) -> np.ndarray:
        return self.state

    def _as_points(self, values: np.ndarray, label: str) -> np.ndarray:
        values = np.asarray(values, dtype=np.float64)
        if values.size != self.state.size:
            raise ValueError(
                f"{label} for '{self.name}' must hold {self.state.size} values, got {values.size}"
            )
        return values.reshape(-1, STATE_STRIDE)

    def get_derivative(self, state: np.ndarray) -> np.ndarray:
        """Time derivative of ``state``; does not touch the body."""
        points = self._as_points(state, "State")
        pos = points[:, :3]
        vel = points[:, 3:]
        derivative = np.zeros_like(points)
        accel = derivative[:, 3:]
        inv_mass = 1.0 / self.mass_per_point

        springs = self.springs
        if len(springs):
            pos_diff = pos[springs.b] - pos[springs.a]
            vel_diff = vel[springs.b] - vel[springs.a]
            dist = np.linalg.norm(pos_diff, axis=1)
            active = dist > 0.0
            direction = pos_diff[active] / dist[active, None]
            force = (dist[active] - springs.rest_lengths[active]) * self.spring_constant
            force += np.einsum("ij,ij->i", vel_diff[active], direction) * self.damping_constant
            force_vec = force[:, None] * direction * inv_mass
            # vertices are shared between springs, so accumulate unbuffered
            np.add.at(accel, springs.a[active], force_vec)
            np.add.at(accel, springs.b[active], -force_vec)

        if len(self.triangles):
            volume = max(enclosed_volume(pos, self.triangles), VOLUME_FLOOR)
            v1 = pos[self.triangles[:, 0]]
            v2 = pos[self.triangles[:, 1]]
            v3 = pos[self.triangles[:, 2]]
            cross_product = np.cross(v2 - v1, v3 - v1)
            cross_length = np.linalg.norm(cross_product, axis=1)
            valid = cross_length > 0.0
            normal = cross_product[valid] / cross_length[valid, None]
            area = cross_length[valid] / 2.0
            # P = nRT / V and F = P * A, split evenly over the three corners
            pressure_force = self.pressure_constant * area / volume / 3.0
            force_vec = normal * (pressure_force * inv_mass)[:, None]
            for corner in range(3):
                np.add.at(accel, self.triangles[valid, corner], force_vec)

        derivative[:, VY] -= self.gravity
        derivative[:, :3] = vel
        return derivative.reshape(-1)

    def update_state(self, change: np.ndarray, bodies: Sequence[PhysicsBody]) -> None:
        """Apply one integration step, clipping movement against ``bodies``.

        ``change`` has the state layout: position deltas and velocity deltas.
        """
        delta = self._as_points(change, "Change")
        points = self.state.reshape(-1, STATE_STRIDE)
        movement = delta[:, :3].copy()
        velocity = points[:, 3:].copy()
        contacts = 0
        for body in bodies:
            if body is self or body.bounds.is_empty:
                continue
            # later bodies see the movement already clipped by earlier ones
            targets = points[:, :3] + movement
            inside = np.all((targets > np.asarray(body.bounds_min)) & (targets < np.asarray(body.bounds_max)), axis=1)
            if not inside.any():
                continue
            triangles = [prepare_triangles(body)]
            for i in np.nonzero(inside)[0]:
                clipped, new_velocity, hits = self.collision.resolve(
                    tuple(points[i, :3].tolist()),
                    tuple(movement[i].tolist()),
                    tuple(velocity[i].tolist()),
                    triangles,
                )
                movement[i] = clipped
                velocity[i] = new_velocity
                contacts += hits

        points[:, :3] += movement
        points[:, 3:] = velocity + delta[:, 3:]
        self.vertices[:] = points[:, :3]
        self.bounds = BoundingBox.from_points(self.vertices)
        if contacts:
            logger.debug("[SoftBody] %s: %d contacts resolved", self.name, contacts)

    def snapshot(self) -> SoftBodyState:
        return SoftBodyState(
            name=self.name,
            positions=self.positions.copy(),
            velocities=self.velocities.copy(),
            bounds=BoundingBox(self.bounds_min, self.bounds_max),
            total_mass=self.total_mass,
        )
