"""Swept point-vs-triangle collision used by the soft-body update step."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ...bodies import PhysicsBody
from ...math_utils import Vec3, add, cross, dot, length, mul, normalize, sub, triangle_area


CONTACT_OFFSET = 0.01
BARYCENTRIC_TOLERANCE = 0.01
CONTACT_RESPONSES = ("reset", "normal")


@dataclass(frozen=True)
class PreparedTriangle:
    a: Vec3
    b: Vec3
    c: Vec3
    normal: Vec3  # zero vector for degenerate triangles
    area: float


def prepare_triangles(body: PhysicsBody) -> List[PreparedTriangle]:
    """Precompute outward normals and areas for every triangle of ``body``."""
    prepared = []
    for a, b, c in body.triangle_corners():
        cross_product = cross(sub(b, a), sub(c, a))
        prepared.append(
            PreparedTriangle(a, b, c, normalize(cross_product), length(cross_product) / 2.0)
        )
    return prepared


def intersect_triangle(current: Vec3, movement: Vec3, tri: PreparedTriangle) -> Optional[Vec3]:
    """Return where ``current + s*movement`` (0 < s <= 1) crosses the triangle, if it does.

    Only approaches from the front (normal) side count.
    """
    normal = tri.normal
    to_plane = dot(sub(tri.a, current), normal)
    along_movement = dot(movement, normal)
    if (
        to_plane >= 0.0  # already behind the plane
        or along_movement >= 0.0  # moving away from the plane
        or to_plane < along_movement  # plane is further than the movement reaches
    ):
        return None

    hit = add(current, mul(movement, to_plane / along_movement))

    area_pab = triangle_area(hit, tri.a, tri.b)
    area_pac = triangle_area(hit, tri.a, tri.c)
    area_pbc = triangle_area(hit, tri.b, tri.c)
    weight_a = area_pbc / tri.area
    weight_b = area_pac / tri.area
    weight_c = area_pab / tri.area
    total = weight_a + weight_b + weight_c
    if not (
        0.0 < weight_a < 1.0
        and 0.0 < weight_b < 1.0
        and 0.0 < weight_c < 1.0
        and 1.0 - BARYCENTRIC_TOLERANCE < total < 1.0 + BARYCENTRIC_TOLERANCE
    ):
        return None
    return hit


class SweptCollisionResolver:
    """Clips a point's movement against the triangles of sibling bodies.

    Contacts are applied in body/triangle iteration order and each one clips the
    movement left by the previous one; there is no earliest-contact search.

    Args:
        contact_response: ``"reset"`` zeroes the whole velocity on contact,
            ``"normal"`` removes only the component along the contact normal.
        contact_offset: distance the clipped point is pushed out along the normal.
    """

    def __init__(self, contact_response: str = "reset", contact_offset: float = CONTACT_OFFSET) -> None:
        if contact_response not in CONTACT_RESPONSES:
            raise ValueError(
                f"Unknown contact response '{contact_response}', expected one of {CONTACT_RESPONSES}"
            )
        self.contact_response = contact_response
        self.contact_offset = contact_offset

    def resolve_triangle(
        self,
        current: Vec3,
        movement: Vec3,
        velocity: Vec3,
        tri: PreparedTriangle,
    ) -> Tuple[Vec3, Vec3, bool]:
        """Apply a single swept test; returns ``(movement, velocity, hit)``."""
        hit = intersect_triangle(current, movement, tri)
        if hit is None:
            return movement, velocity, False

        hit = add(hit, mul(tri.normal, self.contact_offset))
        clipped = sub(hit, current)
        intended = length(movement)
        clipped_length = length(clipped)
        if clipped_length > intended:
            clipped = mul(clipped, intended / clipped_length)

        velocity = sub(velocity, mul(tri.normal, dot(velocity, tri.normal)))
        if self.contact_response == "reset":
            velocity = (0.0, 0.0, 0.0)
        return clipped, velocity, True

    def resolve(
        self,
        current: Vec3,
        movement: Vec3,
        velocity: Vec3,
        candidates: Sequence[Sequence[PreparedTriangle]],
    ) -> Tuple[Vec3, Vec3, int]:
        """Run the swept test against every triangle of every candidate body.

        Returns the clipped movement, the post-contact velocity and the number
        of accepted contacts.
        """
        contacts = 0
        for triangles in candidates:
            for tri in triangles:
                movement, velocity, hit = self.resolve_triangle(current, movement, velocity, tri)
                contacts += hit
        return movement, velocity, contacts
