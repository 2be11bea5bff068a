from .swept import SweptCollisionResolver, intersect_triangle, prepare_triangles

__all__ = ["SweptCollisionResolver", "intersect_triangle", "prepare_triangles"]
