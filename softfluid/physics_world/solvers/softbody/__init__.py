from .solver import SoftBody
from .springs import SpringNetwork

__all__ = ["SoftBody", "SpringNetwork"]
