"""High-level orchestration layer around the physics world."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from .configuration import SceneConfig, load_scene_config
from .physics_world.state import WorldSnapshot
from .physics_world.world import PhysicsWorld

logger = logging.getLogger(__name__)


@dataclass
class WorldContainer:
    """Bundles scene configuration and physics world."""

    config: SceneConfig
    world: PhysicsWorld
    last_snapshot: Optional[WorldSnapshot] = None
    observers: List[Callable[[WorldSnapshot], None]] = field(default_factory=list)

    @classmethod
    def from_config_file(
        cls,
        config_path: str | Path,
        backend: Optional[str] = None,
        arch: Optional[str] = None,
    ) -> "WorldContainer":
        config = load_scene_config(config_path)
        world = PhysicsWorld.from_config(config, backend=backend, arch=arch)
        return cls(config=config, world=world)

    @property
    def current_step(self) -> int:
        return self.world.current_step

    def step(self, dt: float | None = None) -> WorldSnapshot:
        """Advance the world by a single step and notify observers."""
        dt = dt if dt is not None else self.config.simulation.time_step
        snapshot = self.world.step(dt)
        for observer in self.observers:
            observer(snapshot)
        self.last_snapshot = snapshot
        return snapshot

    def run(self, steps: Optional[int] = None) -> Optional[WorldSnapshot]:
        """Execute multiple simulation steps."""
        total_steps = steps if steps is not None else self.config.simulation.total_steps
        for _ in range(total_steps):
            self.step()
        logger.info("[WorldContainer] Ran %d steps, t=%.4f", total_steps, self.world.current_time)
        return self.last_snapshot
